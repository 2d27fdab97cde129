from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from cloudvault.models.api_key import ApplicationStatus


class ApiKeyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ApiKeyResponse(BaseModel):
    id: UUID
    name: str
    key_prefix: str
    is_active: bool
    is_trial: bool
    trial_expires_at: datetime | None = None
    last_used_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApiKeyCreatedResponse(ApiKeyResponse):
    token: str = Field(..., description="Shown now and retrievable for 24 hours through the reveal endpoint")


class ApiKeyRevealResponse(BaseModel):
    id: UUID
    token: str


class DeveloperApplicationRequest(BaseModel):
    system_name: str = Field(..., min_length=1, max_length=255)
    system_description: str = Field(..., min_length=10)
    expected_usage: str = Field(..., min_length=1)
    website_url: HttpUrl | None = None


class DeveloperApplicationResponse(BaseModel):
    id: UUID
    user_id: UUID
    system_name: str
    system_description: str
    website_url: str | None = None
    expected_usage: str
    status: ApplicationStatus
    rejection_reason: str | None = None
    created_at: datetime
    reviewed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
