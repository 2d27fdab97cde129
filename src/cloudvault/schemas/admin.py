from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from cloudvault.models.operation import OperationKind, OperationStatus
from cloudvault.schemas.api_key import DeveloperApplicationResponse


class AdminUserResponse(BaseModel):
    id: UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    plan_id: str | None = None
    storage_used: int
    is_admin: bool
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("storage_used")
    def serialize_storage_used(self, value: int) -> str:
        return str(value)


class AdminUserListResponse(BaseModel):
    users: list[AdminUserResponse]
    total: int
    page: int
    size: int


class AssignPlanRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, max_length=64)


class ApplicationReviewRequest(BaseModel):
    action: str = Field(..., pattern="^(approve|reject)$")
    rejection_reason: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_reason(self):
        if self.action == "reject" and not self.rejection_reason:
            raise ValueError("A rejection reason is required")
        return self


class ApplicationReviewResponse(BaseModel):
    application: DeveloperApplicationResponse
    api_key_id: UUID | None = None


class ApplicationListResponse(BaseModel):
    applications: list[DeveloperApplicationResponse]
    total: int
    page: int
    size: int


class StorageCredentialRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=1024)
    bucket: str = Field(..., min_length=3, max_length=255)
    region: str = Field("us-east-1", max_length=64)
    access_key: str = Field(..., min_length=1, max_length=255)
    secret_key: str = Field(..., min_length=1, max_length=255)


class StorageCredentialResponse(BaseModel):
    """The secret key is never returned."""

    configured: bool
    source: str | None = None
    endpoint: str | None = None
    bucket: str | None = None
    region: str | None = None
    access_key: str | None = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str


class OperationResponse(BaseModel):
    id: UUID
    user_id: UUID
    file_id: UUID | None = None
    kind: OperationKind
    status: OperationStatus
    remote_key: str | None = None
    previous_remote_key: str | None = None
    note: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
