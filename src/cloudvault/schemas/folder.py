from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FolderCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: UUID | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value:
            raise ValueError("Folder name must be non-empty and must not contain '/'")
        return value


class FolderRenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value:
            raise ValueError("Folder name must be non-empty and must not contain '/'")
        return value


class FolderPathCreateRequest(BaseModel):
    path: str = Field(..., min_length=1, max_length=1024, description="Slash-delimited path, created as needed")


class FolderResponse(BaseModel):
    id: UUID
    name: str
    parent_id: UUID | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FolderPathResponse(BaseModel):
    path: str
    folders: list[FolderResponse]
