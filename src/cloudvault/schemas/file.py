from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FileResponse(BaseModel):
    id: UUID
    file_name: str
    file_size: int
    mime_type: str | None = None
    file_path: str
    folder_id: UUID | None = None
    uploaded_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FileListResponse(BaseModel):
    files: list[FileResponse]
    total: int
    page: int
    size: int


class FileMoveRequest(BaseModel):
    new_path: str | None = Field(None, max_length=1024, description="Logical folder path, e.g. Docs/2024")
    folder_id: UUID | None = None

    @model_validator(mode="after")
    def validate_payload(self):
        if self.new_path is None and self.folder_id is None:
            raise ValueError("Either new_path or folder_id must be provided")
        return self


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int


class UploadResult(BaseModel):
    file_name: str
    success: bool
    file: FileResponse | None = None
    error: str | None = None


class BatchUploadResponse(BaseModel):
    results: list[UploadResult]
    total_files: int
    successful_uploads: int
    failed_uploads: int
