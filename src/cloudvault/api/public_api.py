"""Developer API, authenticated with API keys instead of session tokens."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from cloudvault.api.files import get_lifecycle_service, stream_response, upload_name, upload_size
from cloudvault.auth_utils import get_api_key_user
from cloudvault.db import get_db
from cloudvault.models.user import User
from cloudvault.schemas.file import BatchUploadResponse, FileListResponse, FileMoveRequest, FileResponse, UploadResult
from cloudvault.schemas.folder import FolderCreateRequest, FolderResponse
from cloudvault.schemas.plan import StorageUsageResponse
from cloudvault.services.file_lifecycle import FileLifecycleService, UploadSource
from cloudvault.services.folder_resolver import FolderPathResolver
from cloudvault.services.quota import QuotaAccountant

logger = logging.getLogger(__name__)

MAX_BATCH_FILES = 20

router = APIRouter(prefix="/api/v1", tags=["developer-api"])


@router.get("/files", response_model=FileListResponse)
def list_files(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_api_key_user),
):
    files, total = lifecycle.page_files(current_user.id, page, size)
    return FileListResponse(files=[FileResponse.model_validate(file) for file in files], total=total, page=page, size=size)


@router.get("/files/search", response_model=FileListResponse)
def search_files(
    q: str = Query("", max_length=255),
    type: str | None = Query(None, max_length=255),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_api_key_user),
):
    matches = lifecycle.search(current_user.id, q, type)
    start = (page - 1) * size
    return FileListResponse(files=[FileResponse.model_validate(file) for file in matches[start : start + size]], total=len(matches), page=page, size=size)


@router.post("/files/upload", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: Annotated[UploadFile, File()],
    file_path: Annotated[str | None, Form()] = None,
    folder_id: Annotated[UUID | None, Form()] = None,
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_api_key_user),
):
    return await lifecycle.upload(current_user.id, file.file, upload_name(file), upload_size(file), mime_type=file.content_type, file_path=file_path, folder_id=folder_id)


@router.post("/files/upload-multiple", response_model=BatchUploadResponse)
async def upload_multiple_files(
    files: Annotated[list[UploadFile], File()],
    file_path: Annotated[str | None, Form()] = None,
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_api_key_user),
):
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")
    if len(files) > MAX_BATCH_FILES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_BATCH_FILES} files per request")

    sources = [UploadSource(data=f.file, file_name=upload_name(f), size=upload_size(f), mime_type=f.content_type) for f in files]
    outcomes = await lifecycle.upload_many(current_user.id, sources, file_path)

    results = [
        UploadResult(
            file_name=outcome.file_name,
            success=outcome.file is not None,
            file=FileResponse.model_validate(outcome.file) if outcome.file is not None else None,
            error=outcome.error,
        )
        for outcome in outcomes
    ]
    successful = sum(1 for result in results if result.success)
    return BatchUploadResponse(results=results, total_files=len(results), successful_uploads=successful, failed_uploads=len(results) - successful)


@router.get("/files/{file_id}/download")
async def download_file(file_id: UUID, lifecycle: FileLifecycleService = Depends(get_lifecycle_service), current_user: User = Depends(get_api_key_user)):
    file, stream = await lifecycle.open_stream(file_id, current_user.id)
    return stream_response(file, stream)


@router.put("/files/{file_id}/move", response_model=FileResponse)
async def move_file(
    file_id: UUID,
    request: FileMoveRequest,
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_api_key_user),
):
    return await lifecycle.move(file_id, current_user.id, new_path=request.new_path, folder_id=request.folder_id)


@router.delete("/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(file_id: UUID, lifecycle: FileLifecycleService = Depends(get_lifecycle_service), current_user: User = Depends(get_api_key_user)):
    await lifecycle.delete(file_id, current_user.id)


@router.post("/folders", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
def create_folder(request: FolderCreateRequest, db: Session = Depends(get_db), current_user: User = Depends(get_api_key_user)):
    return FolderPathResolver(db).create_folder(current_user.id, request.name, request.parent_id)


@router.get("/me/storage", response_model=StorageUsageResponse)
def get_storage(db: Session = Depends(get_db), current_user: User = Depends(get_api_key_user)):
    return StorageUsageResponse.from_usage(QuotaAccountant(db).usage(current_user.id))
