import logging
import os
from typing import Annotated
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from cloudvault.auth_utils import get_current_user
from cloudvault.db import get_db
from cloudvault.dependencies import get_remote_storage
from cloudvault.models.storage import File as StoredFile
from cloudvault.models.user import User
from cloudvault.remote_storage import RemoteStorageAdapter, RemoteStream
from cloudvault.schemas.file import DownloadUrlResponse, FileMoveRequest, FileResponse
from cloudvault.services.file_lifecycle import FileLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


def get_lifecycle_service(db: Session = Depends(get_db), storage: RemoteStorageAdapter = Depends(get_remote_storage)) -> FileLifecycleService:
    return FileLifecycleService(db, storage)


def upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def upload_name(upload: UploadFile, override: str | None = None) -> str:
    name = (override or upload.filename or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="File name is required")
    return os.path.basename(name)


def stream_response(file: StoredFile, stream: RemoteStream) -> StreamingResponse:
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file.file_name)}"}
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)
    return StreamingResponse(stream.chunks, media_type=file.mime_type or stream.content_type, headers=headers)


@router.get("", response_model=list[FileResponse])
def list_files(
    folder_id: UUID | None = Query(None),
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_current_user),
):
    return lifecycle.list_files(current_user.id, folder_id)


@router.get("/search", response_model=list[FileResponse])
def search_files(
    q: str = Query("", max_length=255),
    type: str | None = Query(None, max_length=255),
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_current_user),
):
    return lifecycle.search(current_user.id, q, type)


@router.post("", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: Annotated[UploadFile, File()],
    file_name: Annotated[str | None, Form()] = None,
    file_path: Annotated[str | None, Form()] = None,
    folder_id: Annotated[UUID | None, Form()] = None,
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_current_user),
):
    name = upload_name(file, file_name)
    return await lifecycle.upload(
        current_user.id,
        file.file,
        name,
        upload_size(file),
        mime_type=file.content_type,
        file_path=file_path,
        folder_id=folder_id,
    )


@router.get("/{file_id}", response_model=FileResponse)
def get_file(file_id: UUID, lifecycle: FileLifecycleService = Depends(get_lifecycle_service), current_user: User = Depends(get_current_user)):
    return lifecycle.get_file(file_id, current_user.id)


@router.put("/{file_id}", response_model=FileResponse)
async def replace_file(
    file_id: UUID,
    file: Annotated[UploadFile, File()],
    file_name: Annotated[str | None, Form()] = None,
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_current_user),
):
    name = upload_name(file, file_name) if (file_name or file.filename) else None
    return await lifecycle.replace(file_id, current_user.id, file.file, name, upload_size(file), mime_type=file.content_type)


@router.patch("/{file_id}/move", response_model=FileResponse)
async def move_file(
    file_id: UUID,
    request: FileMoveRequest,
    lifecycle: FileLifecycleService = Depends(get_lifecycle_service),
    current_user: User = Depends(get_current_user),
):
    return await lifecycle.move(file_id, current_user.id, new_path=request.new_path, folder_id=request.folder_id)


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(file_id: UUID, lifecycle: FileLifecycleService = Depends(get_lifecycle_service), current_user: User = Depends(get_current_user)):
    await lifecycle.delete(file_id, current_user.id)


@router.get("/{file_id}/download")
async def download_file(file_id: UUID, lifecycle: FileLifecycleService = Depends(get_lifecycle_service), current_user: User = Depends(get_current_user)):
    file, stream = await lifecycle.open_stream(file_id, current_user.id)
    return stream_response(file, stream)


@router.get("/{file_id}/url", response_model=DownloadUrlResponse)
async def get_download_url(file_id: UUID, lifecycle: FileLifecycleService = Depends(get_lifecycle_service), current_user: User = Depends(get_current_user)):
    url = await lifecycle.get_download_url(file_id, current_user.id)
    return DownloadUrlResponse(url=url, expires_in=lifecycle.storage.presign_ttl)
