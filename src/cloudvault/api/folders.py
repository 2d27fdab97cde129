from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from cloudvault.auth_utils import get_current_user
from cloudvault.db import get_db
from cloudvault.models.user import User
from cloudvault.schemas.folder import FolderCreateRequest, FolderPathResponse, FolderRenameRequest, FolderResponse
from cloudvault.services.folder_resolver import FolderPathResolver

router = APIRouter(prefix="/folders", tags=["folders"])


def get_folder_resolver(db: Session = Depends(get_db)) -> FolderPathResolver:
    return FolderPathResolver(db)


@router.get("", response_model=list[FolderResponse])
def list_folders(resolver: FolderPathResolver = Depends(get_folder_resolver), current_user: User = Depends(get_current_user)):
    return resolver.list_folders(current_user.id)


@router.post("", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
def create_folder(request: FolderCreateRequest, resolver: FolderPathResolver = Depends(get_folder_resolver), current_user: User = Depends(get_current_user)):
    return resolver.create_folder(current_user.id, request.name, request.parent_id)


@router.patch("/{folder_id}", response_model=FolderResponse)
def rename_folder(
    folder_id: UUID,
    request: FolderRenameRequest,
    resolver: FolderPathResolver = Depends(get_folder_resolver),
    current_user: User = Depends(get_current_user),
):
    return resolver.rename_folder(folder_id, current_user.id, request.name)


@router.delete("/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_folder(folder_id: UUID, resolver: FolderPathResolver = Depends(get_folder_resolver), current_user: User = Depends(get_current_user)):
    resolver.delete_folder(folder_id, current_user.id)


@router.get("/{folder_id}/path", response_model=FolderPathResponse)
def get_folder_path(folder_id: UUID, resolver: FolderPathResolver = Depends(get_folder_resolver), current_user: User = Depends(get_current_user)):
    resolver.get_owned(folder_id, current_user.id)
    chain = resolver.folder_path_of(folder_id, current_user.id)
    return FolderPathResponse(path="/" + "/".join(folder.name for folder in chain), folders=[FolderResponse.model_validate(folder) for folder in chain])
