"""Maps slash-delimited logical paths onto each user's folder tree."""

import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudvault.errors import FolderAlreadyExists, FolderNotEmpty, NotFoundOrUnauthorized
from cloudvault.models.storage import Folder
from cloudvault.remote_storage import join_remote_path
from cloudvault.repositories.folder_repository import FolderRepository

logger = logging.getLogger(__name__)

# Guards folder_path_of against corrupted parent cycles
MAX_FOLDER_DEPTH = 256


def split_path(logical_path: str | None) -> list[str]:
    if not logical_path:
        return []
    return [segment.strip() for segment in logical_path.split("/") if segment.strip()]


def normalize_path(logical_path: str | None) -> str:
    """``"/Docs//2024/"`` -> ``"/Docs/2024"``; empty input is the root ``"/"``."""
    return "/" + "/".join(split_path(logical_path))


class FolderPathResolver:
    def __init__(self, db: Session):
        self.repo = FolderRepository(db)

    def resolve(self, user_id: uuid.UUID, logical_path: str | None) -> uuid.UUID | None:
        """Find or create the folder chain for ``logical_path`` and return the deepest folder id.

        ``None``, ``""`` and ``"/"`` are the root and return ``None``. Each segment
        is looked up under the folder resolved so far before it is created, so
        resolving the same path again reuses the existing chain.
        """
        parent_id: uuid.UUID | None = None
        for segment in split_path(logical_path):
            folder = self.repo.get_folder_by_name_and_parent(user_id, segment, parent_id)
            if folder is None:
                folder = self._create_or_reread(user_id, segment, parent_id)
            parent_id = folder.id
        return parent_id

    def _create_or_reread(self, user_id: uuid.UUID, name: str, parent_id: uuid.UUID | None) -> Folder:
        try:
            folder = self.repo.create_folder(user_id, name, parent_id)
        except IntegrityError:
            # A concurrent request created the same sibling first
            folder = self.repo.get_folder_by_name_and_parent(user_id, name, parent_id)
            if folder is None:
                raise
            return folder
        logger.debug(f"Created folder {name} ({folder.id}) for user {user_id}")
        return folder

    def folder_path_of(self, folder_id: uuid.UUID | None, user_id: uuid.UUID) -> list[Folder]:
        """Ancestors of ``folder_id`` including itself, root first.

        The walk stops at a folder that is missing or owned by someone else.
        """
        chain: list[Folder] = []
        current_id = folder_id
        while current_id is not None and len(chain) < MAX_FOLDER_DEPTH:
            folder = self.repo.get_folder_by_id(current_id)
            if folder is None or folder.user_id != user_id:
                break
            chain.append(folder)
            current_id = folder.parent_id
        chain.reverse()
        return chain

    def logical_path_of(self, folder_id: uuid.UUID | None, user_id: uuid.UUID) -> str:
        return "/" + "/".join(folder.name for folder in self.folder_path_of(folder_id, user_id))

    def remote_path_of(self, folder_id: uuid.UUID | None, user_id: uuid.UUID) -> str:
        """Directory key in the shared bucket: the user's id followed by the folder names."""
        return join_remote_path(str(user_id), *(folder.name for folder in self.folder_path_of(folder_id, user_id)))

    def list_folders(self, user_id: uuid.UUID) -> list[Folder]:
        return self.repo.get_folders_by_user_id(user_id)

    def get_owned(self, folder_id: uuid.UUID, user_id: uuid.UUID) -> Folder:
        folder = self.repo.get_folder_by_id_and_owner(folder_id, user_id)
        if folder is None:
            raise NotFoundOrUnauthorized("Folder not found")
        return folder

    def create_folder(self, user_id: uuid.UUID, name: str, parent_id: uuid.UUID | None = None) -> Folder:
        name = name.strip()
        if parent_id is not None:
            self.get_owned(parent_id, user_id)
        if self.repo.get_folder_by_name_and_parent(user_id, name, parent_id) is not None:
            raise FolderAlreadyExists()
        try:
            return self.repo.create_folder(user_id, name, parent_id)
        except IntegrityError:
            raise FolderAlreadyExists() from None

    def rename_folder(self, folder_id: uuid.UUID, user_id: uuid.UUID, name: str) -> Folder:
        folder = self.get_owned(folder_id, user_id)
        name = name.strip()
        if name == folder.name:
            return folder
        if self.repo.get_folder_by_name_and_parent(user_id, name, folder.parent_id) is not None:
            raise FolderAlreadyExists()
        try:
            return self.repo.rename_folder(folder, name)
        except IntegrityError:
            raise FolderAlreadyExists() from None

    def delete_folder(self, folder_id: uuid.UUID, user_id: uuid.UUID) -> None:
        folder = self.get_owned(folder_id, user_id)
        if not self.repo.is_empty(folder.id):
            raise FolderNotEmpty()
        self.repo.delete_folder(folder)
