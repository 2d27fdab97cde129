"""
File Lifecycle Service

Orchestrates upload, replace, delete and move across the three places a file
lives: the remote object, the ``files`` row and the owner's ``storage_used``.

Every mutation follows the same order: reserve quota, write a pending intent,
call the remote adapter, write the local row, mark the intent committed. A
remote failure releases the reservation. When the local write fails after the
remote call succeeded the intent stays pending and the reconciliation sweep
repairs the drift.
"""

import logging
import mimetypes
import uuid
from dataclasses import dataclass
from typing import BinaryIO

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from cloudvault.errors import FileTooLarge, NotFoundOrUnauthorized, RemoteStorageError
from cloudvault.logger import audit_logger
from cloudvault.models.operation import OperationKind, OperationStatus
from cloudvault.models.storage import File
from cloudvault.remote_storage import RemoteStorageAdapter, RemoteStream, UploadItem, new_object_key
from cloudvault.repositories.file_repository import FileRepository
from cloudvault.repositories.operation_repository import OperationRepository
from cloudvault.services.folder_resolver import FolderPathResolver
from cloudvault.services.quota import QuotaAccountant

logger = logging.getLogger(__name__)


class LifecycleSettings(BaseSettings):
    max_upload_size: int = 5 * 1024 * 1024 * 1024
    presigned_url_ttl: int = 3600
    reconcile_grace_minutes: int = 60

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@dataclass
class UploadSource:
    data: bytes | BinaryIO
    file_name: str
    size: int
    mime_type: str | None = None


@dataclass
class UploadOutcome:
    file_name: str
    file: File | None = None
    error: str | None = None


def _guess_mime(file_name: str, mime_type: str | None) -> str:
    return mime_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"


class FileLifecycleService:
    def __init__(self, db: Session, storage: RemoteStorageAdapter, settings: LifecycleSettings | None = None):
        self.db = db
        self.storage = storage
        self.settings = settings or LifecycleSettings()
        self.files = FileRepository(db)
        self.operations = OperationRepository(db)
        self.resolver = FolderPathResolver(db)
        self.quota = QuotaAccountant(db)

    def get_file(self, file_id: uuid.UUID, user_id: uuid.UUID) -> File:
        """Owned file or ``NotFoundOrUnauthorized``; missing and foreign look the same."""
        file = self.files.get_file_by_id(file_id)
        if file is None or file.user_id != user_id:
            raise NotFoundOrUnauthorized()
        return file

    def list_files(self, user_id: uuid.UUID, folder_id: uuid.UUID | None = None) -> list[File]:
        return self.files.get_files_by_user_id(user_id, folder_id)

    def page_files(self, user_id: uuid.UUID, page: int, size: int) -> tuple[list[File], int]:
        return self.files.page_files_by_user_id(user_id, page, size)

    def search(self, user_id: uuid.UUID, query: str, mime_type: str | None = None) -> list[File]:
        """Case-insensitive substring match on name and path, owner-scoped and unranked."""
        return self.files.search_files(user_id, query.strip(), mime_type)

    def _target_folder(self, user_id: uuid.UUID, file_path: str | None, folder_id: uuid.UUID | None) -> uuid.UUID | None:
        if folder_id is not None:
            return self.resolver.get_owned(folder_id, user_id).id
        return self.resolver.resolve(user_id, file_path)

    def _check_size(self, size: int) -> None:
        if size > self.settings.max_upload_size:
            raise FileTooLarge()

    def _leave_for_sweep(self, operation_id: uuid.UUID, user_id: uuid.UUID, released: int, note: str) -> None:
        """Release a reservation and record that on the intent, in one transaction."""
        self.db.rollback()
        self.quota.release(user_id, released, commit=False)
        self.operations.settle_reservation(operation_id, note=note)

    async def upload(
        self,
        user_id: uuid.UUID,
        data: bytes | BinaryIO,
        file_name: str,
        size: int,
        mime_type: str | None = None,
        file_path: str | None = None,
        folder_id: uuid.UUID | None = None,
    ) -> File:
        """Store a new file for ``user_id``.

        Raises:
            QuotaExceeded: before anything is sent to the remote store
            NotFoundOrUnauthorized: ``folder_id`` is not the caller's
            RemoteStorageError: the upload failed, nothing is persisted
        """
        self._check_size(size)
        mime_type = _guess_mime(file_name, mime_type)
        self.quota.reserve(user_id, size)
        try:
            folder_id = self._target_folder(user_id, file_path, folder_id)
            logical_path = self.resolver.logical_path_of(folder_id, user_id)
            remote_path = self.resolver.remote_path_of(folder_id, user_id)
            object_key = new_object_key(remote_path, file_name)
            operation = self.operations.begin(user_id, OperationKind.UPLOAD, remote_key=object_key, size_delta=size)
        except Exception:
            self.db.rollback()
            self.quota.release(user_id, size)
            raise

        try:
            remote = await self.storage.upload_file(data, file_name, remote_path, size, mime_type, object_key=object_key)
        except RemoteStorageError:
            self.quota.release(user_id, size)
            self.operations.resolve(operation.id, OperationStatus.ABORTED, note="remote upload failed")
            raise

        try:
            file = self.files.create_file(
                user_id=user_id,
                remote_object_id=remote.object_id,
                file_name=file_name,
                file_size=size,
                mime_type=mime_type,
                file_path=logical_path,
                folder_id=folder_id,
            )
        except Exception:
            logger.error(f"Upload of {remote.object_id} reached remote storage but the file row was not written", exc_info=True)
            self._leave_for_sweep(operation.id, user_id, size, "file row insert failed")
            raise

        self.operations.resolve(operation.id, OperationStatus.COMMITTED, file_id=file.id)
        audit_logger.log_event("file_uploaded", user_id=user_id, file_id=file.id, size=size, path=logical_path)
        return file

    async def upload_many(self, user_id: uuid.UUID, sources: list[UploadSource], file_path: str | None = None) -> list[UploadOutcome]:
        """Upload a batch into one folder.

        The whole batch must fit the quota. Items then succeed or fail on their
        own and the bytes of failed items are released.
        """
        for source in sources:
            self._check_size(source.size)
        total = sum(source.size for source in sources)
        self.quota.reserve(user_id, total)
        try:
            folder_id = self.resolver.resolve(user_id, file_path)
            logical_path = self.resolver.logical_path_of(folder_id, user_id)
            remote_path = self.resolver.remote_path_of(folder_id, user_id)
            keys = [new_object_key(remote_path, source.file_name) for source in sources]
            operations = []
            for source, key in zip(sources, keys, strict=True):
                operations.append(self.operations.begin(user_id, OperationKind.UPLOAD, remote_key=key, size_delta=source.size))
        except Exception:
            self.db.rollback()
            self.quota.release(user_id, total)
            raise

        items = [UploadItem(data=s.data, file_name=s.file_name, size=s.size, content_type=_guess_mime(s.file_name, s.mime_type)) for s in sources]
        results = await self.storage.upload_multiple_files(items, remote_path, object_keys=keys)

        outcomes: list[UploadOutcome] = []
        for source, operation, result in zip(sources, operations, results, strict=True):
            if not result.ok or result.remote is None:
                self.quota.release(user_id, source.size)
                self.operations.resolve(operation.id, OperationStatus.ABORTED, note="remote upload failed")
                outcomes.append(UploadOutcome(file_name=source.file_name, error=result.error.message if result.error else "Upload failed"))
                continue
            try:
                file = self.files.create_file(
                    user_id=user_id,
                    remote_object_id=result.remote.object_id,
                    file_name=source.file_name,
                    file_size=source.size,
                    mime_type=result.item.content_type,
                    file_path=logical_path,
                    folder_id=folder_id,
                )
            except Exception:
                logger.error(f"Batch upload of {result.remote.object_id} reached remote storage but the file row was not written", exc_info=True)
                self._leave_for_sweep(operation.id, user_id, source.size, "file row insert failed")
                outcomes.append(UploadOutcome(file_name=source.file_name, error="Failed to save file metadata"))
                continue
            self.operations.resolve(operation.id, OperationStatus.COMMITTED, file_id=file.id)
            outcomes.append(UploadOutcome(file_name=source.file_name, file=file))

        uploaded = sum(1 for outcome in outcomes if outcome.file is not None)
        audit_logger.log_event("files_uploaded", user_id=user_id, uploaded=uploaded, failed=len(outcomes) - uploaded, path=logical_path)
        return outcomes

    async def replace(
        self,
        file_id: uuid.UUID,
        user_id: uuid.UUID,
        data: bytes | BinaryIO,
        file_name: str | None,
        size: int,
        mime_type: str | None = None,
    ) -> File:
        """Swap the content of an owned file; ``storage_used`` moves by new size minus old size."""
        self._check_size(size)
        file = self.get_file(file_id, user_id)
        old_size = file.file_size
        old_key = file.remote_object_id
        file_name = file_name or file.file_name
        mime_type = _guess_mime(file_name, mime_type)
        growth = max(size - old_size, 0)

        self.quota.reserve(user_id, growth)
        try:
            remote_path = self.resolver.remote_path_of(file.folder_id, user_id)
            # Every version gets its own key, the sweep matches intents by key
            new_key = new_object_key(remote_path, file_name)
            operation = self.operations.begin(
                user_id, OperationKind.REPLACE, remote_key=new_key, previous_remote_key=old_key, file_id=file.id, size_delta=growth
            )
        except Exception:
            self.db.rollback()
            self.quota.release(user_id, growth)
            raise

        try:
            remote = await self.storage.replace_file(old_key, data, file_name, size, mime_type, new_object_id=new_key)
        except RemoteStorageError:
            # The old object may already be gone; the sweep decides
            self._leave_for_sweep(operation.id, user_id, growth, "remote replace failed")
            raise

        try:
            file = self.files.update_file(file, remote_object_id=remote.object_id, file_size=size, mime_type=mime_type, file_name=file_name)
            self.quota.release(user_id, max(old_size - size, 0))
        except Exception:
            logger.error(f"Replace of file {file_id} reached remote storage but the file row was not updated", exc_info=True)
            self._leave_for_sweep(operation.id, user_id, growth, "file row update failed")
            raise

        self.operations.resolve(operation.id, OperationStatus.COMMITTED)
        audit_logger.log_event("file_replaced", user_id=user_id, file_id=file.id, old_size=old_size, new_size=size)
        return file

    async def delete(self, file_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Remove an owned file remotely, then locally, and give its bytes back (floored at zero)."""
        file = self.get_file(file_id, user_id)
        size = file.file_size
        operation = self.operations.begin(user_id, OperationKind.DELETE, remote_key=file.remote_object_id, file_id=file.id)

        try:
            await self.storage.delete_file(file.remote_object_id)
        except RemoteStorageError:
            self.operations.settle_reservation(operation.id, note="remote delete failed")
            raise

        try:
            self.files.delete_file(file, commit=False)
            self.quota.release(user_id, size, commit=False)
            self.db.commit()
        except Exception:
            logger.error(f"Delete of file {file_id} reached remote storage but the file row was not removed", exc_info=True)
            self.db.rollback()
            raise

        self.operations.resolve(operation.id, OperationStatus.COMMITTED)
        audit_logger.log_event("file_deleted", user_id=user_id, file_id=file_id, size=size)

    async def move(self, file_id: uuid.UUID, user_id: uuid.UUID, new_path: str | None = None, folder_id: uuid.UUID | None = None) -> File:
        """Move an owned file to another logical folder, creating the folder chain as needed."""
        file = self.get_file(file_id, user_id)
        old_key = file.remote_object_id
        target_folder_id = self._target_folder(user_id, new_path, folder_id)
        logical_path = self.resolver.logical_path_of(target_folder_id, user_id)
        if target_folder_id == file.folder_id and logical_path == file.file_path:
            return file

        remote_path = self.resolver.remote_path_of(target_folder_id, user_id)
        new_key = new_object_key(remote_path, file.file_name)
        operation = self.operations.begin(
            user_id,
            OperationKind.MOVE,
            remote_key=new_key,
            previous_remote_key=old_key,
            file_id=file.id,
            target_path=logical_path,
            target_folder_id=target_folder_id,
        )

        try:
            remote = await self.storage.move_file(old_key, remote_path, new_object_id=new_key)
        except RemoteStorageError:
            self.operations.settle_reservation(operation.id, note="remote move failed")
            raise

        try:
            file = self.files.update_file(file, file_path=logical_path, folder_id=target_folder_id, remote_object_id=remote.object_id)
        except Exception:
            logger.error(f"Move of file {file_id} reached remote storage but the file row was not updated", exc_info=True)
            self.db.rollback()
            raise

        self.operations.resolve(operation.id, OperationStatus.COMMITTED)
        audit_logger.log_event("file_moved", user_id=user_id, file_id=file.id, path=logical_path)
        return file

    async def get_download_url(self, file_id: uuid.UUID, user_id: uuid.UUID) -> str:
        file = self.get_file(file_id, user_id)
        return await self.storage.get_download_url(file.remote_object_id, file.file_name)

    async def open_stream(self, file_id: uuid.UUID, user_id: uuid.UUID) -> tuple[File, RemoteStream]:
        file = self.get_file(file_id, user_id)
        stream = await self.storage.get_file_stream(file.remote_object_id)
        return file, stream
