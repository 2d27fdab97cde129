"""
Reconciliation sweep over the intent log.

An intent that is still pending after the grace period belongs to an operation
that failed or died between its remote call and its local write. The sweep
looks at both sides and either confirms the operation, finishes or undoes it,
or flags it as failed when the file row points at an object that no longer
exists.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from cloudvault.errors import RemoteStorageError
from cloudvault.logger import audit_logger
from cloudvault.models.operation import OperationKind, OperationStatus, PendingOperation
from cloudvault.remote_storage import RemoteStorageAdapter
from cloudvault.repositories.file_repository import FileRepository
from cloudvault.repositories.folder_repository import FolderRepository
from cloudvault.repositories.operation_repository import OperationRepository
from cloudvault.services.quota import QuotaAccountant
from cloudvault.task_utils import BatchTaskResult

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(self, db: Session, storage: RemoteStorageAdapter):
        self.db = db
        self.storage = storage
        self.operations = OperationRepository(db)
        self.files = FileRepository(db)
        self.folders = FolderRepository(db)
        self.quota = QuotaAccountant(db)

    async def sweep(self, grace_minutes: int = 60, limit: int = 500) -> BatchTaskResult:
        cutoff = datetime.now(UTC) - timedelta(minutes=grace_minutes)
        stale = self.operations.list_stale_pending(cutoff, limit)
        result = BatchTaskResult(total=len(stale))

        for operation in stale:
            operation_id = str(operation.id)
            try:
                status, note = await self._resolve(operation)
            except RemoteStorageError as e:
                # Stays pending, picked up again on the next sweep
                logger.warning(f"Reconciliation of operation {operation_id} hit a remote error: {e.message}")
                self.db.rollback()
                result.add_error(operation_id, e.message, e.__cause__ if isinstance(e.__cause__, Exception) else None)
                continue
            self.operations.resolve(operation.id, status, note=note)
            result.add_success(operation_id, kind=operation.kind.value, resolution=status.value, note=note)
            audit_logger.log_event("operation_reconciled", operation_id=operation.id, kind=operation.kind.value, resolution=status.value, note=note)

        if stale:
            logger.info(f"Reconciliation sweep: {result.successful} resolved, {result.failed} left pending")
        return result

    async def _resolve(self, operation: PendingOperation) -> tuple[OperationStatus, str]:
        handlers = {
            OperationKind.UPLOAD: self._resolve_upload,
            OperationKind.REPLACE: self._resolve_replace,
            OperationKind.DELETE: self._resolve_delete,
            OperationKind.MOVE: self._resolve_move,
        }
        return await handlers[operation.kind](operation)

    async def _resolve_upload(self, operation: PendingOperation) -> tuple[OperationStatus, str]:
        if operation.remote_key and self.files.get_file_by_remote_object_id(operation.remote_key) is not None:
            return OperationStatus.COMMITTED, "file row present"
        removed = bool(operation.remote_key) and await self.storage.delete_if_exists(operation.remote_key)
        self.quota.release(operation.user_id, operation.size_delta)
        return OperationStatus.RECONCILED, "removed orphaned object" if removed else "nothing was stored"

    async def _resolve_replace(self, operation: PendingOperation) -> tuple[OperationStatus, str]:
        file = self.files.get_file_by_id(operation.file_id) if operation.file_id else None
        if file is not None and file.remote_object_id == operation.remote_key:
            return OperationStatus.COMMITTED, "file row present"

        if operation.remote_key:
            await self.storage.delete_if_exists(operation.remote_key)
        self.quota.release(operation.user_id, operation.size_delta)
        if file is None:
            return OperationStatus.RECONCILED, "file row gone, new object removed"
        if not await self.storage.object_exists(file.remote_object_id):
            return OperationStatus.FAILED, "file row references a missing object"
        return OperationStatus.RECONCILED, "replacement undone"

    async def _resolve_delete(self, operation: PendingOperation) -> tuple[OperationStatus, str]:
        file = self.files.get_file_by_id(operation.file_id) if operation.file_id else None
        if file is None:
            return OperationStatus.COMMITTED, "file row gone"
        if await self.storage.object_exists(file.remote_object_id):
            return OperationStatus.ABORTED, "remote object still present"
        user_id, size = file.user_id, file.file_size
        self.files.delete_file(file, commit=False)
        self.quota.release(user_id, size, commit=False)
        self.db.commit()
        return OperationStatus.RECONCILED, "file row removed"

    async def _resolve_move(self, operation: PendingOperation) -> tuple[OperationStatus, str]:
        file = self.files.get_file_by_id(operation.file_id) if operation.file_id else None
        if file is None:
            if operation.remote_key:
                await self.storage.delete_if_exists(operation.remote_key)
            return OperationStatus.RECONCILED, "file row gone"
        if file.remote_object_id == operation.remote_key:
            return OperationStatus.COMMITTED, "file row present"

        new_exists = bool(operation.remote_key) and await self.storage.object_exists(operation.remote_key)
        old_exists = await self.storage.object_exists(file.remote_object_id)
        if new_exists and not old_exists:
            folder_id = operation.target_folder_id
            if folder_id is not None and self.folders.get_folder_by_id(folder_id) is None:
                folder_id = None
            self.files.update_file(file, remote_object_id=operation.remote_key, file_path=operation.target_path or "/", folder_id=folder_id)
            return OperationStatus.RECONCILED, "move completed"
        if new_exists:
            await self.storage.delete_if_exists(operation.remote_key)
            return OperationStatus.RECONCILED, "stray copy removed"
        if old_exists:
            return OperationStatus.ABORTED, "object was not moved"
        return OperationStatus.FAILED, "file row references a missing object"
