import uuid
from datetime import UTC, datetime

from sqlalchemy import select, update

from cloudvault.models.operation import OperationKind, OperationStatus, PendingOperation
from cloudvault.repositories.base_repository import BaseRepository


class OperationRepository(BaseRepository):
    def begin(
        self,
        user_id: uuid.UUID,
        kind: OperationKind,
        remote_key: str | None,
        previous_remote_key: str | None = None,
        file_id: uuid.UUID | None = None,
        size_delta: int = 0,
        target_path: str | None = None,
        target_folder_id: uuid.UUID | None = None,
    ) -> PendingOperation:
        operation = PendingOperation(
            id=uuid.uuid4(),
            user_id=user_id,
            kind=kind,
            status=OperationStatus.PENDING,
            remote_key=remote_key,
            previous_remote_key=previous_remote_key,
            file_id=file_id,
            size_delta=size_delta,
            target_path=target_path,
            target_folder_id=target_folder_id,
        )
        self.db.add(operation)
        self.db.commit()
        self.db.refresh(operation)
        return operation

    def get(self, operation_id: uuid.UUID) -> PendingOperation | None:
        return self.db.get(PendingOperation, operation_id)

    def resolve(self, operation_id: uuid.UUID, status: OperationStatus, note: str | None = None, file_id: uuid.UUID | None = None) -> None:
        values: dict = {"status": status, "resolved_at": datetime.now(UTC)}
        if note is not None:
            values["note"] = note
        if file_id is not None:
            values["file_id"] = file_id
        self.db.execute(update(PendingOperation).where(PendingOperation.id == operation_id).values(**values).execution_options(synchronize_session=False))
        self.db.commit()

    def settle_reservation(self, operation_id: uuid.UUID, note: str | None = None, commit: bool = True) -> None:
        """Mark the reserved bytes of a still-pending operation as already released."""
        values: dict = {"size_delta": 0}
        if note is not None:
            values["note"] = note
        self.db.execute(update(PendingOperation).where(PendingOperation.id == operation_id).values(**values).execution_options(synchronize_session=False))
        if commit:
            self.db.commit()

    def list_stale_pending(self, older_than: datetime, limit: int = 500) -> list[PendingOperation]:
        stmt = (
            select(PendingOperation)
            .where(PendingOperation.status == OperationStatus.PENDING, PendingOperation.created_at < older_than)
            .order_by(PendingOperation.created_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_recent(self, limit: int = 100, status: OperationStatus | None = None) -> list[PendingOperation]:
        stmt = select(PendingOperation)
        if status is not None:
            stmt = stmt.where(PendingOperation.status == status)
        stmt = stmt.order_by(PendingOperation.created_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())
