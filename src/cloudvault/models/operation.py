import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import mapped_column

from cloudvault.db import Base


class OperationKind(enum.StrEnum):
    UPLOAD = "upload"
    REPLACE = "replace"
    DELETE = "delete"
    MOVE = "move"


class OperationStatus(enum.StrEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    ABORTED = "aborted"
    RECONCILED = "reconciled"
    FAILED = "failed"


class PendingOperation(Base):
    """Intent record written before a remote mutation and closed after the local write."""

    __tablename__ = "pending_operations"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # No FK: the file row may be gone by the time the sweep looks at it
    file_id = mapped_column(Uuid(as_uuid=True), nullable=True)
    kind = mapped_column(Enum(OperationKind, native_enum=False, length=16), nullable=False)
    status = mapped_column(Enum(OperationStatus, native_enum=False, length=16), nullable=False, default=OperationStatus.PENDING, index=True)
    remote_key = mapped_column(String(1024), nullable=True)
    previous_remote_key = mapped_column(String(1024), nullable=True)
    # Destination of a move, so the sweep can finish it
    target_path = mapped_column(String(1024), nullable=True)
    target_folder_id = mapped_column(Uuid(as_uuid=True), nullable=True)
    size_delta = mapped_column(BigInteger, nullable=False, default=0)
    note = mapped_column(Text, nullable=True)
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True)
    resolved_at = mapped_column(DateTime(timezone=True), nullable=True)
