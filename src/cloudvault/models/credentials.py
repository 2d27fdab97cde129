import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import mapped_column

from cloudvault.db import Base


class StorageCredential(Base):
    """Credentials of the shared bucket every tenant's files live in."""

    __tablename__ = "storage_credentials"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    endpoint = mapped_column(String(1024), nullable=False)
    bucket = mapped_column(String(255), nullable=False)
    region = mapped_column(String(64), nullable=False, default="us-east-1")
    access_key = mapped_column(String(255), nullable=False)
    secret_key = mapped_column(String(255), nullable=False)
    is_active = mapped_column(Boolean, nullable=False, default=True)
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False)
