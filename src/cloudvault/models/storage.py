import uuid
from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import mapped_column, relationship

from cloudvault.db import Base


class Folder(Base):
    __tablename__ = "folders"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = mapped_column(String(255), nullable=False)
    parent_id = mapped_column(Uuid(as_uuid=True), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    owner = relationship("User", back_populates="folders")
    parent = relationship("Folder", remote_side=[id], back_populates="children")
    children = relationship("Folder", back_populates="parent", passive_deletes=True)
    files = relationship("File", back_populates="folder", passive_deletes=True)

    # Root folders have a NULL parent; on PostgreSQL those still collide. Other
    # backends rely on the lookup-before-create in the folder resolver.
    __table_args__ = (UniqueConstraint("user_id", "parent_id", "name", name="folders_sibling_name_unique", postgresql_nulls_not_distinct=True),)


class File(Base):
    __tablename__ = "files"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    folder_id = mapped_column(Uuid(as_uuid=True), ForeignKey("folders.id", ondelete="SET NULL"), nullable=True, index=True)
    # Object key in the remote bucket, the only link to the stored bytes
    remote_object_id = mapped_column(String(1024), nullable=False)
    file_name = mapped_column(String(255), nullable=False)
    file_size = mapped_column(BigInteger, nullable=False)
    mime_type = mapped_column(String(255), nullable=True)
    # Logical folder path ("/" for the root)
    file_path = mapped_column(String(1024), nullable=False, default="/")
    uploaded_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False)

    owner = relationship("User", back_populates="files")
    folder = relationship(Folder, back_populates="files")
