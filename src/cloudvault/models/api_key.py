import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import mapped_column, relationship

from cloudvault.db import Base


class ApplicationStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DeveloperApplication(Base):
    __tablename__ = "developer_applications"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    system_name = mapped_column(String(255), nullable=False)
    system_description = mapped_column(Text, nullable=False)
    website_url = mapped_column(String(1024), nullable=True)
    expected_usage = mapped_column(Text, nullable=False)
    status = mapped_column(Enum(ApplicationStatus, native_enum=False, length=16), nullable=False, default=ApplicationStatus.PENDING)
    reviewed_by = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejection_reason = mapped_column(Text, nullable=True)
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    reviewed_at = mapped_column(DateTime(timezone=True), nullable=True)


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = mapped_column(String(255), nullable=False)
    # Public part of the token, used to find the row without scanning every hash
    key_prefix = mapped_column(String(32), nullable=False, unique=True, index=True)
    key_hash = mapped_column(String(255), nullable=False)
    is_active = mapped_column(Boolean, nullable=False, default=True)
    is_trial = mapped_column(Boolean, nullable=False, default=False)
    trial_expires_at = mapped_column(DateTime(timezone=True), nullable=True)
    application_id = mapped_column(Uuid(as_uuid=True), ForeignKey("developer_applications.id", ondelete="SET NULL"), nullable=True)
    last_used_at = mapped_column(DateTime(timezone=True), nullable=True)
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    owner = relationship("User", back_populates="api_keys")


class ApiUsage(Base):
    __tablename__ = "api_usage"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    api_key_id = mapped_column(Uuid(as_uuid=True), ForeignKey("api_keys.id", ondelete="SET NULL"), nullable=True)
    endpoint = mapped_column(String(1024), nullable=False)
    method = mapped_column(String(16), nullable=False)
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False, index=True)
