import uuid
from datetime import UTC, datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import mapped_column, relationship

from cloudvault.db import Base

DEFAULT_PLAN_ID = "basic"


class Plan(Base):
    __tablename__ = "plans"

    id = mapped_column(String(64), primary_key=True)
    name = mapped_column(String(255), nullable=False)
    # Bytes
    storage_limit = mapped_column(BigInteger, nullable=False)
    price_per_month = mapped_column(Numeric(10, 2), nullable=False, default=0)
    api_calls_per_hour = mapped_column(Integer, nullable=False, default=1000)
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    users = relationship("User", back_populates="plan")

    __table_args__ = (CheckConstraint("storage_limit >= 0", name="plans_storage_limit_nonnegative"),)


class User(Base):
    __tablename__ = "users"

    id = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, unique=True, nullable=False)
    email = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash = mapped_column(String(255), nullable=False)
    first_name = mapped_column(String(255), nullable=True)
    last_name = mapped_column(String(255), nullable=True)
    plan_id = mapped_column(String(64), ForeignKey("plans.id"), nullable=True)
    storage_used = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    is_admin = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_active = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    plan = relationship(Plan, back_populates="users")
    files = relationship("File", back_populates="owner", passive_deletes=True)
    folders = relationship("Folder", back_populates="owner", passive_deletes=True)
    api_keys = relationship("ApiKey", back_populates="owner", passive_deletes=True)

    __table_args__ = (CheckConstraint("storage_used >= 0", name="users_storage_used_nonnegative"),)
