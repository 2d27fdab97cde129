"""
Engine, sessions and the declarative base.

Everything is created on first use from ``POSTGRES_*`` settings, so importing
the models never needs a reachable database.
"""

import logging
import time
from collections.abc import Generator
from datetime import UTC, datetime
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class DatabaseSettings(BaseSettings):
    db: str
    user: str
    password: str
    host: str
    port: int = 5432

    pool_size: int = 20
    max_overflow: int = 20
    pool_timeout_seconds: int = 20
    pool_recycle_seconds: int = 1800
    # Uploads hold their session across remote calls, so this only warns
    slow_session_seconds: float = 5.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="POSTGRES_", extra="ignore")

    @property
    def database_url(self) -> str:  # pragma: no cover
        return f"postgresql+psycopg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:  # pragma: no cover
    return DatabaseSettings()


def get_database_url() -> str:  # pragma: no cover
    return get_database_settings().database_url


@lru_cache(maxsize=1)
def get_engine() -> Engine:  # pragma: no cover
    settings = get_database_settings()
    return create_engine(
        settings.database_url,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout_seconds,
        pool_recycle=settings.pool_recycle_seconds,
        pool_pre_ping=True,
    )


@lru_cache(maxsize=1)
def get_session_maker() -> sessionmaker[Session]:  # pragma: no cover
    return sessionmaker(bind=get_engine(), expire_on_commit=True)


def get_db() -> Generator[Session]:  # pragma: no cover
    """Request-scoped session, rolled back if the request fails."""
    threshold = get_database_settings().slow_session_seconds
    session = get_session_maker()()
    opened = time.monotonic()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        held = time.monotonic() - opened
        if held > threshold:
            logger.warning("Database session held for %.1fs", held)


def get_session_factory() -> sessionmaker[Session]:  # pragma: no cover
    """Sessions for work that outlives the request, such as post-response tasks."""
    return get_session_maker()


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from backends that drop tzinfo (SQLite)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
