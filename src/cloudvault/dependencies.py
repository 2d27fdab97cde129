"""
Dependency Injection for the Remote Storage Adapter

The adapter (and the connection manager it owns) is created once during
application startup and shared across all requests.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.orm import Session

from cloudvault.remote_storage import RemoteCredentials, RemoteStorageAdapter, S3Settings
from cloudvault.repositories.credential_repository import CredentialRepository

logger = logging.getLogger(__name__)

# Global instance of the adapter (initialized during app startup)
_remote_storage_instance: RemoteStorageAdapter | None = None


def load_remote_credentials(db: Session) -> RemoteCredentials | None:
    """Active credentials stored by an admin, else the ``S3_*`` environment settings."""
    record = CredentialRepository(db).get_active()
    if record is not None:
        return RemoteCredentials.from_record(record)
    return RemoteCredentials.from_settings(S3Settings())


async def get_remote_storage() -> AsyncGenerator[RemoteStorageAdapter]:
    """Dependency injection function for RemoteStorageAdapter.

    Example:
        @router.get("/files/{file_id}/url")
        async def url(file_id: uuid.UUID, storage: RemoteStorageAdapter = Depends(get_remote_storage)):
            ...
    """
    if _remote_storage_instance is None:
        raise RuntimeError("Remote storage not initialized. Make sure the application lifespan is properly configured.")
    yield _remote_storage_instance


def set_remote_storage_instance(adapter: RemoteStorageAdapter | None) -> None:
    global _remote_storage_instance
    _remote_storage_instance = adapter
    logger.info("Remote storage adapter instance set globally")


def get_remote_storage_instance() -> RemoteStorageAdapter:
    """Get the global adapter outside of route handlers.

    Raises:
        RuntimeError: If the adapter is not initialized
    """
    if _remote_storage_instance is None:
        raise RuntimeError("Remote storage not initialized. Make sure the application lifespan is properly configured.")
    return _remote_storage_instance
