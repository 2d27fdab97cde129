"""Domain errors raised by the storage core and how they map onto HTTP."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cloudvault.metrics import record_domain_error

logger = logging.getLogger(__name__)


class CloudVaultError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundOrUnauthorized(CloudVaultError):
    """The resource does not exist or belongs to someone else.

    Both cases share one error so callers cannot discover other users' files.
    """

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "File not found"


class QuotaExceeded(CloudVaultError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_message = "Storage quota exceeded"


class RemoteStorageError(CloudVaultError):
    """A call to the remote object store failed. The SDK error is kept as ``__cause__``."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Remote storage operation failed"


class FileTooLarge(CloudVaultError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_message = "File exceeds the maximum upload size"


class InvalidCredentials(CloudVaultError):
    default_message = "Remote storage credentials are invalid"


class AuthError(CloudVaultError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid API key"


class RateLimitExceeded(CloudVaultError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many API requests, please try again later"


class ConflictError(CloudVaultError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class FolderAlreadyExists(ConflictError):
    default_message = "Folder with this name already exists in this location"


class FolderNotEmpty(ConflictError):
    default_message = "Folder is not empty"


async def cloudvault_error_handler(request: Request, exc: CloudVaultError) -> JSONResponse:
    record_domain_error(type(exc).__name__, exc.status_code)
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc.__cause__)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CloudVaultError, cloudvault_error_handler)  # type: ignore[arg-type]


__all__ = [
    "AuthError",
    "CloudVaultError",
    "ConflictError",
    "FileTooLarge",
    "FolderAlreadyExists",
    "FolderNotEmpty",
    "InvalidCredentials",
    "NotFoundOrUnauthorized",
    "QuotaExceeded",
    "RateLimitExceeded",
    "RemoteStorageError",
    "register_exception_handlers",
]
