"""Admin panel for CloudVault."""

from cloudvault.admin.auth import AdminAuth
from cloudvault.admin.views import (
    ApiKeyAdmin,
    DeveloperApplicationAdmin,
    FileAdmin,
    FolderAdmin,
    PendingOperationAdmin,
    PlanAdmin,
    StorageCredentialAdmin,
    UserAdmin,
)

ADMIN_VIEWS = [
    UserAdmin,
    PlanAdmin,
    FileAdmin,
    FolderAdmin,
    ApiKeyAdmin,
    DeveloperApplicationAdmin,
    StorageCredentialAdmin,
    PendingOperationAdmin,
]

__all__ = [
    "ADMIN_VIEWS",
    "AdminAuth",
    "ApiKeyAdmin",
    "DeveloperApplicationAdmin",
    "FileAdmin",
    "FolderAdmin",
    "PendingOperationAdmin",
    "PlanAdmin",
    "StorageCredentialAdmin",
    "UserAdmin",
]
