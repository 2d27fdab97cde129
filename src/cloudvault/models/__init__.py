from .api_key import ApiKey, ApiUsage, ApplicationStatus, DeveloperApplication
from .credentials import StorageCredential
from .operation import OperationKind, OperationStatus, PendingOperation
from .storage import File, Folder
from .user import DEFAULT_PLAN_ID, Plan, User

__all__ = [
    "DEFAULT_PLAN_ID",
    "ApiKey",
    "ApiUsage",
    "ApplicationStatus",
    "DeveloperApplication",
    "File",
    "Folder",
    "OperationKind",
    "OperationStatus",
    "PendingOperation",
    "Plan",
    "StorageCredential",
    "User",
]
