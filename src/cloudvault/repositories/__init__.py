# Repositories package

from .api_key_repository import ApiKeyRepository
from .base_repository import BaseRepository
from .credential_repository import CredentialRepository
from .developer_repository import DeveloperRepository
from .file_repository import FileRepository
from .folder_repository import FolderRepository
from .operation_repository import OperationRepository
from .plan_repository import PlanRepository
from .user_repository import UserRepository

__all__ = [
    "ApiKeyRepository",
    "BaseRepository",
    "CredentialRepository",
    "DeveloperRepository",
    "FileRepository",
    "FolderRepository",
    "OperationRepository",
    "PlanRepository",
    "UserRepository",
]
