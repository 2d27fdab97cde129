from sqladmin import ModelView

from cloudvault.models.api_key import ApiKey, DeveloperApplication
from cloudvault.models.credentials import StorageCredential
from cloudvault.models.operation import PendingOperation
from cloudvault.models.storage import File, Folder
from cloudvault.models.user import Plan, User


class UserAdmin(ModelView, model=User):
    name = "User"
    name_plural = "Users"
    icon = "fa-solid fa-user"

    column_list = [User.id, User.email, User.plan_id, User.storage_used, User.is_admin, User.is_active, User.created_at]
    column_searchable_list = [User.email, User.last_name]
    column_sortable_list = [User.email, User.storage_used, User.created_at]
    column_default_sort = [(User.created_at, True)]

    column_details_list = [User.id, User.email, User.first_name, User.last_name, User.plan, User.storage_used, User.is_admin, User.is_active, User.created_at]

    # storage_used is owned by the quota accountant
    form_excluded_columns = [User.password_hash, User.storage_used, User.created_at, User.files, User.folders, User.api_keys]

    # Registration via API only
    can_create = False
    can_edit = True
    can_delete = True
    can_view_details = True


class PlanAdmin(ModelView, model=Plan):
    name = "Plan"
    name_plural = "Plans"
    icon = "fa-solid fa-layer-group"

    column_list = [Plan.id, Plan.name, Plan.storage_limit, Plan.price_per_month, Plan.api_calls_per_hour]
    column_sortable_list = [Plan.storage_limit, Plan.price_per_month]
    form_excluded_columns = [Plan.created_at, Plan.users]

    can_create = True
    can_edit = True
    can_delete = False
    can_view_details = True


class FileAdmin(ModelView, model=File):
    name = "File"
    name_plural = "Files"
    icon = "fa-solid fa-file"

    column_list = [File.id, File.user_id, File.file_name, File.file_path, File.file_size, File.mime_type, File.uploaded_at]
    column_searchable_list = [File.file_name, File.remote_object_id]
    column_sortable_list = [File.uploaded_at, File.file_size, File.file_name]
    column_default_sort = [(File.uploaded_at, True)]

    column_details_list = [File.id, File.owner, File.folder, File.file_name, File.file_path, File.remote_object_id, File.file_size, File.mime_type, File.uploaded_at, File.updated_at]

    # Read-only, a row without its remote object would break quota accounting
    can_create = False
    can_edit = False
    can_delete = False
    can_view_details = True


class FolderAdmin(ModelView, model=Folder):
    name = "Folder"
    name_plural = "Folders"
    icon = "fa-solid fa-folder"

    column_list = [Folder.id, Folder.user_id, Folder.name, Folder.parent_id, Folder.created_at]
    column_searchable_list = [Folder.name]
    column_sortable_list = [Folder.name, Folder.created_at]

    can_create = False
    can_edit = False
    can_delete = False
    can_view_details = True


class ApiKeyAdmin(ModelView, model=ApiKey):
    name = "API Key"
    name_plural = "API Keys"
    icon = "fa-solid fa-key"

    column_list = [ApiKey.id, ApiKey.user_id, ApiKey.name, ApiKey.key_prefix, ApiKey.is_active, ApiKey.is_trial, ApiKey.trial_expires_at, ApiKey.last_used_at]
    column_searchable_list = [ApiKey.name, ApiKey.key_prefix]
    column_sortable_list = [ApiKey.created_at, ApiKey.last_used_at]
    column_default_sort = [(ApiKey.created_at, True)]

    column_details_exclude_list = [ApiKey.key_hash]
    form_columns = [ApiKey.name, ApiKey.is_active, ApiKey.trial_expires_at]

    can_create = False
    can_edit = True
    can_delete = False
    can_view_details = True


class DeveloperApplicationAdmin(ModelView, model=DeveloperApplication):
    name = "Developer Application"
    name_plural = "Developer Applications"
    icon = "fa-solid fa-code"

    column_list = [
        DeveloperApplication.id,
        DeveloperApplication.user_id,
        DeveloperApplication.system_name,
        DeveloperApplication.status,
        DeveloperApplication.created_at,
        DeveloperApplication.reviewed_at,
    ]
    column_searchable_list = [DeveloperApplication.system_name]
    column_sortable_list = [DeveloperApplication.created_at, DeveloperApplication.status]
    column_default_sort = [(DeveloperApplication.created_at, True)]

    # Reviews go through the API so the trial key gets issued
    can_create = False
    can_edit = False
    can_delete = False
    can_view_details = True


class StorageCredentialAdmin(ModelView, model=StorageCredential):
    name = "Storage Credential"
    name_plural = "Storage Credentials"
    icon = "fa-solid fa-server"

    column_list = [StorageCredential.id, StorageCredential.endpoint, StorageCredential.bucket, StorageCredential.region, StorageCredential.is_active, StorageCredential.updated_at]
    column_details_exclude_list = [StorageCredential.secret_key]

    can_create = False
    can_edit = False
    can_delete = False
    can_view_details = True


class PendingOperationAdmin(ModelView, model=PendingOperation):
    name = "Operation"
    name_plural = "Operations"
    icon = "fa-solid fa-clock-rotate-left"

    column_list = [
        PendingOperation.id,
        PendingOperation.user_id,
        PendingOperation.kind,
        PendingOperation.status,
        PendingOperation.remote_key,
        PendingOperation.size_delta,
        PendingOperation.created_at,
        PendingOperation.resolved_at,
    ]
    column_searchable_list = [PendingOperation.remote_key]
    column_sortable_list = [PendingOperation.created_at, PendingOperation.status]
    column_default_sort = [(PendingOperation.created_at, True)]

    can_create = False
    can_edit = False
    can_delete = False
    can_view_details = True
