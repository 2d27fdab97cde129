"""Administrative endpoints: plans, users, developer applications, shared storage credentials and the intent log."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from cloudvault.api.api_keys import get_api_key_gate
from cloudvault.api.developer import get_developer_service
from cloudvault.auth_utils import get_current_admin
from cloudvault.db import get_db
from cloudvault.dependencies import get_remote_storage, load_remote_credentials
from cloudvault.errors import InvalidCredentials
from cloudvault.logger import audit_logger
from cloudvault.models.api_key import ApplicationStatus
from cloudvault.models.operation import OperationStatus
from cloudvault.models.user import User
from cloudvault.remote_storage import RemoteCredentials, RemoteStorageAdapter
from cloudvault.repositories.credential_repository import CredentialRepository
from cloudvault.repositories.operation_repository import OperationRepository
from cloudvault.repositories.plan_repository import PlanRepository
from cloudvault.repositories.user_repository import UserRepository
from cloudvault.schemas.admin import (
    AdminUserListResponse,
    AdminUserResponse,
    ApplicationListResponse,
    ApplicationReviewRequest,
    ApplicationReviewResponse,
    AssignPlanRequest,
    ConnectionTestResponse,
    OperationResponse,
    StorageCredentialRequest,
    StorageCredentialResponse,
)
from cloudvault.schemas.api_key import ApiKeyResponse, DeveloperApplicationResponse
from cloudvault.schemas.plan import PlanCreateRequest, PlanResponse, PlanUpdateRequest
from cloudvault.services.api_key_gate import ApiKeyGate
from cloudvault.services.developer_service import DeveloperService
from cloudvault.services.file_lifecycle import LifecycleSettings
from cloudvault.services.reconciliation import Reconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# Plans


@router.get("/plans", response_model=list[PlanResponse])
def list_plans(db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    return [PlanResponse.from_plan(plan) for plan in PlanRepository(db).list_plans()]


@router.post("/plans", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
def create_plan(request: PlanCreateRequest, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    plan = PlanRepository(db).create_plan(request.id, request.name, request.storage_limit, request.price_per_month, request.api_calls_per_hour)
    audit_logger.log_event("plan_created", plan=plan.id, admin_id=admin.id)
    return PlanResponse.from_plan(plan)


@router.put("/plans/{plan_id}", response_model=PlanResponse)
def update_plan(plan_id: str, request: PlanUpdateRequest, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    plan = PlanRepository(db).update_plan(plan_id, **request.model_dump(exclude_none=True))
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    audit_logger.log_event("plan_updated", plan=plan.id, admin_id=admin.id)
    return PlanResponse.from_plan(plan)


@router.delete("/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_plan(plan_id: str, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    if not PlanRepository(db).delete_plan(plan_id):
        raise HTTPException(status_code=404, detail="Plan not found")
    audit_logger.log_event("plan_deleted", plan=plan_id, admin_id=admin.id)


# Users


@router.get("/users", response_model=AdminUserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    users, total = UserRepository(db).list_users(page, size)
    return AdminUserListResponse(users=[AdminUserResponse.model_validate(user) for user in users], total=total, page=page, size=size)


def _set_active(db: Session, user_id: UUID, is_active: bool, admin: User) -> User:
    if user_id == admin.id and not is_active:
        raise HTTPException(status_code=400, detail="Admins cannot suspend themselves")
    user = UserRepository(db).set_active(user_id, is_active)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    audit_logger.log_event("user_suspended" if not is_active else "user_reactivated", user_id=user_id, admin_id=admin.id)
    return user


@router.post("/users/{user_id}/suspend", response_model=AdminUserResponse)
def suspend_user(user_id: UUID, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    return _set_active(db, user_id, False, admin)


@router.post("/users/{user_id}/reactivate", response_model=AdminUserResponse)
def reactivate_user(user_id: UUID, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    return _set_active(db, user_id, True, admin)


@router.put("/users/{user_id}/plan", response_model=AdminUserResponse)
def assign_plan(user_id: UUID, request: AssignPlanRequest, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    """Admins may assign any plan, even one the user's current usage exceeds."""
    if PlanRepository(db).get_plan(request.plan_id) is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    user = UserRepository(db).assign_plan(user_id, request.plan_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    audit_logger.log_event("plan_assigned", user_id=user_id, plan=request.plan_id, admin_id=admin.id)
    return user


# Developer applications and keys


@router.get("/applications", response_model=ApplicationListResponse)
def list_applications(
    status_filter: ApplicationStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    service: DeveloperService = Depends(get_developer_service),
    admin: User = Depends(get_current_admin),
):
    applications, total = service.list_all(page, size, status_filter)
    return ApplicationListResponse(
        applications=[DeveloperApplicationResponse.model_validate(application) for application in applications],
        total=total,
        page=page,
        size=size,
    )


@router.post("/applications/{application_id}/review", response_model=ApplicationReviewResponse)
def review_application(
    application_id: UUID,
    request: ApplicationReviewRequest,
    service: DeveloperService = Depends(get_developer_service),
    admin: User = Depends(get_current_admin),
):
    application, api_key = service.review(application_id, request.action == "approve", admin.id, request.rejection_reason)
    return ApplicationReviewResponse(
        application=DeveloperApplicationResponse.model_validate(application),
        api_key_id=api_key.id if api_key is not None else None,
    )


@router.delete("/api-keys/{key_id}", response_model=ApiKeyResponse)
def revoke_api_key(key_id: UUID, gate: ApiKeyGate = Depends(get_api_key_gate), admin: User = Depends(get_current_admin)):
    return gate.revoke_any(key_id, admin.id)


# Shared storage credentials


@router.get("/storage/credentials", response_model=StorageCredentialResponse)
def get_storage_credentials(db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    record = CredentialRepository(db).get_active()
    credentials = load_remote_credentials(db)
    if credentials is None:
        return StorageCredentialResponse(configured=False)
    return StorageCredentialResponse(
        configured=True,
        source="database" if record is not None else "environment",
        endpoint=credentials.endpoint,
        bucket=credentials.bucket,
        region=credentials.region,
        access_key=credentials.access_key,
    )


def _to_credentials(request: StorageCredentialRequest) -> RemoteCredentials:
    return RemoteCredentials(
        endpoint=request.endpoint,
        bucket=request.bucket,
        access_key=request.access_key,
        secret_key=request.secret_key,
        region=request.region,
        use_ssl=request.endpoint.startswith("https://"),
    )


@router.put("/storage/credentials", response_model=StorageCredentialResponse)
async def update_storage_credentials(
    request: StorageCredentialRequest,
    db: Session = Depends(get_db),
    storage: RemoteStorageAdapter = Depends(get_remote_storage),
    admin: User = Depends(get_current_admin),
):
    """Store new shared credentials after they pass a connection test."""
    credentials = _to_credentials(request)
    if not await storage.test_connection(credentials):
        raise InvalidCredentials()

    CredentialRepository(db).upsert(request.endpoint, request.bucket, request.region, request.access_key, request.secret_key)
    await storage.configure(credentials)
    audit_logger.log_event("storage_credentials_updated", bucket=request.bucket, admin_id=admin.id)
    return StorageCredentialResponse(
        configured=True,
        source="database",
        endpoint=credentials.endpoint,
        bucket=credentials.bucket,
        region=credentials.region,
        access_key=credentials.access_key,
    )


@router.post("/storage/test", response_model=ConnectionTestResponse)
async def test_storage_connection(
    request: StorageCredentialRequest,
    storage: RemoteStorageAdapter = Depends(get_remote_storage),
    admin: User = Depends(get_current_admin),
):
    if await storage.test_connection(_to_credentials(request)):
        return ConnectionTestResponse(success=True, message="Connection successful")
    return ConnectionTestResponse(success=False, message="Could not connect with the given credentials")


@router.post("/storage/reconnect", response_model=ConnectionTestResponse)
async def reconnect_storage(storage: RemoteStorageAdapter = Depends(get_remote_storage), admin: User = Depends(get_current_admin)):
    await storage.reconnect()
    return ConnectionTestResponse(success=True, message="Reconnected")


# Intent log


@router.get("/operations", response_model=list[OperationResponse])
def list_operations(
    status_filter: OperationStatus | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return OperationRepository(db).list_recent(limit, status_filter)


@router.post("/reconciliation")
async def run_reconciliation(
    grace_minutes: int | None = Query(None, ge=0),
    db: Session = Depends(get_db),
    storage: RemoteStorageAdapter = Depends(get_remote_storage),
    admin: User = Depends(get_current_admin),
):
    """Run a sweep over stale pending operations inline and return its tally."""
    grace = LifecycleSettings().reconcile_grace_minutes if grace_minutes is None else grace_minutes
    result = await Reconciler(db, storage).sweep(grace_minutes=grace)
    audit_logger.log_event("reconciliation_triggered", admin_id=admin.id, total=result.total)
    return result.to_dict()
