from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cloudvault.auth_utils import get_current_user
from cloudvault.db import get_db
from cloudvault.errors import QuotaExceeded
from cloudvault.logger import audit_logger
from cloudvault.models.user import User
from cloudvault.repositories.plan_repository import PlanRepository
from cloudvault.repositories.user_repository import UserRepository
from cloudvault.schemas.auth import MeResponse, UpdateMeRequest
from cloudvault.schemas.plan import ChoosePlanRequest, PlanResponse, StorageUsageResponse
from cloudvault.services.quota import QuotaAccountant

router = APIRouter(tags=["user"])


@router.get("/me", response_model=MeResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return MeResponse.from_user(current_user)


@router.put("/me", response_model=MeResponse)
def update_me(req: UpdateMeRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    user = UserRepository(db).update_profile(current_user.id, req.first_name, req.last_name)
    return MeResponse.from_user(user)


@router.get("/me/storage", response_model=StorageUsageResponse)
def get_my_storage(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return StorageUsageResponse.from_usage(QuotaAccountant(db).usage(current_user.id))


@router.get("/plans", response_model=list[PlanResponse])
def list_plans(db: Session = Depends(get_db)):
    return [PlanResponse.from_plan(plan) for plan in PlanRepository(db).list_plans()]


@router.put("/me/plan", response_model=MeResponse)
def choose_plan(req: ChoosePlanRequest, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Switch plans. Refused when the files already stored would not fit the new limit."""
    plan = PlanRepository(db).get_plan(req.plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    if not current_user.is_admin and not QuotaAccountant(db).can_switch_plan(current_user.id, plan):
        raise QuotaExceeded("Current storage usage exceeds the selected plan's limit")
    previous = current_user.plan_id
    user = UserRepository(db).assign_plan(current_user.id, plan.id)
    audit_logger.log_event("plan_changed", user_id=current_user.id, previous_plan=previous, plan=plan.id)
    return MeResponse.from_user(user)
