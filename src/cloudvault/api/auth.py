from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudvault.auth_utils import REFRESH, hash_password, issue_token_pair, resolve_token_user, verify_password
from cloudvault.db import get_db
from cloudvault.logger import audit_logger
from cloudvault.models.user import DEFAULT_PLAN_ID
from cloudvault.repositories.plan_repository import PlanRepository
from cloudvault.repositories.user_repository import UserRepository
from cloudvault.schemas.auth import LoginRequest, LoginResponse, RefreshRequest, RegisterRequest, RegisterResponse, TokenPair

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register_user(request: RegisterRequest, db: Session = Depends(get_db)):
    # New accounts start on the default plan when it exists
    plan = PlanRepository(db).get_plan(DEFAULT_PLAN_ID)
    try:
        user = UserRepository(db).create_user(
            request.email,
            hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            plan_id=plan.id if plan else None,
        )
    except IntegrityError as err:
        raise HTTPException(status_code=400, detail="Email already registered") from err

    audit_logger.log_event("user_registered", user_id=user.id, plan_id=user.plan_id)
    return RegisterResponse(id=str(user.id), email=user.email)


@router.post("/login", response_model=LoginResponse)
def login_user(request: LoginRequest, db: Session = Depends(get_db)):
    user = UserRepository(db).get_user_by_email(request.email)
    if user is None or not verify_password(request.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account suspended")
    return LoginResponse(id=str(user.id), email=user.email, tokens=issue_token_pair(user.id))


@router.post("/refresh", response_model=TokenPair)
def refresh_token(request: RefreshRequest, db: Session = Depends(get_db)):
    user = resolve_token_user(request.refresh_token, REFRESH, db)
    return issue_token_pair(user.id)
