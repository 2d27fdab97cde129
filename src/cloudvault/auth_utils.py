"""
Credentials for the first-party API.

Passwords are stored as bcrypt hashes. Sessions are a pair of signed JWTs: a
short-lived access token sent as a bearer header and a long-lived refresh token
exchanged at ``/auth/refresh``. The ``type`` claim keeps one from being used in
place of the other.
"""

import uuid
from datetime import UTC, datetime, timedelta

import bcrypt
import jwt
from fastapi import BackgroundTasks, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session, sessionmaker

from cloudvault.db import get_db, get_session_factory
from cloudvault.models.user import User
from cloudvault.repositories.user_repository import UserRepository
from cloudvault.schemas.auth import TokenPair
from cloudvault.services.api_key_gate import ApiKeyGate, mark_key_used

ACCESS = "access"
REFRESH = "refresh"


class AuthSettings(BaseSettings):
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_minutes: int = 7200

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def lifetime(self, token_type: str) -> timedelta:
        minutes = self.access_token_expire_minutes if token_type == ACCESS else self.refresh_token_expire_minutes
        return timedelta(minutes=minutes)


authsettings = AuthSettings()

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def issue_token(user_id: uuid.UUID | str, token_type: str) -> str:
    claims = {"sub": str(user_id), "type": token_type, "exp": datetime.now(UTC) + authsettings.lifetime(token_type)}
    return jwt.encode(claims, authsettings.jwt_secret_key, algorithm=authsettings.jwt_algorithm)


def issue_token_pair(user_id: uuid.UUID | str) -> TokenPair:
    return TokenPair(access_token=issue_token(user_id, ACCESS), refresh_token=issue_token(user_id, REFRESH))


def resolve_token_user(token: str, token_type: str, db: Session) -> User:
    """Return the active user a token of ``token_type`` was issued to.

    Raises 401 for anything wrong with the token itself and 403 when the
    account behind a valid token has been suspended.
    """
    try:
        claims = jwt.decode(token, authsettings.jwt_secret_key, algorithms=[authsettings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired") from None
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token") from None

    if claims.get("type") != token_type:
        raise HTTPException(status_code=401, detail="Invalid token type")
    try:
        user_id = uuid.UUID(str(claims.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token") from None

    user = UserRepository(db).get_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account suspended")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return resolve_token_user(credentials.credentials, ACCESS, db)


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


async def get_api_key_user(
    request: Request,
    background_tasks: BackgroundTasks,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> User:
    """Acting user of a developer API request authenticated with an API key.

    ``last_used_at`` is stamped after the response is sent.
    """
    gate = ApiKeyGate(db)
    api_key = await gate.authenticate(credentials.credentials if credentials else None)
    gate.enforce_rate_limit(api_key, request.url.path, request.method)
    background_tasks.add_task(mark_key_used, api_key.id, session_factory)

    user = UserRepository(db).get_user_by_id(api_key.user_id)
    request.state.user_id = api_key.user_id
    request.state.api_key_id = api_key.id
    return user
