import posixpath
import uuid
from datetime import UTC, datetime, timedelta
from typing import cast

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from cloudvault.auth_utils import hash_password
from cloudvault.models.operation import PendingOperation
from cloudvault.models.user import User
from cloudvault.remote_storage import file_name_of
from cloudvault.repositories.user_repository import UserRepository

DEFAULT_PASSWORD = "password123"
GIB = 1024 * 1024 * 1024
# bcrypt is slow on purpose; hash the shared test password once
_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)


def create_user(db: Session, email: str, plan_id: str | None = "basic", is_admin: bool = False, storage_used: int = 0) -> User:
    user = UserRepository(db).create_user(email, _PASSWORD_HASH, plan_id=plan_id, is_admin=is_admin)
    if storage_used:
        set_storage_used(db, user, storage_used)
    return user


def set_storage_used(db: Session, user: User, value: int) -> None:
    user.storage_used = value
    db.commit()


def storage_used(db: Session, user_id: uuid.UUID) -> int:
    db.expire_all()
    return UserRepository(db).get_user_by_id(user_id).storage_used


def key_parts(object_id: str) -> tuple[str, str]:
    """Directory and original file name of a generated object key."""
    return posixpath.dirname(object_id), file_name_of(object_id)


def stored_as(storage, directory: str, file_name: str) -> list[str]:
    return [key for key in storage.objects if key_parts(key) == (directory, file_name)]


def auth_headers(client: TestClient, email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {cast(str, response.json()['tokens']['access_token'])}"}


def age_operation(db: Session, operation_id: uuid.UUID, minutes: int = 120) -> None:
    """Push an intent record back in time so the sweep treats it as stale."""
    operation = db.get(PendingOperation, operation_id)
    operation.created_at = datetime.now(UTC) - timedelta(minutes=minutes)
    db.commit()
