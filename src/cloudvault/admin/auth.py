"""Session authentication for the SQLAdmin panel."""

import asyncio
import uuid

from sqladmin.authentication import AuthenticationBackend
from sqlalchemy.orm import Session, sessionmaker
from starlette.requests import Request

from cloudvault.auth_utils import verify_password
from cloudvault.db import get_session_maker
from cloudvault.repositories.user_repository import UserRepository


class AdminAuth(AuthenticationBackend):
    """Only active admins may sign in; the session stores nothing but the user id."""

    def __init__(self, secret_key: str, session_factory: sessionmaker[Session] | None = None):
        super().__init__(secret_key=secret_key)
        self._session_factory = session_factory

    def _session(self) -> Session:
        factory = self._session_factory or get_session_maker()
        return factory()

    async def login(self, request: Request) -> bool:
        form = await request.form()
        email = form.get("username")  # SQLAdmin uses 'username' field
        password = form.get("password")
        if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
            return False

        user_id = await asyncio.to_thread(self._check_credentials, email, password)
        if user_id is None:
            return False
        request.session.update({"user_id": user_id})
        return True

    def _check_credentials(self, email: str, password: str) -> str | None:
        with self._session() as db:
            user = UserRepository(db).get_user_by_email(email)
            if not user or not user.is_admin or not user.is_active:
                return None
            if not verify_password(password, user.password_hash):
                return None
            return str(user.id)

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        user_id = request.session.get("user_id")
        if not user_id:
            return False
        return await asyncio.to_thread(self._is_admin, user_id)

    def _is_admin(self, user_id: str) -> bool:
        try:
            parsed_id = uuid.UUID(user_id)
        except ValueError:
            return False
        with self._session() as db:
            user = UserRepository(db).get_user_by_id(parsed_id)
            return bool(user and user.is_admin and user.is_active)
