import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from cloudvault.models.api_key import ApiKey
from cloudvault.models.user import DEFAULT_PLAN_ID, User
from cloudvault.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository):
    def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: str | None = None,
        last_name: str | None = None,
        plan_id: str | None = DEFAULT_PLAN_ID,
        is_admin: bool = False,
    ) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            plan_id=plan_id,
            is_admin=is_admin,
            storage_used=0,
        )
        self.db.add(user)
        try:
            self.db.commit()
            self.db.refresh(user)
        except IntegrityError:
            self.db.rollback()
            raise
        return user

    def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_user_by_id(self, user_id: uuid.UUID) -> User | None:
        stmt = select(User).where(User.id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_users(self, page: int, size: int) -> tuple[list[User], int]:
        total = self.db.execute(select(func.count()).select_from(User)).scalar() or 0
        stmt = select(User).order_by(User.created_at.desc()).offset((page - 1) * size).limit(size)
        return list(self.db.execute(stmt).scalars().all()), total

    def update_profile(self, user_id: uuid.UUID, first_name: str | None, last_name: str | None) -> User | None:
        user = self.get_user_by_id(user_id)
        if not user:
            return None
        user.first_name = first_name
        user.last_name = last_name
        self.db.commit()
        self.db.refresh(user)
        return user

    def assign_plan(self, user_id: uuid.UUID, plan_id: str) -> User | None:
        user = self.get_user_by_id(user_id)
        if not user:
            return None
        user.plan_id = plan_id
        self.db.commit()
        self.db.refresh(user)
        return user

    def set_active(self, user_id: uuid.UUID, is_active: bool) -> User | None:
        """Suspend or reactivate a user. Suspension also deactivates every API key they own."""
        user = self.get_user_by_id(user_id)
        if not user:
            return None
        user.is_active = is_active
        if not is_active:
            self.db.execute(update(ApiKey).where(ApiKey.user_id == user_id).values(is_active=False))
        self.db.commit()
        self.db.refresh(user)
        return user
