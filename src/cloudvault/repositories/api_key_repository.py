import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, func, select, update

from cloudvault.models.api_key import ApiKey, ApiUsage
from cloudvault.repositories.base_repository import BaseRepository


class ApiKeyRepository(BaseRepository):
    def create_api_key(
        self,
        user_id: uuid.UUID,
        name: str,
        key_prefix: str,
        key_hash: str,
        is_trial: bool = False,
        trial_expires_at: datetime | None = None,
        application_id: uuid.UUID | None = None,
    ) -> ApiKey:
        api_key = ApiKey(
            id=uuid.uuid4(),
            user_id=user_id,
            name=name,
            key_prefix=key_prefix,
            key_hash=key_hash,
            is_active=True,
            is_trial=is_trial,
            trial_expires_at=trial_expires_at,
            application_id=application_id,
        )
        self.db.add(api_key)
        self.db.commit()
        self.db.refresh(api_key)
        return api_key

    def get_by_prefix(self, key_prefix: str) -> ApiKey | None:
        stmt = select(ApiKey).where(ApiKey.key_prefix == key_prefix)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_id(self, key_id: uuid.UUID) -> ApiKey | None:
        return self.db.get(ApiKey, key_id)

    def get_by_id_and_owner(self, key_id: uuid.UUID, user_id: uuid.UUID) -> ApiKey | None:
        stmt = select(ApiKey).where(ApiKey.id == key_id, ApiKey.user_id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_api_keys_by_user_id(self, user_id: uuid.UUID) -> list[ApiKey]:
        stmt = select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def deactivate(self, api_key: ApiKey) -> ApiKey:
        api_key.is_active = False
        self.db.commit()
        self.db.refresh(api_key)
        return api_key

    def touch_last_used(self, key_id: uuid.UUID) -> None:
        self.db.execute(update(ApiKey).where(ApiKey.id == key_id).values(last_used_at=datetime.now(UTC)))
        self.db.commit()

    def record_usage(self, user_id: uuid.UUID, key_id: uuid.UUID, endpoint: str, method: str) -> None:
        self.db.add(ApiUsage(user_id=user_id, api_key_id=key_id, endpoint=endpoint, method=method))
        self.db.commit()

    def prune_usage(self, before: datetime) -> int:
        """Drop call records older than ``before``. Returns how many were removed."""
        result = self.db.execute(delete(ApiUsage).where(ApiUsage.created_at < before))
        self.db.commit()
        return result.rowcount or 0

    def count_calls_since(self, user_id: uuid.UUID, since: datetime) -> int:
        stmt = select(func.count()).select_from(ApiUsage).where(ApiUsage.user_id == user_id, ApiUsage.created_at >= since)
        return self.db.execute(stmt).scalar() or 0
