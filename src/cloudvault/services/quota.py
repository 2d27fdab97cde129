"""Per-user storage accounting against the plan ceiling."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import case, or_, select, update
from sqlalchemy.orm import Session

from cloudvault.errors import NotFoundOrUnauthorized, QuotaExceeded
from cloudvault.models.user import Plan, User

logger = logging.getLogger(__name__)


@dataclass
class StorageUsage:
    used: int
    limit: int | None

    @property
    def available(self) -> int | None:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)

    @property
    def percentage(self) -> float:
        if not self.limit:
            return 0.0
        return round(self.used / self.limit * 100, 2)


class QuotaAccountant:
    """Reads and moves ``users.storage_used``.

    ``reserve`` is a single conditional UPDATE, so two concurrent uploads can
    never both pass the ceiling check. Admins are unlimited.
    """

    def __init__(self, db: Session):
        self.db = db

    def _plan_limit(self):
        return select(Plan.storage_limit).where(Plan.id == User.plan_id).correlate(User).scalar_subquery()

    def usage(self, user_id: uuid.UUID) -> StorageUsage:
        row = self.db.execute(
            select(User.storage_used, User.is_admin, Plan.storage_limit).outerjoin(Plan, Plan.id == User.plan_id).where(User.id == user_id)
        ).one_or_none()
        if row is None:
            raise NotFoundOrUnauthorized("User not found")
        used, is_admin, limit = row
        return StorageUsage(used=int(used or 0), limit=None if is_admin else (int(limit) if limit is not None else 0))

    def would_exceed(self, user_id: uuid.UUID, additional_bytes: int) -> bool:
        """True when ``storage_used + additional_bytes`` is over the plan limit.

        Unknown users and users without a plan always exceed.
        """
        try:
            usage = self.usage(user_id)
        except NotFoundOrUnauthorized:
            return True
        if usage.limit is None:
            return False
        return usage.used + additional_bytes > usage.limit

    def reserve(self, user_id: uuid.UUID, size: int) -> None:
        """Atomically add ``size`` bytes if the result stays within the plan limit.

        Raises:
            QuotaExceeded: nothing was added
        """
        if size <= 0:
            return
        stmt = (
            update(User)
            .where(User.id == user_id, or_(User.is_admin.is_(True), User.storage_used + size <= self._plan_limit()))
            .values(storage_used=User.storage_used + size)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        if result.rowcount == 0:
            logger.info(f"Quota exceeded for user {user_id}: +{size} bytes refused")
            raise QuotaExceeded()

    def release(self, user_id: uuid.UUID, size: int, commit: bool = True) -> None:
        """Subtract ``size`` bytes, never going below zero."""
        if size <= 0:
            return
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(storage_used=case((User.storage_used > size, User.storage_used - size), else_=0))
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
        if commit:
            self.db.commit()

    def adjust(self, user_id: uuid.UUID, delta: int) -> None:
        """Signed change: positive deltas are reserved, negative ones released."""
        if delta > 0:
            self.reserve(user_id, delta)
        elif delta < 0:
            self.release(user_id, -delta)

    def can_switch_plan(self, user_id: uuid.UUID, plan: Plan) -> bool:
        return self.usage(user_id).used <= plan.storage_limit
