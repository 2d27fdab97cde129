from decimal import Decimal

from sqlalchemy import func, select

from cloudvault.errors import ConflictError
from cloudvault.models.user import Plan, User
from cloudvault.repositories.base_repository import BaseRepository

GIB = 1024 * 1024 * 1024

DEFAULT_PLANS = [
    {"id": "basic", "name": "Basic", "storage_limit": 2 * GIB, "price_per_month": Decimal("0"), "api_calls_per_hour": 100},
    {"id": "pro", "name": "Pro", "storage_limit": 5 * GIB, "price_per_month": Decimal("9.99"), "api_calls_per_hour": 1000},
    {"id": "premium", "name": "Premium", "storage_limit": 10 * GIB, "price_per_month": Decimal("19.99"), "api_calls_per_hour": 5000},
]


class PlanRepository(BaseRepository):
    def list_plans(self) -> list[Plan]:
        stmt = select(Plan).order_by(Plan.storage_limit.asc())
        return list(self.db.execute(stmt).scalars().all())

    def get_plan(self, plan_id: str) -> Plan | None:
        return self.db.get(Plan, plan_id)

    def create_plan(self, plan_id: str, name: str, storage_limit: int, price_per_month: Decimal, api_calls_per_hour: int) -> Plan:
        if self.get_plan(plan_id):
            raise ConflictError(f"Plan '{plan_id}' already exists")
        plan = Plan(id=plan_id, name=name, storage_limit=storage_limit, price_per_month=price_per_month, api_calls_per_hour=api_calls_per_hour)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def update_plan(self, plan_id: str, **changes) -> Plan | None:
        plan = self.get_plan(plan_id)
        if not plan:
            return None
        for field, value in changes.items():
            if value is not None:
                setattr(plan, field, value)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def delete_plan(self, plan_id: str) -> bool:
        plan = self.get_plan(plan_id)
        if not plan:
            return False
        in_use = self.db.execute(select(func.count()).select_from(User).where(User.plan_id == plan_id)).scalar()
        if in_use:
            raise ConflictError("Plan is assigned to users")
        self.db.delete(plan)
        self.db.commit()
        return True

    def ensure_default_plans(self) -> int:
        """Insert the stock plans that are missing. Returns how many were created."""
        created = 0
        for data in DEFAULT_PLANS:
            if self.get_plan(data["id"]) is None:
                self.db.add(Plan(**data))
                created += 1
        if created:
            self.db.commit()
        return created
