from decimal import Decimal

from pydantic import BaseModel, Field, field_serializer, model_validator

SLUG_PATTERN = r"^[a-z0-9][a-z0-9_-]*$"


class PlanResponse(BaseModel):
    id: str
    name: str
    storage_limit: int
    price_per_month: Decimal
    api_calls_per_hour: int

    @field_serializer("storage_limit")
    def serialize_storage_limit(self, value: int) -> str:
        # Byte counts above 2**53 are not safe as JSON numbers
        return str(value)

    @field_serializer("price_per_month")
    def serialize_price(self, value: Decimal) -> str:
        return f"{value:.2f}"

    @classmethod
    def from_plan(cls, plan) -> "PlanResponse":
        return cls(id=plan.id, name=plan.name, storage_limit=plan.storage_limit, price_per_month=plan.price_per_month, api_calls_per_hour=plan.api_calls_per_hour)


class PlanCreateRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, pattern=SLUG_PATTERN)
    name: str = Field(..., min_length=1, max_length=255)
    storage_limit: int = Field(..., ge=0, description="Bytes")
    price_per_month: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    api_calls_per_hour: int = Field(1000, ge=0)


class PlanUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    storage_limit: int | None = Field(None, ge=0)
    price_per_month: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    api_calls_per_hour: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_payload(self):
        if all(value is None for value in (self.name, self.storage_limit, self.price_per_month, self.api_calls_per_hour)):
            raise ValueError("At least one field must be provided for update")
        return self


class ChoosePlanRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, max_length=64)


class StorageUsageResponse(BaseModel):
    """Byte counts are decimal strings; ``storage_limit`` is null for unlimited accounts."""

    storage_used: str
    storage_limit: str | None
    storage_available: str | None
    percentage: float

    @classmethod
    def from_usage(cls, usage) -> "StorageUsageResponse":
        return cls(
            storage_used=str(usage.used),
            storage_limit=None if usage.limit is None else str(usage.limit),
            storage_available=None if usage.available is None else str(usage.available),
            percentage=usage.percentage,
        )
