"""Celery worker and beat configuration for the maintenance jobs."""

from functools import lru_cache

from celery import Celery
from celery.schedules import crontab
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

RECONCILE_TASK = "reconcile_pending_operations"
PRUNE_USAGE_TASK = "prune_api_usage"


class CelerySettings(BaseSettings):
    broker_url: str = Field(default="redis://localhost:6379/0", alias="CELERY_BROKER_URL")
    result_backend: str = Field(default="redis://localhost:6379/0", alias="CELERY_RESULT_BACKEND")
    reconcile_minute: int = Field(default=15, ge=0, le=59, alias="RECONCILE_SCHEDULE_MINUTE")
    prune_usage_minute: int = Field(default=45, ge=0, le=59, alias="PRUNE_USAGE_SCHEDULE_MINUTE")
    task_time_limit_seconds: int = Field(default=30 * 60, ge=120, alias="CELERY_TASK_TIME_LIMIT")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def beat_schedule(settings: CelerySettings) -> dict:
    return {
        "reconcile-pending-operations-every-hour": {
            "task": RECONCILE_TASK,
            "schedule": crontab(minute=settings.reconcile_minute),
            # A sweep nobody picked up within the hour is superseded by the next one
            "options": {"expires": 55 * 60},
        },
        "prune-api-usage-every-hour": {
            "task": PRUNE_USAGE_TASK,
            "schedule": crontab(minute=settings.prune_usage_minute),
            "options": {"expires": 55 * 60},
        },
    }


def create_celery_app() -> Celery:
    """Build a Celery app from the current environment."""
    settings = CelerySettings()
    app = Celery("cloudvault", broker=settings.broker_url, backend=settings.result_backend, include=["cloudvault.background_tasks"])
    app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        task_time_limit=settings.task_time_limit_seconds,
        task_soft_time_limit=settings.task_time_limit_seconds - 60,
        result_expires=24 * 60 * 60,
        broker_connection_retry_on_startup=True,
        beat_schedule=beat_schedule(settings),
    )
    return app


@lru_cache(maxsize=1)
def get_celery_app() -> Celery:
    return create_celery_app()


class _LazyCelery:
    """Module-level handle whose app is built on first attribute access."""

    def __getattr__(self, name: str):
        return getattr(get_celery_app(), name)


celery_app = _LazyCelery()


__all__ = ["PRUNE_USAGE_TASK", "RECONCILE_TASK", "celery_app", "create_celery_app", "get_celery_app"]
