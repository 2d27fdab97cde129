"""Prometheus metrics exposed at ``/metrics``."""

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

DOMAIN_ERRORS = Counter(
    "cloudvault_domain_errors_total",
    "Requests answered with a CloudVault domain error",
    ["error", "status_code"],
)


def record_domain_error(error: str, status_code: int) -> None:
    DOMAIN_ERRORS.labels(error=error, status_code=str(status_code)).inc()


def setup_metrics(app: FastAPI) -> None:
    Instrumentator(
        should_group_status_codes=False,
        excluded_handlers=["/metrics"],
    ).instrument(app).expose(app, include_in_schema=False)
