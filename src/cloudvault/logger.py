"""Audit trail: one JSON object per event on the ``cloudvault.audit`` logger."""

import enum
import json
import logging
from datetime import UTC, date, datetime
from typing import Any


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredLogger:
    """Writes audit events through the normal logging handlers.

    Field values JSON has no type for (UUIDs, enums, timestamps) are written as
    strings. Keys of a dict passed as ``extra`` become top-level fields.
    """

    def __init__(self, name: str = "cloudvault.audit"):
        self._logger = logging.getLogger(name)

    def log_event(self, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
        extra = fields.pop("extra", None)
        if isinstance(extra, dict):
            fields.update(extra)

        entry = {"timestamp": datetime.now(UTC).isoformat(), "event": event}
        entry.update((key, _jsonable(value)) for key, value in fields.items())
        self._logger.log(level, json.dumps(entry))


audit_logger = StructuredLogger()

__all__ = ["StructuredLogger", "audit_logger"]
