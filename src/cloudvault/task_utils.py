from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from cloudvault.db import get_session_maker


@contextmanager
def task_db_session() -> Iterator[Session]:
    """Session for one task run, committed when the block exits cleanly."""
    session = get_session_maker()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass
class BatchTaskResult:
    """Per-item outcome of a task that works through a list, e.g. a reconciliation sweep."""

    total: int
    successful: int = 0
    failed: int = 0
    results: list[dict[str, Any]] = field(default_factory=list)

    def add_success(self, item_id: str, **details: Any) -> None:
        self.successful += 1
        self.results.append({"id": item_id, "status": "success", **details})

    def add_error(self, item_id: str, message: str, exception: BaseException | None = None) -> None:
        self.failed += 1
        entry = {"id": item_id, "status": "error", "message": message}
        if exception is not None:
            entry["exception"] = repr(exception)
        self.results.append(entry)

    def to_dict(self) -> dict[str, Any]:
        return {"status": "complete", **asdict(self)}
