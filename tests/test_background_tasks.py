"""Tests for the Celery maintenance tasks."""

from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from cloudvault import background_tasks
from cloudvault.background_tasks import prune_api_usage_task, reconcile_pending_operations_task
from cloudvault.celery_app import create_celery_app
from cloudvault.models.api_key import ApiUsage
from cloudvault.models.operation import OperationKind, OperationStatus
from cloudvault.repositories.api_key_repository import ApiKeyRepository
from cloudvault.repositories.operation_repository import OperationRepository
from cloudvault.services.api_key_gate import ApiKeyGate
from tests.helpers import age_operation, set_storage_used, storage_used


@pytest.fixture
def task_env(monkeypatch, db_session: Session, storage):
    """Run the task against the test database and the fake bucket."""

    @contextmanager
    def _session() -> Generator[Session]:
        yield db_session

    monkeypatch.setattr(background_tasks, "task_db_session", _session)
    monkeypatch.setattr(background_tasks, "load_remote_credentials", lambda db: None)
    monkeypatch.setattr(background_tasks, "RemoteStorageAdapter", lambda *args, **kwargs: storage)
    return storage


def _stale_upload(db_session: Session, user, size: int = 10):
    key = f"{user.id}/orphan.bin"
    operation = OperationRepository(db_session).begin(user.id, OperationKind.UPLOAD, remote_key=key, size_delta=size)
    age_operation(db_session, operation.id)
    return operation, key


class TestReconcileTask:
    def test_orphan_upload_is_cleaned(self, task_env, db_session, user):
        set_storage_used(db_session, user, 10)
        operation, key = _stale_upload(db_session, user)
        task_env.objects[key] = (b"0123456789", "application/octet-stream")

        result = reconcile_pending_operations_task.run()

        assert result["status"] == "complete"
        assert result["total"] == 1
        assert result["successful"] == 1
        assert key not in task_env.objects
        assert storage_used(db_session, user.id) == 0
        assert OperationRepository(db_session).get(operation.id).status == OperationStatus.RECONCILED

    def test_remote_error_leaves_operation_pending(self, task_env, db_session, user):
        operation, _ = _stale_upload(db_session, user)
        task_env.fail.add("delete_if_exists")

        result = reconcile_pending_operations_task.run()

        assert result["failed"] == 1
        db_session.expire_all()
        assert OperationRepository(db_session).get(operation.id).status == OperationStatus.PENDING

    def test_grace_period_override(self, task_env, db_session, user):
        _stale_upload(db_session, user)
        result = reconcile_pending_operations_task.run(grace_minutes=24 * 60)
        assert result["total"] == 0

    def test_connection_is_released(self, task_env, db_session, user):
        reconcile_pending_operations_task.run()
        assert task_env.calls[-1] == "clear_connection"

    def test_session_failure_propagates(self, monkeypatch):
        @contextmanager
        def _failing_session():
            raise RuntimeError("database unavailable")
            yield

        monkeypatch.setattr(background_tasks, "task_db_session", _failing_session)

        with pytest.raises(RuntimeError, match="database unavailable"):
            reconcile_pending_operations_task.run()


class TestPruneUsageTask:
    def test_only_records_outside_the_window_are_removed(self, task_env, db_session, user):
        api_key, _ = ApiKeyGate(db_session).issue_key(user.id, "sync")
        keys = ApiKeyRepository(db_session)
        for endpoint in ("/api/v1/files", "/api/v1/folders", "/api/v1/me/storage"):
            keys.record_usage(user.id, api_key.id, endpoint, "GET")
        old = db_session.query(ApiUsage).filter(ApiUsage.endpoint != "/api/v1/me/storage").all()
        for record in old:
            record.created_at = datetime.now(UTC) - timedelta(hours=2)
        db_session.commit()

        result = prune_api_usage_task.run()

        assert result == {"status": "complete", "deleted": 2}
        assert [record.endpoint for record in db_session.query(ApiUsage).all()] == ["/api/v1/me/storage"]

    def test_nothing_to_prune(self, task_env):
        assert prune_api_usage_task.run() == {"status": "complete", "deleted": 0}


class TestSchedule:
    def test_sweep_is_scheduled_hourly(self):
        schedule = create_celery_app().conf.beat_schedule["reconcile-pending-operations-every-hour"]
        assert schedule["task"] == "reconcile_pending_operations"
        assert schedule["schedule"].minute == {15}

    def test_usage_pruning_is_scheduled_hourly(self):
        schedule = create_celery_app().conf.beat_schedule["prune-api-usage-every-hour"]
        assert schedule["task"] == "prune_api_usage"
        assert schedule["schedule"].minute == {45}
        assert schedule["options"] == {"expires": 55 * 60}
