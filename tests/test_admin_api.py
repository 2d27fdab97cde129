"""Tests for the administrative JSON API."""

import uuid

import pytest
from fastapi.testclient import TestClient

from cloudvault.models.operation import OperationKind
from cloudvault.repositories.api_key_repository import ApiKeyRepository
from cloudvault.repositories.credential_repository import CredentialRepository
from cloudvault.repositories.operation_repository import OperationRepository
from cloudvault.services.api_key_gate import ApiKeyGate
from cloudvault.services.developer_service import DeveloperService
from tests.helpers import GIB, age_operation, auth_headers, set_storage_used

CREDENTIALS = {
    "endpoint": "https://s3.example.com",
    "bucket": "vault-bucket",
    "region": "eu-central-1",
    "access_key": "AKIAEXAMPLE",
    "secret_key": "super-secret",
}


@pytest.fixture
def application(db_session, user):
    return DeveloperService(db_session).submit_application(user.id, "Invoice Sync", "Nightly invoice export job", "200 uploads a day")


class TestAdminAccess:
    @pytest.mark.parametrize("path", ["/admin/plans", "/admin/users", "/admin/applications", "/admin/operations", "/admin/storage/credentials"])
    def test_non_admin_forbidden(self, client: TestClient, user, path):
        response = client.get(path, headers=auth_headers(client, user.email))
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_anonymous(self, client: TestClient):
        assert client.get("/admin/plans").status_code == 401


class TestPlanAdmin:
    def test_crud(self, client: TestClient, admin_headers):
        created = client.post(
            "/admin/plans",
            json={"id": "team", "name": "Team", "storage_limit": 50 * GIB, "price_per_month": "49.00", "api_calls_per_hour": 10000},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["storage_limit"] == str(50 * GIB)

        updated = client.put("/admin/plans/team", json={"price_per_month": "39.50"}, headers=admin_headers)
        assert updated.json()["price_per_month"] == "39.50"
        assert updated.json()["name"] == "Team"

        assert client.delete("/admin/plans/team", headers=admin_headers).status_code == 204
        assert "team" not in [plan["id"] for plan in client.get("/admin/plans", headers=admin_headers).json()]

    def test_duplicate_plan(self, client: TestClient, admin_headers):
        response = client.post("/admin/plans", json={"id": "basic", "name": "Again", "storage_limit": 1}, headers=admin_headers)
        assert response.status_code == 409

    def test_plan_in_use_cannot_be_deleted(self, client: TestClient, admin_headers):
        assert client.delete("/admin/plans/basic", headers=admin_headers).status_code == 409

    def test_empty_update(self, client: TestClient, admin_headers):
        assert client.put("/admin/plans/basic", json={}, headers=admin_headers).status_code == 422

    def test_unknown_plan(self, client: TestClient, admin_headers):
        assert client.put("/admin/plans/nope", json={"name": "X"}, headers=admin_headers).status_code == 404
        assert client.delete("/admin/plans/nope", headers=admin_headers).status_code == 404


class TestUserAdmin:
    def test_list_users(self, client: TestClient, admin_headers, user):
        data = client.get("/admin/users", headers=admin_headers).json()
        assert data["total"] == 2
        assert {item["email"] for item in data["users"]} == {"admin@example.com", "owner@example.com"}
        assert all(isinstance(item["storage_used"], str) for item in data["users"])

    def test_suspend_and_reactivate(self, client: TestClient, db_session, admin_headers, user):
        _, token = ApiKeyGate(db_session).issue_key(user.id, "ci")

        suspended = client.post(f"/admin/users/{user.id}/suspend", headers=admin_headers)
        assert suspended.json()["is_active"] is False
        assert client.post("/auth/login", json={"email": user.email, "password": "password123"}).status_code == 403
        assert client.get("/api/v1/files", headers={"Authorization": f"Bearer {token}"}).status_code == 401

        reactivated = client.post(f"/admin/users/{user.id}/reactivate", headers=admin_headers)
        assert reactivated.json()["is_active"] is True
        assert client.post("/auth/login", json={"email": user.email, "password": "password123"}).status_code == 200

    def test_admin_cannot_suspend_self(self, client: TestClient, admin_user, admin_headers):
        response = client.post(f"/admin/users/{admin_user.id}/suspend", headers=admin_headers)
        assert response.status_code == 400

    def test_assign_plan_ignores_usage(self, client: TestClient, db_session, admin_headers, user):
        set_storage_used(db_session, user, 3 * GIB)
        response = client.put(f"/admin/users/{user.id}/plan", json={"plan_id": "basic"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["plan_id"] == "basic"

    def test_assign_unknown_plan(self, client: TestClient, admin_headers, user):
        response = client.put(f"/admin/users/{user.id}/plan", json={"plan_id": "nope"}, headers=admin_headers)
        assert response.status_code == 404


class TestApplicationReview:
    def test_list_by_status(self, client: TestClient, admin_headers, application):
        pending = client.get("/admin/applications", params={"status": "pending"}, headers=admin_headers).json()
        approved = client.get("/admin/applications", params={"status": "approved"}, headers=admin_headers).json()
        assert pending["total"] == 1
        assert approved["total"] == 0

    def test_approve_issues_trial_key(self, client: TestClient, db_session, admin_headers, application, user):
        response = client.post(f"/admin/applications/{application.id}/review", json={"action": "approve"}, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["application"]["status"] == "approved"
        key = ApiKeyRepository(db_session).get_by_id(uuid.UUID(data["api_key_id"]))
        assert key.is_trial is True
        assert key.trial_expires_at is not None

        revealed = client.get(f"/api-keys/{data['api_key_id']}/reveal", headers=auth_headers(client, user.email))
        assert revealed.status_code == 200
        assert revealed.json()["token"].startswith("cvk_")

    def test_reject_requires_reason(self, client: TestClient, admin_headers, application):
        response = client.post(f"/admin/applications/{application.id}/review", json={"action": "reject"}, headers=admin_headers)
        assert response.status_code == 422

    def test_reject(self, client: TestClient, admin_headers, application):
        response = client.post(
            f"/admin/applications/{application.id}/review",
            json={"action": "reject", "rejection_reason": "Not enough detail"},
            headers=admin_headers,
        )
        assert response.json()["application"]["status"] == "rejected"
        assert response.json()["api_key_id"] is None

    def test_review_twice(self, client: TestClient, admin_headers, application):
        client.post(f"/admin/applications/{application.id}/review", json={"action": "approve"}, headers=admin_headers)
        response = client.post(f"/admin/applications/{application.id}/review", json={"action": "approve"}, headers=admin_headers)
        assert response.status_code == 409

    def test_admin_revokes_any_key(self, client: TestClient, db_session, admin_headers, user):
        api_key, _ = ApiKeyGate(db_session).issue_key(user.id, "ci")
        response = client.delete(f"/admin/api-keys/{api_key.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False


class TestStorageCredentials:
    def test_not_configured(self, client: TestClient, admin_headers, monkeypatch):
        for name in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY", "S3_SECRET_KEY"):
            monkeypatch.delenv(name, raising=False)
        assert client.get("/admin/storage/credentials", headers=admin_headers).json() == {
            "configured": False,
            "source": None,
            "endpoint": None,
            "bucket": None,
            "region": None,
            "access_key": None,
        }

    def test_update_after_successful_test(self, client: TestClient, db_session, storage, admin_headers):
        response = client.put("/admin/storage/credentials", json=CREDENTIALS, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "database"
        assert "secret_key" not in data
        assert storage.credentials.bucket == "vault-bucket"
        assert storage.credentials.use_ssl is True
        assert CredentialRepository(db_session).get_active().bucket == "vault-bucket"
        assert client.get("/admin/storage/credentials", headers=admin_headers).json()["source"] == "database"

    def test_update_rejected_when_test_fails(self, client: TestClient, db_session, storage, admin_headers):
        storage.connection_ok = False

        response = client.put("/admin/storage/credentials", json=CREDENTIALS, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Remote storage credentials are invalid"
        assert CredentialRepository(db_session).get_active() is None
        assert storage.credentials.bucket == "fake"

    def test_connection_test(self, client: TestClient, storage, admin_headers):
        assert client.post("/admin/storage/test", json=CREDENTIALS, headers=admin_headers).json()["success"] is True
        storage.connection_ok = False
        assert client.post("/admin/storage/test", json=CREDENTIALS, headers=admin_headers).json()["success"] is False

    def test_reconnect(self, client: TestClient, storage, admin_headers):
        assert client.post("/admin/storage/reconnect", headers=admin_headers).status_code == 200
        assert storage.reconnects == 1

    def test_reconnect_failure(self, client: TestClient, storage, admin_headers):
        storage.fail.add("reconnect")
        assert client.post("/admin/storage/reconnect", headers=admin_headers).status_code == 502


class TestIntentLog:
    def test_list_operations(self, client: TestClient, db_session, admin_headers, user):
        OperationRepository(db_session).begin(user.id, OperationKind.UPLOAD, remote_key=f"{user.id}/a.txt", size_delta=10)

        operations = client.get("/admin/operations", params={"status": "pending"}, headers=admin_headers).json()

        assert len(operations) == 1
        assert operations[0]["kind"] == "upload"
        assert client.get("/admin/operations", params={"status": "committed"}, headers=admin_headers).json() == []

    def test_trigger_reconciliation(self, client: TestClient, db_session, storage, admin_headers, user):
        set_storage_used(db_session, user, 10)
        storage.objects[f"{user.id}/a.txt"] = (b"0123456789", "text/plain")
        operation = OperationRepository(db_session).begin(user.id, OperationKind.UPLOAD, remote_key=f"{user.id}/a.txt", size_delta=10)
        age_operation(db_session, operation.id)

        response = client.post("/admin/reconciliation", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["successful"] == 1
        assert data["results"][0]["resolution"] == "reconciled"
        assert storage.objects == {}
