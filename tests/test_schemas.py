"""Tests for Pydantic schemas."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from cloudvault.schemas.admin import AdminUserResponse, ApplicationReviewRequest, StorageCredentialResponse
from cloudvault.schemas.auth import RegisterRequest
from cloudvault.schemas.file import FileMoveRequest
from cloudvault.schemas.folder import FolderCreateRequest, FolderRenameRequest
from cloudvault.schemas.plan import PlanCreateRequest, PlanResponse, PlanUpdateRequest, StorageUsageResponse
from cloudvault.services.quota import StorageUsage


class TestAuthSchemas:
    @pytest.mark.parametrize("invalid_email", ["notanemail", "@example.com", "test@", "test.example.com", ""])
    def test_register_request_invalid_email(self, invalid_email):
        with pytest.raises(ValidationError):
            RegisterRequest(email=invalid_email, password="password123")

    def test_register_request_short_password(self):
        with pytest.raises(ValidationError):
            RegisterRequest(email="test@example.com", password="short")


class TestPlanSchemas:
    def test_byte_counts_and_price_serialize_as_strings(self):
        plan = PlanResponse(id="pro", name="Pro", storage_limit=5 * 1024**3, price_per_month=Decimal("9.9"), api_calls_per_hour=1000)
        data = plan.model_dump(mode="json")
        assert data["storage_limit"] == "5368709120"
        assert data["price_per_month"] == "9.90"

    @pytest.mark.parametrize("plan_id", ["Pro", "-pro", "pro plan", ""])
    def test_plan_id_must_be_a_slug(self, plan_id):
        with pytest.raises(ValidationError):
            PlanCreateRequest(id=plan_id, name="Pro", storage_limit=1)

    def test_negative_limit(self):
        with pytest.raises(ValidationError):
            PlanCreateRequest(id="pro", name="Pro", storage_limit=-1)

    def test_empty_update(self):
        with pytest.raises(ValidationError):
            PlanUpdateRequest()

    def test_usage_of_unlimited_account(self):
        usage = StorageUsageResponse.from_usage(StorageUsage(used=10, limit=None))
        assert usage.storage_used == "10"
        assert usage.storage_limit is None
        assert usage.storage_available is None
        assert usage.percentage == 0.0

    def test_usage_over_limit_has_nothing_available(self):
        usage = StorageUsageResponse.from_usage(StorageUsage(used=150, limit=100))
        assert usage.storage_available == "0"
        assert usage.percentage == 150.0


class TestFileSchemas:
    def test_move_needs_a_target(self):
        with pytest.raises(ValidationError):
            FileMoveRequest()

    def test_move_to_folder(self):
        folder_id = uuid.uuid4()
        assert FileMoveRequest(folder_id=folder_id).folder_id == folder_id

    def test_move_to_root_path(self):
        assert FileMoveRequest(new_path="/").new_path == "/"


class TestFolderSchemas:
    def test_name_is_stripped(self):
        assert FolderCreateRequest(name="  Docs  ").name == "Docs"

    @pytest.mark.parametrize("name", ["", "   ", "a/b"])
    def test_invalid_names(self, name):
        with pytest.raises(ValidationError):
            FolderCreateRequest(name=name)
        with pytest.raises(ValidationError):
            FolderRenameRequest(name=name)


class TestAdminSchemas:
    def test_reject_requires_reason(self):
        with pytest.raises(ValidationError):
            ApplicationReviewRequest(action="reject")

    def test_unknown_action(self):
        with pytest.raises(ValidationError):
            ApplicationReviewRequest(action="maybe")

    def test_approve_without_reason(self):
        assert ApplicationReviewRequest(action="approve").rejection_reason is None

    def test_storage_used_serializes_as_string(self):
        user = AdminUserResponse(
            id=uuid.uuid4(),
            email="a@example.com",
            storage_used=3 * 1024**3,
            is_admin=False,
            is_active=True,
            created_at=datetime.now(UTC),
        )
        assert user.model_dump(mode="json")["storage_used"] == "3221225472"

    def test_credential_response_has_no_secret(self):
        assert "secret_key" not in StorageCredentialResponse.model_fields
