import logging
import uuid
from datetime import UTC, datetime, timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from cloudvault.errors import ConflictError, NotFoundOrUnauthorized
from cloudvault.logger import audit_logger
from cloudvault.models.api_key import ApiKey, ApplicationStatus, DeveloperApplication
from cloudvault.repositories.developer_repository import DeveloperRepository
from cloudvault.services.api_key_gate import ApiKeyGate

logger = logging.getLogger(__name__)


class DeveloperSettings(BaseSettings):
    trial_duration_days: int = 14

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


class DeveloperService:
    """Developer API access: users apply, an admin approves and a trial key is issued."""

    def __init__(self, db: Session, settings: DeveloperSettings | None = None):
        self.db = db
        self.settings = settings or DeveloperSettings()
        self.repo = DeveloperRepository(db)
        self.gate = ApiKeyGate(db)

    def submit_application(self, user_id: uuid.UUID, system_name: str, system_description: str, expected_usage: str, website_url: str | None = None) -> DeveloperApplication:
        if self.repo.get_pending_for_user(user_id) is not None:
            raise ConflictError("An application is already pending review")
        application = self.repo.create_application(user_id, system_name, system_description, expected_usage, website_url)
        audit_logger.log_event("developer_application_submitted", user_id=user_id, application_id=application.id)
        return application

    def list_applications(self, user_id: uuid.UUID) -> list[DeveloperApplication]:
        return self.repo.get_applications_by_user(user_id)

    def list_all(self, page: int, size: int, status: ApplicationStatus | None = None) -> tuple[list[DeveloperApplication], int]:
        return self.repo.list_applications(page, size, status)

    def review(
        self, application_id: uuid.UUID, approve: bool, reviewer_id: uuid.UUID, rejection_reason: str | None = None
    ) -> tuple[DeveloperApplication, ApiKey | None]:
        """Approve or reject a pending application.

        Approval issues a trial key valid for ``trial_duration_days``; its token
        is only retrievable through the reveal endpoint.
        """
        application = self.repo.get_application(application_id)
        if application is None:
            raise NotFoundOrUnauthorized("Application not found")
        if application.status != ApplicationStatus.PENDING:
            raise ConflictError("Application has already been reviewed")

        status = ApplicationStatus.APPROVED if approve else ApplicationStatus.REJECTED
        application = self.repo.mark_reviewed(application, status, reviewer_id, rejection_reason)

        api_key = None
        if approve:
            trial_expires_at = datetime.now(UTC) + timedelta(days=self.settings.trial_duration_days)
            api_key, _ = self.gate.issue_key(
                application.user_id,
                f"{application.system_name} - API Key",
                is_trial=True,
                trial_expires_at=trial_expires_at,
                application_id=application.id,
            )
            logger.info(f"Issued trial API key {api_key.id} for {application.system_name}, expires {trial_expires_at.isoformat()}")

        audit_logger.log_event("developer_application_reviewed", application_id=application.id, status=status.value, reviewer_id=reviewer_id)
        return application, api_key
