import uuid
from datetime import UTC, datetime

from sqlalchemy import func, select

from cloudvault.models.api_key import ApplicationStatus, DeveloperApplication
from cloudvault.repositories.base_repository import BaseRepository


class DeveloperRepository(BaseRepository):
    def create_application(self, user_id: uuid.UUID, system_name: str, system_description: str, expected_usage: str, website_url: str | None) -> DeveloperApplication:
        application = DeveloperApplication(
            id=uuid.uuid4(),
            user_id=user_id,
            system_name=system_name,
            system_description=system_description,
            expected_usage=expected_usage,
            website_url=website_url,
            status=ApplicationStatus.PENDING,
        )
        self.db.add(application)
        self.db.commit()
        self.db.refresh(application)
        return application

    def get_application(self, application_id: uuid.UUID) -> DeveloperApplication | None:
        return self.db.get(DeveloperApplication, application_id)

    def get_pending_for_user(self, user_id: uuid.UUID) -> DeveloperApplication | None:
        stmt = select(DeveloperApplication).where(DeveloperApplication.user_id == user_id, DeveloperApplication.status == ApplicationStatus.PENDING).limit(1)
        return self.db.execute(stmt).scalars().first()

    def get_applications_by_user(self, user_id: uuid.UUID) -> list[DeveloperApplication]:
        stmt = select(DeveloperApplication).where(DeveloperApplication.user_id == user_id).order_by(DeveloperApplication.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def list_applications(self, page: int, size: int, status: ApplicationStatus | None = None) -> tuple[list[DeveloperApplication], int]:
        count_stmt = select(func.count()).select_from(DeveloperApplication)
        stmt = select(DeveloperApplication)
        if status is not None:
            count_stmt = count_stmt.where(DeveloperApplication.status == status)
            stmt = stmt.where(DeveloperApplication.status == status)
        total = self.db.execute(count_stmt).scalar() or 0
        stmt = stmt.order_by(DeveloperApplication.created_at.desc()).offset((page - 1) * size).limit(size)
        return list(self.db.execute(stmt).scalars().all()), total

    def mark_reviewed(self, application: DeveloperApplication, status: ApplicationStatus, reviewer_id: uuid.UUID, rejection_reason: str | None = None) -> DeveloperApplication:
        application.status = status
        application.reviewed_by = reviewer_id
        application.rejection_reason = rejection_reason if status == ApplicationStatus.REJECTED else None
        application.reviewed_at = datetime.now(UTC)
        self.db.commit()
        self.db.refresh(application)
        return application
