import uuid
from typing import Any

from sqlalchemy import func, or_, select

from cloudvault.models.storage import File
from cloudvault.repositories.base_repository import BaseRepository


class FileRepository(BaseRepository):
    def create_file(
        self,
        user_id: uuid.UUID,
        remote_object_id: str,
        file_name: str,
        file_size: int,
        mime_type: str | None,
        file_path: str,
        folder_id: uuid.UUID | None = None,
    ) -> File:
        file = File(
            id=uuid.uuid4(),
            user_id=user_id,
            folder_id=folder_id,
            remote_object_id=remote_object_id,
            file_name=file_name,
            file_size=file_size,
            mime_type=mime_type,
            file_path=file_path,
        )
        self.db.add(file)
        self.db.commit()
        self.db.refresh(file)
        return file

    def get_file_by_id(self, file_id: uuid.UUID) -> File | None:
        return self.db.get(File, file_id)

    def get_file_by_remote_object_id(self, remote_object_id: str) -> File | None:
        stmt = select(File).where(File.remote_object_id == remote_object_id)
        return self.db.execute(stmt).scalars().first()

    def get_files_by_user_id(self, user_id: uuid.UUID, folder_id: uuid.UUID | None = None) -> list[File]:
        stmt = select(File).where(File.user_id == user_id)
        if folder_id is not None:
            stmt = stmt.where(File.folder_id == folder_id)
        stmt = stmt.order_by(File.uploaded_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def page_files_by_user_id(self, user_id: uuid.UUID, page: int, size: int) -> tuple[list[File], int]:
        total = self.db.execute(select(func.count()).select_from(File).where(File.user_id == user_id)).scalar() or 0
        stmt = select(File).where(File.user_id == user_id).order_by(File.uploaded_at.desc()).offset((page - 1) * size).limit(size)
        return list(self.db.execute(stmt).scalars().all()), total

    def search_files(self, user_id: uuid.UUID, query: str, mime_type: str | None = None) -> list[File]:
        """Case-insensitive substring match on file name or logical path, owner-scoped."""
        stmt = select(File).where(File.user_id == user_id)
        if query:
            stmt = stmt.where(or_(File.file_name.icontains(query, autoescape=True), File.file_path.icontains(query, autoescape=True)))
        if mime_type:
            stmt = stmt.where(File.mime_type.icontains(mime_type, autoescape=True))
        stmt = stmt.order_by(File.file_name.asc())
        return list(self.db.execute(stmt).scalars().all())

    def update_file(self, file: File, **changes: Any) -> File:
        for field, value in changes.items():
            setattr(file, field, value)
        self.db.commit()
        self.db.refresh(file)
        return file

    def delete_file(self, file: File, commit: bool = True) -> None:
        self.db.delete(file)
        if commit:
            self.db.commit()
