import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from cloudvault.models.storage import File, Folder
from cloudvault.repositories.base_repository import BaseRepository


class FolderRepository(BaseRepository):
    def get_folder_by_id(self, folder_id: uuid.UUID) -> Folder | None:
        return self.db.get(Folder, folder_id)

    def get_folder_by_id_and_owner(self, folder_id: uuid.UUID, user_id: uuid.UUID) -> Folder | None:
        stmt = select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_folder_by_name_and_parent(self, user_id: uuid.UUID, name: str, parent_id: uuid.UUID | None) -> Folder | None:
        parent_clause = Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id
        stmt = select(Folder).where(Folder.user_id == user_id, Folder.name == name, parent_clause).order_by(Folder.created_at.asc()).limit(1)
        return self.db.execute(stmt).scalars().first()

    def get_folders_by_user_id(self, user_id: uuid.UUID) -> list[Folder]:
        stmt = select(Folder).where(Folder.user_id == user_id).order_by(Folder.name.asc())
        return list(self.db.execute(stmt).scalars().all())

    def create_folder(self, user_id: uuid.UUID, name: str, parent_id: uuid.UUID | None) -> Folder:
        folder = Folder(id=uuid.uuid4(), user_id=user_id, name=name, parent_id=parent_id)
        self.db.add(folder)
        try:
            self.db.commit()
            self.db.refresh(folder)
        except IntegrityError:
            self.db.rollback()
            raise
        return folder

    def rename_folder(self, folder: Folder, name: str) -> Folder:
        folder.name = name
        try:
            self.db.commit()
            self.db.refresh(folder)
        except IntegrityError:
            self.db.rollback()
            raise
        return folder

    def is_empty(self, folder_id: uuid.UUID) -> bool:
        subfolders = self.db.execute(select(func.count()).select_from(Folder).where(Folder.parent_id == folder_id)).scalar()
        files = self.db.execute(select(func.count()).select_from(File).where(File.folder_id == folder_id)).scalar()
        return not subfolders and not files

    def delete_folder(self, folder: Folder) -> None:
        self.db.delete(folder)
        self.db.commit()
