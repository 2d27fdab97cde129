from sqlalchemy import select, update

from cloudvault.models.credentials import StorageCredential
from cloudvault.repositories.base_repository import BaseRepository


class CredentialRepository(BaseRepository):
    def get_active(self) -> StorageCredential | None:
        stmt = select(StorageCredential).where(StorageCredential.is_active.is_(True)).order_by(StorageCredential.updated_at.desc()).limit(1)
        return self.db.execute(stmt).scalars().first()

    def upsert(self, endpoint: str, bucket: str, region: str, access_key: str, secret_key: str) -> StorageCredential:
        """Store new shared credentials and retire the previous active row."""
        self.db.execute(update(StorageCredential).where(StorageCredential.is_active.is_(True)).values(is_active=False))
        credential = StorageCredential(endpoint=endpoint, bucket=bucket, region=region, access_key=access_key, secret_key=secret_key, is_active=True)
        self.db.add(credential)
        self.db.commit()
        self.db.refresh(credential)
        return credential
