"""Remote storage adapter against a real S3-compatible bucket (MinIO)."""

import asyncio
import io
import uuid

import httpx
import pytest

from cloudvault.errors import RemoteStorageError
from cloudvault.remote_storage import RemoteCredentials, RemoteStorageAdapter, UploadItem, file_name_of
from cloudvault.services.file_lifecycle import FileLifecycleService
from tests.helpers import key_parts, storage_used


async def read_all(adapter: RemoteStorageAdapter, object_id: str) -> bytes:
    stream = await adapter.get_file_stream(object_id)
    return b"".join([chunk async for chunk in stream.chunks])


@pytest.fixture
def prefix() -> str:
    """Key prefix private to one test; the bucket is shared by the whole session."""
    return f"it-{uuid.uuid4().hex[:12]}"


class TestAdapter:
    @pytest.mark.asyncio
    async def test_upload_then_stream(self, minio_storage, prefix):
        remote = await minio_storage.upload_file(b"hello minio", "notes.txt", f"{prefix}/Docs", 11)

        assert key_parts(remote.object_id) == (f"{prefix}/Docs", "notes.txt")
        assert remote.content_type == "text/plain"
        assert await minio_storage.object_exists(f"{prefix}/Docs/")
        assert await read_all(minio_storage, remote.object_id) == b"hello minio"

    @pytest.mark.asyncio
    async def test_presigned_link_serves_the_bytes(self, minio_storage, prefix):
        remote = await minio_storage.upload_file(io.BytesIO(b"signed bytes"), "report.pdf", prefix, 12)

        response = httpx.get(await minio_storage.get_download_url(remote.object_id, "report.pdf"))

        assert response.status_code == 200
        assert response.content == b"signed bytes"
        assert 'filename="report.pdf"' in response.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_concurrent_same_name_uploads(self, minio_storage, prefix):
        first, second = await asyncio.gather(
            minio_storage.upload_file(b"first", "report.pdf", prefix, 5),
            minio_storage.upload_file(b"second", "report.pdf", prefix, 6),
        )

        assert first.object_id != second.object_id
        assert await read_all(minio_storage, first.object_id) == b"first"
        assert await read_all(minio_storage, second.object_id) == b"second"

    @pytest.mark.asyncio
    async def test_batch_upload(self, minio_storage, prefix):
        items = [UploadItem(b"a", "a.txt", 1), UploadItem(b"b", "a.txt", 1), UploadItem(b"c", "c.bin", 1)]

        results = await minio_storage.upload_multiple_files(items, f"{prefix}/Batch")

        assert all(result.ok for result in results)
        assert len({result.remote.object_id for result in results}) == 3

    @pytest.mark.asyncio
    async def test_replace_removes_the_old_object(self, minio_storage, prefix):
        original = await minio_storage.upload_file(b"v1", "doc.txt", prefix, 2)

        replaced = await minio_storage.replace_file(original.object_id, b"version two", "doc.txt", 11)

        assert replaced.object_id != original.object_id
        assert key_parts(replaced.object_id) == (prefix, "doc.txt")
        assert not await minio_storage.object_exists(original.object_id)
        assert await read_all(minio_storage, replaced.object_id) == b"version two"

    @pytest.mark.asyncio
    async def test_move_copies_then_deletes(self, minio_storage, prefix):
        original = await minio_storage.upload_file(b"moving", "a.txt", prefix, 6)

        moved = await minio_storage.move_file(original.object_id, f"{prefix}/Archive/2023")

        assert key_parts(moved.object_id) == (f"{prefix}/Archive/2023", "a.txt")
        assert moved.name == "a.txt"
        assert moved.size == 6
        assert not await minio_storage.object_exists(original.object_id)
        assert await minio_storage.object_exists(f"{prefix}/Archive/")
        assert await read_all(minio_storage, moved.object_id) == b"moving"

    @pytest.mark.asyncio
    async def test_delete(self, minio_storage, prefix):
        remote = await minio_storage.upload_file(b"x", "gone.txt", prefix, 1)

        await minio_storage.delete_file(remote.object_id)

        assert not await minio_storage.object_exists(remote.object_id)
        assert await minio_storage.delete_if_exists(remote.object_id) is False
        with pytest.raises(RemoteStorageError):
            await minio_storage.delete_file(remote.object_id)

    @pytest.mark.asyncio
    async def test_missing_object_stream_fails(self, minio_storage, prefix):
        with pytest.raises(RemoteStorageError):
            await minio_storage.get_file_stream(f"{prefix}/nothing-here.txt")

    @pytest.mark.asyncio
    async def test_connection_checks(self, minio_storage, minio_credentials):
        wrong = RemoteCredentials(
            endpoint=minio_credentials.endpoint,
            bucket=minio_credentials.bucket,
            access_key=minio_credentials.access_key,
            secret_key="not-the-secret",
        )

        assert await minio_storage.test_connection(minio_credentials) is True
        assert await minio_storage.test_connection(wrong) is False
        await minio_storage.reconnect()
        assert minio_storage.manager.cached(minio_credentials) is not None


class TestLifecycleOnMinio:
    @pytest.mark.asyncio
    async def test_concurrent_same_name_uploads_keep_both_files(self, db_session, session_factory, minio_storage, user):
        first_session, second_session = session_factory(), session_factory()
        try:
            first, second = await asyncio.gather(
                FileLifecycleService(first_session, minio_storage).upload(user.id, b"first", "report.pdf", 5),
                FileLifecycleService(second_session, minio_storage).upload(user.id, b"second", "report.pdf", 6),
            )
            keys = (first.remote_object_id, second.remote_object_id)
        finally:
            first_session.close()
            second_session.close()

        assert keys[0] != keys[1]
        assert [file_name_of(key) for key in keys] == ["report.pdf", "report.pdf"]
        assert await read_all(minio_storage, keys[0]) == b"first"
        assert await read_all(minio_storage, keys[1]) == b"second"
        assert storage_used(db_session, user.id) == 11
