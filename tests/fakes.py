"""In-memory stand-in for the remote storage adapter."""

import asyncio
import io
import mimetypes
import posixpath
from collections.abc import AsyncIterator
from typing import BinaryIO

from cloudvault.errors import RemoteStorageError
from cloudvault.remote_storage import BatchUploadResult, RemoteCredentials, RemoteObject, RemoteStream, UploadItem, file_name_of, join_remote_path, new_object_key


def _read(data: bytes | BinaryIO) -> bytes:
    if isinstance(data, bytes):
        return data
    if hasattr(data, "seek"):
        data.seek(0)
    return data.read()


class FakeRemoteStorage:
    """Bucket kept in a dict; ``fail`` names the methods that should raise ``RemoteStorageError``."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.folders: set[str] = set()
        self.fail: set[str] = set()
        self.fail_names: set[str] = set()
        self.presign_ttl = 3600
        self._credentials: RemoteCredentials | None = RemoteCredentials(endpoint="http://fake:9000", bucket="fake", access_key="key", secret_key="secret")
        self.connection_ok = True
        self.reconnects = 0
        self.calls: list[str] = []

    def _check(self, method: str) -> None:
        self.calls.append(method)
        if method in self.fail:
            raise RemoteStorageError(f"{method} failed")

    @property
    def credentials(self) -> RemoteCredentials | None:
        return self._credentials

    async def configure(self, credentials: RemoteCredentials | None) -> None:
        self._credentials = credentials

    def _add_folders(self, remote_path: str) -> None:
        prefix = ""
        for segment in join_remote_path(remote_path).split("/"):
            if segment:
                prefix = f"{prefix}{segment}/"
                self.folders.add(prefix)

    async def upload_file(self, data, file_name, remote_path, size, content_type=None, object_key=None) -> RemoteObject:
        self._check("upload_file")
        if file_name in self.fail_names:
            raise RemoteStorageError(f"Failed to upload {file_name}")
        key = object_key or new_object_key(remote_path, file_name)
        content_type = content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        body = _read(data)
        # Hand control back like a network write would
        await asyncio.sleep(0)
        self._add_folders(remote_path)
        self.objects[key] = (body, content_type)
        return RemoteObject(object_id=key, name=file_name, size=size, link=f"https://fake/{key}", content_type=content_type)

    async def upload_multiple_files(self, items: list[UploadItem], remote_path: str, object_keys: list[str] | None = None) -> list[BatchUploadResult]:
        keys = list(object_keys) if object_keys else [None] * len(items)
        results = []
        for item, key in zip(items, keys, strict=True):
            try:
                remote = await self.upload_file(item.data, item.file_name, remote_path, item.size, item.content_type, object_key=key)
            except RemoteStorageError as e:
                results.append(BatchUploadResult(item=item, error=e))
                continue
            results.append(BatchUploadResult(item=item, remote=remote))
        return results

    async def get_download_url(self, object_id: str, file_name: str | None = None) -> str:
        self._check("get_download_url")
        return f"https://fake/{object_id}?signed=1"

    async def get_file_stream(self, object_id: str, chunk_size: int = 4) -> RemoteStream:
        self._check("get_file_stream")
        if object_id not in self.objects:
            raise RemoteStorageError("Failed to download file")
        body, content_type = self.objects[object_id]

        async def _chunks() -> AsyncIterator[bytes]:
            stream = io.BytesIO(body)
            while chunk := stream.read(chunk_size):
                await asyncio.sleep(0)
                yield chunk

        return RemoteStream(chunks=_chunks(), content_type=content_type, content_length=len(body))

    async def delete_file(self, object_id: str) -> None:
        self._check("delete_file")
        if object_id not in self.objects:
            raise RemoteStorageError("File not found in remote storage")
        del self.objects[object_id]

    async def delete_if_exists(self, object_id: str) -> bool:
        self._check("delete_if_exists")
        return self.objects.pop(object_id, None) is not None

    async def object_exists(self, object_id: str) -> bool:
        self._check("object_exists")
        return object_id in self.objects

    async def replace_file(self, object_id, data, file_name, size, content_type=None, new_object_id=None) -> RemoteObject:
        self._check("replace_file")
        if object_id not in self.objects:
            raise RemoteStorageError("File not found in remote storage")
        del self.objects[object_id]
        key = new_object_id or new_object_key(posixpath.dirname(object_id), file_name)
        content_type = content_type or "application/octet-stream"
        self.objects[key] = (_read(data), content_type)
        return RemoteObject(object_id=key, name=file_name, size=size, content_type=content_type)

    async def move_file(self, object_id: str, destination_path: str, new_object_id: str | None = None) -> RemoteObject:
        self._check("move_file")
        if object_id not in self.objects:
            raise RemoteStorageError("File not found in remote storage")
        file_name = file_name_of(object_id)
        key = new_object_id or new_object_key(destination_path, file_name)
        self._add_folders(destination_path)
        self.objects[key] = self.objects.pop(object_id)
        return RemoteObject(object_id=key, name=file_name, size=len(self.objects[key][0]), content_type=self.objects[key][1])

    async def create_folder(self, remote_path: str) -> str:
        self._check("create_folder")
        self._add_folders(remote_path)
        return f"{join_remote_path(remote_path)}/"

    async def test_connection(self, credentials: RemoteCredentials) -> bool:
        self.calls.append("test_connection")
        return self.connection_ok

    async def reconnect(self) -> None:
        self._check("reconnect")
        self.reconnects += 1

    async def clear_connection(self) -> None:
        self.calls.append("clear_connection")
