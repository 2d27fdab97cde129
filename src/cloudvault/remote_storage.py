"""
Remote Storage Adapter

Async facade over the shared S3-compatible bucket every tenant's files live in.
Object keys double as remote object identifiers; folders are zero-byte marker
objects whose key ends with ``/``.

One validated connection per credential identity is kept by the
``ConnectionManager``. Concurrent callers that need a connection which is still
being opened await the same initialization task. Nothing here retries: every
SDK failure is raised as ``RemoteStorageError`` with the SDK error as its cause,
and a stale connection is only dropped through ``reconnect``/``clear_connection``.
"""

import asyncio
import io
import logging
import mimetypes
import posixpath
import uuid
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, BinaryIO

import aioboto3
import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic_settings import BaseSettings, SettingsConfigDict

from cloudvault.cache_utils import cache_presigned_url, clear_presigned_url_cache, get_cached_presigned_url
from cloudvault.errors import RemoteStorageError

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from mypy_boto3_s3 import S3Client

MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}
STREAM_CHUNK_SIZE = 1024 * 1024


class S3Settings(BaseSettings):
    """Fallback bucket configuration used when no credentials are stored in the database"""

    endpoint: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    bucket: str | None = None
    region: str = "us-east-1"
    use_ssl: bool = False
    signature_version: str = "s3v4"

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        extra="ignore",
    )


@dataclass(frozen=True)
class RemoteCredentials:
    endpoint: str
    bucket: str
    access_key: str
    secret_key: str = field(repr=False)
    region: str = "us-east-1"
    use_ssl: bool = False

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.endpoint_url, self.bucket, self.access_key)

    @property
    def endpoint_url(self) -> str:
        if not self.endpoint.startswith(("http://", "https://")):
            protocol = "https" if self.use_ssl else "http"
            return f"{protocol}://{self.endpoint}"
        return self.endpoint

    @classmethod
    def from_settings(cls, settings: S3Settings) -> "RemoteCredentials | None":
        if not (settings.endpoint and settings.bucket and settings.access_key and settings.secret_key):
            return None
        return cls(
            endpoint=settings.endpoint,
            bucket=settings.bucket,
            access_key=settings.access_key,
            secret_key=settings.secret_key,
            region=settings.region,
            use_ssl=settings.use_ssl,
        )

    @classmethod
    def from_record(cls, record: Any) -> "RemoteCredentials":
        return cls(
            endpoint=record.endpoint,
            bucket=record.bucket,
            access_key=record.access_key,
            secret_key=record.secret_key,
            region=record.region,
            use_ssl=record.endpoint.startswith("https://"),
        )


@dataclass
class RemoteObject:
    """Descriptor returned by uploads, replacements and moves."""

    object_id: str
    name: str
    size: int
    link: str | None = None
    content_type: str | None = None


@dataclass
class RemoteStream:
    chunks: AsyncIterator[bytes]
    content_type: str
    content_length: int | None


@dataclass
class UploadItem:
    data: bytes | BinaryIO
    file_name: str
    size: int
    content_type: str | None = None


@dataclass
class BatchUploadResult:
    item: UploadItem
    remote: RemoteObject | None = None
    error: RemoteStorageError | None = None

    @property
    def ok(self) -> bool:
        return self.remote is not None


def _client_config(signature_version: str = "s3v4") -> Config:
    return Config(
        signature_version=signature_version,
        max_pool_connections=100,
        retries={"max_attempts": 1, "mode": "standard"},
        connect_timeout=10,
        read_timeout=60,
        s3={"addressing_style": "path"},
    )


def _is_missing(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code", "")) in MISSING_OBJECT_CODES


def join_remote_path(*parts: str) -> str:
    """Join key segments, dropping empty ones and stray slashes."""
    segments = [segment for part in parts for segment in str(part).split("/") if segment]
    return "/".join(segments)


def new_object_key(remote_path: str, file_name: str) -> str:
    """Fresh key for an object named ``file_name`` under ``remote_path``.

    The random prefix makes every key distinct, so two writers never share
    one even when they upload the same name into the same directory.
    """
    return join_remote_path(remote_path, f"{uuid.uuid4().hex}-{file_name}")


def file_name_of(object_id: str) -> str:
    """Original file name of an object key made by ``new_object_key``."""
    base = posixpath.basename(object_id)
    prefix, sep, rest = base.partition("-")
    if sep and rest and len(prefix) == 32 and all(c in "0123456789abcdef" for c in prefix):
        return rest
    return base


class RemoteConnection:
    """A validated session against one bucket."""

    def __init__(self, credentials: RemoteCredentials, session: aioboto3.Session | None = None):
        self.credentials = credentials
        self.session = session or aioboto3.Session(
            aws_access_key_id=credentials.access_key,
            aws_secret_access_key=credentials.secret_key,
            region_name=credentials.region,
        )
        self._config = _client_config()
        self._presign_client = None
        self.transfer_config = TransferConfig(
            multipart_threshold=8 * 1024 * 1024,
            multipart_chunksize=4 * 1024 * 1024,
            max_concurrency=10,
            use_threads=True,
        )

    @property
    def bucket(self) -> str:
        return self.credentials.bucket

    def client(self) -> "S3Client":
        """Client context manager. Usage: ``async with connection.client() as s3:``"""
        return self.session.client("s3", endpoint_url=self.credentials.endpoint_url, config=self._config)

    async def validate(self) -> None:
        async with self.client() as s3:
            await s3.head_bucket(Bucket=self.bucket)

    def presign(self, key: str, expires_in: int, file_name: str | None = None) -> str:
        if self._presign_client is None:
            self._presign_client = boto3.client(
                "s3",
                endpoint_url=self.credentials.endpoint_url,
                aws_access_key_id=self.credentials.access_key,
                aws_secret_access_key=self.credentials.secret_key,
                region_name=self.credentials.region,
                config=self._config,
            )
        params: dict[str, str] = {"Bucket": self.bucket, "Key": key}
        if file_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{file_name}"'
        return str(self._presign_client.generate_presigned_url("get_object", Params=params, ExpiresIn=expires_in))


class ConnectionManager:
    """Keeps one ready connection per credential identity.

    ``get_or_init`` is single-flight: the lock only guards the two maps, and
    every caller arriving while a connection is being opened awaits the task
    the first caller started. Cancelling one waiter leaves that task running.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._connections: dict[tuple[str, str, str], RemoteConnection] = {}
        self._in_flight: dict[tuple[str, str, str], asyncio.Task[RemoteConnection]] = {}

    async def get_or_init(self, credentials: RemoteCredentials) -> RemoteConnection:
        key = credentials.identity
        async with self._lock:
            connection = self._connections.get(key)
            if connection is not None:
                return connection
            task = self._in_flight.get(key)
            if task is None:
                task = asyncio.create_task(self._open(credentials))
                task.add_done_callback(lambda done: self._settle(key, done))
                self._in_flight[key] = task

        # A cancelled waiter must not cancel the open the other waiters share
        return await asyncio.shield(task)

    def _settle(self, key: tuple[str, str, str], task: asyncio.Task[RemoteConnection]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _open(self, credentials: RemoteCredentials) -> RemoteConnection:
        logger.info(f"Opening remote storage connection: endpoint={credentials.endpoint_url}, bucket={credentials.bucket}")
        connection = RemoteConnection(credentials)
        try:
            await connection.validate()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to open remote storage connection to bucket {credentials.bucket}: {e}")
            raise RemoteStorageError("Failed to connect to remote storage") from e
        self._connections[credentials.identity] = connection
        return connection

    def cached(self, credentials: RemoteCredentials) -> RemoteConnection | None:
        return self._connections.get(credentials.identity)

    async def clear(self, credentials: RemoteCredentials | None = None) -> None:
        async with self._lock:
            if credentials is None:
                self._connections.clear()
            else:
                self._connections.pop(credentials.identity, None)
        logger.info("Remote storage connection cache cleared")


class RemoteObjectLocator:
    """Looks objects up by key with a direct HEAD request.

    Results are memoized for the lifetime of the locator, which the adapter
    scopes to one logical operation.
    """

    def __init__(self, connection: RemoteConnection):
        self._connection = connection
        self._seen: dict[str, dict[str, Any] | None] = {}

    async def locate(self, object_id: str) -> dict[str, Any] | None:
        if object_id in self._seen:
            return self._seen[object_id]
        async with self._connection.client() as s3:
            try:
                head = await s3.head_object(Bucket=self._connection.bucket, Key=object_id)
            except ClientError as e:
                if not _is_missing(e):
                    raise
                head = None
        self._seen[object_id] = head
        return head

    async def exists(self, object_id: str) -> bool:
        return await self.locate(object_id) is not None

    def forget(self, object_id: str) -> None:
        self._seen.pop(object_id, None)


class RemoteStorageAdapter:
    """Typed facade over the bucket used by the file lifecycle service."""

    def __init__(self, credentials: RemoteCredentials | None = None, manager: ConnectionManager | None = None, presign_ttl: int = 3600, batch_concurrency: int = 4):
        self._credentials = credentials
        self.manager = manager or ConnectionManager()
        self.presign_ttl = presign_ttl
        self.batch_concurrency = batch_concurrency

    @property
    def credentials(self) -> RemoteCredentials | None:
        return self._credentials

    async def configure(self, credentials: RemoteCredentials | None) -> None:
        """Switch to new shared credentials, dropping the connection of the old ones."""
        previous = self._credentials
        self._credentials = credentials
        if previous is not None and previous != credentials:
            await self.manager.clear(previous)

    async def _connection(self) -> RemoteConnection:
        if self._credentials is None:
            raise RemoteStorageError("Remote storage credentials not configured")
        return await self.manager.get_or_init(self._credentials)

    async def _ensure_folder_chain(self, s3: "S3Client", connection: RemoteConnection, remote_path: str) -> None:
        prefix = ""
        for segment in join_remote_path(remote_path).split("/"):
            if not segment:
                continue
            prefix = f"{prefix}{segment}/"
            await s3.put_object(Bucket=connection.bucket, Key=prefix, Body=b"")

    def _link(self, connection: RemoteConnection, key: str, file_name: str | None = None) -> str:
        cached = get_cached_presigned_url(key)
        if cached:
            logger.debug(f"Using cached presigned URL for: {key}")
            return cached
        url = connection.presign(key, self.presign_ttl, file_name)
        cache_presigned_url(key, url, self.presign_ttl)
        return url

    async def _put(self, s3: "S3Client", connection: RemoteConnection, key: str, data: bytes | BinaryIO, content_type: str | None) -> None:
        if isinstance(data, bytes):
            data = io.BytesIO(data)
        elif hasattr(data, "seek"):
            data.seek(0)
        extra_args = {"ContentType": content_type} if content_type else None
        await s3.upload_fileobj(data, connection.bucket, key, ExtraArgs=extra_args, Config=connection.transfer_config)

    async def upload_file(
        self,
        data: bytes | BinaryIO,
        file_name: str,
        remote_path: str,
        size: int,
        content_type: str | None = None,
        object_key: str | None = None,
    ) -> RemoteObject:
        """Upload ``data`` as ``file_name`` under the directory ``remote_path``.

        The marker objects of every directory on the path are created first.
        ``object_key`` pins the key, otherwise a fresh one is generated.
        """
        connection = await self._connection()
        content_type = content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        key = object_key or new_object_key(remote_path, file_name)
        try:
            async with connection.client() as s3:
                await self._ensure_folder_chain(s3, connection, remote_path)
                await self._put(s3, connection, key, data, content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {file_name} to {remote_path}: {e}")
            raise RemoteStorageError(f"Failed to upload {file_name}") from e
        logger.info(f"Successfully uploaded object: {key}")
        return RemoteObject(object_id=key, name=file_name, size=size, link=self._link(connection, key, file_name), content_type=content_type)

    async def upload_multiple_files(self, items: list[UploadItem], remote_path: str, object_keys: list[str] | None = None) -> list[BatchUploadResult]:
        """Upload a batch into one directory. Each item succeeds or fails on its own."""
        semaphore = asyncio.Semaphore(self.batch_concurrency)
        keys: list[str | None] = list(object_keys) if object_keys else [None] * len(items)

        async def _one(item: UploadItem, key: str | None) -> BatchUploadResult:
            async with semaphore:
                try:
                    remote = await self.upload_file(item.data, item.file_name, remote_path, item.size, item.content_type, object_key=key)
                except RemoteStorageError as e:
                    return BatchUploadResult(item=item, error=e)
                return BatchUploadResult(item=item, remote=remote)

        results = await asyncio.gather(*(_one(item, key) for item, key in zip(items, keys, strict=True)))
        failed = sum(1 for result in results if not result.ok)
        logger.info(f"Batch upload to {remote_path}: {len(results) - failed} uploaded, {failed} failed")
        return list(results)

    async def get_download_url(self, object_id: str, file_name: str | None = None) -> str:
        connection = await self._connection()
        try:
            return self._link(connection, object_id, file_name)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL for {object_id}: {e}")
            raise RemoteStorageError("Failed to generate download link") from e

    async def get_file_stream(self, object_id: str, chunk_size: int = STREAM_CHUNK_SIZE) -> RemoteStream:
        """Open the object body for streaming. The client stays open until the stream is exhausted or closed."""
        connection = await self._connection()
        stack = AsyncExitStack()
        try:
            s3 = await stack.enter_async_context(connection.client())
            response = await s3.get_object(Bucket=connection.bucket, Key=object_id)
        except (ClientError, BotoCoreError) as e:
            await stack.aclose()
            logger.error(f"Failed to open object {object_id}: {e}")
            raise RemoteStorageError("Failed to download file") from e

        body = response["Body"]

        async def _chunks() -> AsyncIterator[bytes]:
            try:
                while True:
                    chunk = await body.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
            finally:
                await stack.aclose()

        return RemoteStream(
            chunks=_chunks(),
            content_type=response.get("ContentType") or "application/octet-stream",
            content_length=response.get("ContentLength"),
        )

    async def delete_file(self, object_id: str) -> None:
        connection = await self._connection()
        locator = RemoteObjectLocator(connection)
        try:
            if not await locator.exists(object_id):
                raise RemoteStorageError("File not found in remote storage")
            async with connection.client() as s3:
                await s3.delete_object(Bucket=connection.bucket, Key=object_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete object {object_id}: {e}")
            raise RemoteStorageError("Failed to delete file") from e
        clear_presigned_url_cache(object_id)
        logger.info(f"Successfully deleted object: {object_id}")

    async def delete_if_exists(self, object_id: str) -> bool:
        """Delete an object that may already be gone. Returns whether anything was deleted."""
        connection = await self._connection()
        locator = RemoteObjectLocator(connection)
        try:
            if not await locator.exists(object_id):
                return False
            async with connection.client() as s3:
                await s3.delete_object(Bucket=connection.bucket, Key=object_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete object {object_id}: {e}")
            raise RemoteStorageError("Failed to delete file") from e
        clear_presigned_url_cache(object_id)
        return True

    async def object_exists(self, object_id: str) -> bool:
        connection = await self._connection()
        try:
            return await RemoteObjectLocator(connection).exists(object_id)
        except (ClientError, BotoCoreError) as e:
            raise RemoteStorageError("Failed to look up remote object") from e

    async def replace_file(
        self,
        object_id: str,
        data: bytes | BinaryIO,
        file_name: str,
        size: int,
        content_type: str | None = None,
        new_object_id: str | None = None,
    ) -> RemoteObject:
        """Delete the old object, then upload the new content into the same directory."""
        connection = await self._connection()
        locator = RemoteObjectLocator(connection)
        remote_path = posixpath.dirname(object_id)
        content_type = content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        try:
            if not await locator.exists(object_id):
                raise RemoteStorageError("File not found in remote storage")
            async with connection.client() as s3:
                await s3.delete_object(Bucket=connection.bucket, Key=object_id)
                locator.forget(object_id)
                clear_presigned_url_cache(object_id)
                key = new_object_id or new_object_key(remote_path, file_name)
                await self._put(s3, connection, key, data, content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to replace object {object_id}: {e}")
            raise RemoteStorageError("Failed to replace file") from e
        logger.info(f"Successfully replaced object {object_id} with {key}")
        return RemoteObject(object_id=key, name=file_name, size=size, link=self._link(connection, key, file_name), content_type=content_type)

    async def move_file(self, object_id: str, destination_path: str, new_object_id: str | None = None) -> RemoteObject:
        """Copy the object under ``destination_path`` and delete the original."""
        connection = await self._connection()
        locator = RemoteObjectLocator(connection)
        file_name = file_name_of(object_id)
        try:
            head = await locator.locate(object_id)
            if head is None:
                raise RemoteStorageError("File not found in remote storage")
            new_key = new_object_id or new_object_key(destination_path, file_name)
            async with connection.client() as s3:
                await self._ensure_folder_chain(s3, connection, destination_path)
                await s3.copy_object(CopySource={"Bucket": connection.bucket, "Key": object_id}, Bucket=connection.bucket, Key=new_key)
                await s3.delete_object(Bucket=connection.bucket, Key=object_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to move object {object_id} to {destination_path}: {e}")
            raise RemoteStorageError("Failed to move file") from e
        clear_presigned_url_cache(object_id)
        logger.info(f"Successfully moved object from {object_id} to {new_key}")
        return RemoteObject(object_id=new_key, name=file_name, size=int(head.get("ContentLength", 0)), content_type=head.get("ContentType"))

    async def create_folder(self, remote_path: str) -> str:
        connection = await self._connection()
        try:
            async with connection.client() as s3:
                await self._ensure_folder_chain(s3, connection, remote_path)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to create remote folder {remote_path}: {e}")
            raise RemoteStorageError("Failed to create folder") from e
        return f"{join_remote_path(remote_path)}/"

    async def test_connection(self, credentials: RemoteCredentials) -> bool:
        """Validate credentials on a throwaway session. The cached connection is left alone."""
        try:
            await RemoteConnection(credentials).validate()
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Remote storage connection test failed for bucket {credentials.bucket}: {e}")
            return False
        return True

    async def reconnect(self) -> None:
        if self._credentials is None:
            raise RemoteStorageError("Remote storage credentials not configured")
        await self.manager.clear(self._credentials)
        await self.manager.get_or_init(self._credentials)
        logger.info("Remote storage reconnected")

    async def clear_connection(self) -> None:
        await self.manager.clear()
