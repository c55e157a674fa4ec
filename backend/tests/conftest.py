import sys
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

import pytest
import pytest_asyncio
from botocore.exceptions import BotoCoreError
from httpx import AsyncClient, ASGITransport

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from s3_gateway.core.config import Settings, load_settings
from s3_gateway.core.errors import StorageError
from s3_gateway.main import create_app
from s3_gateway.services.storage import ObjectInfo, StorageObject, StorageService, UploadResult


class FakeBody:
    def __init__(self, data: bytes, fail_after: int | None = None) -> None:
        self.data = data
        self.fail_after = fail_after
        self.closed = False

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        for offset in range(0, len(self.data), chunk_size):
            if self.fail_after is not None and offset >= self.fail_after:
                raise BotoCoreError()
            yield self.data[offset:offset + chunk_size]

    def close(self) -> None:
        self.closed = True


class InMemoryStorage(StorageService):
    """Bucket -> key -> bytes store standing in for the S3 backend."""

    def __init__(self, settings: Settings) -> None:  # type: ignore[super-init-not-called]
        self.settings = settings
        self.buckets: dict[str, dict[str, bytes]] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.bodies: list[FakeBody] = []
        self.list_error_after: int | None = None
        self.stream_fail_after: int | None = None

    def put_object(  # type: ignore[override]
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        size: int,
        content_type: str = "",
    ) -> UploadResult:
        if bucket not in self.buckets:
            raise StorageError(f"The specified bucket does not exist: {bucket}")
        self.buckets[bucket][key] = stream.read(size)
        self.content_types[(bucket, key)] = content_type
        return UploadResult(bucket=bucket, key=key, size=size)

    def list_objects(self, bucket: str, recursive: bool = True, prefix: str = "") -> Iterator[ObjectInfo]:  # type: ignore[override]
        if bucket not in self.buckets:
            raise StorageError(f"The specified bucket does not exist: {bucket}")
        for index, (key, data) in enumerate(self.buckets[bucket].items()):
            if self.list_error_after is not None and index >= self.list_error_after:
                raise StorageError("connection reset during listing")
            yield ObjectInfo(key=key, size=len(data))

    def get_object(self, bucket: str, key: str) -> StorageObject:  # type: ignore[override]
        try:
            data = self.buckets[bucket][key]
        except KeyError:
            raise StorageError("The specified key does not exist.") from None
        body = FakeBody(data, fail_after=self.stream_fail_after)
        self.bodies.append(body)
        return StorageObject(key=key, body=body, content_length=len(data), content_type=None)


@pytest.fixture
def settings() -> Settings:
    return load_settings(
        _env_file=None,
        ACCESS_KEY="test",
        SECRET_KEY="test-secret",
        S3_ENDPOINT="localhost:9000",
    )


@pytest.fixture
def storage(settings) -> InMemoryStorage:
    fake = InMemoryStorage(settings)
    fake.buckets["test"] = {}
    return fake


@pytest.fixture
def app_instance(settings, storage):
    return create_app(settings=settings, storage=storage)


@pytest_asyncio.fixture
async def client(app_instance):
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
