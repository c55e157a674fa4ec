import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from s3_gateway.core.config import Settings, get_settings
from s3_gateway.core.errors import StorageError

logger = logging.getLogger(__name__)


def sanitize_object_key(filename: str) -> str:
    name = Path(filename).name
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name)
    if not name.strip("."):
        return "file"
    return name


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int = 0
    etag: str | None = None
    last_modified: datetime | None = None


@dataclass(frozen=True)
class UploadResult:
    bucket: str
    key: str
    size: int
    etag: str | None = None


class StorageObject:
    """Open read handle on a stored object. Close it when done."""

    def __init__(self, key: str, body: Any, content_length: int | None, content_type: str | None) -> None:
        self.key = key
        self.content_length = content_length
        self.content_type = content_type
        self._body = body

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        try:
            yield from self._body.iter_chunks(chunk_size)
        except BotoCoreError as exc:
            raise StorageError(f"{exc}") from exc

    def close(self) -> None:
        self._body.close()

    def __enter__(self) -> "StorageObject":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class StorageService:
    """S3-compatible storage backend shared by all requests."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        session = boto3.session.Session()
        self.client = session.client(
            "s3",
            endpoint_url=self.settings.s3_endpoint_url,
            aws_access_key_id=self.settings.access_key,
            aws_secret_access_key=self.settings.secret_key,
            region_name=self.settings.s3_region,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                connect_timeout=self.settings.s3_connect_timeout,
                read_timeout=self.settings.s3_read_timeout,
                retries={"total_max_attempts": 1},
            ),
        )

    def object_key_for(self, filename: str) -> str:
        if self.settings.sanitize_object_keys:
            return sanitize_object_key(filename)
        return filename

    def put_object(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        size: int,
        content_type: str = "",
    ) -> UploadResult:
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": stream,
            "ContentLength": size,
        }
        if content_type:
            params["ContentType"] = content_type
        try:
            response = self.client.put_object(**params)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"{exc}") from exc
        etag = response.get("ETag")
        return UploadResult(
            bucket=bucket,
            key=key,
            size=size,
            etag=etag.strip('"') if etag else None,
        )

    def list_objects(self, bucket: str, recursive: bool = True, prefix: str = "") -> Iterator[ObjectInfo]:
        """Lazily enumerate a bucket.

        Recursive listings flatten nested prefixes into full keys. Otherwise a
        single level is listed and its common prefixes are yielded as entries.
        """
        params: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        if not recursive:
            params["Delimiter"] = "/"

        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(**params):
                for item in page.get("Contents", []):
                    etag = item.get("ETag")
                    yield ObjectInfo(
                        key=item["Key"],
                        size=item.get("Size", 0),
                        etag=etag.strip('"') if etag else None,
                        last_modified=item.get("LastModified"),
                    )
                for common in page.get("CommonPrefixes", []):
                    yield ObjectInfo(key=common["Prefix"])
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"{exc}") from exc

    def get_object(self, bucket: str, key: str) -> StorageObject:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"{exc}") from exc
        return StorageObject(
            key=key,
            body=response["Body"],
            content_length=response.get("ContentLength"),
            content_type=response.get("ContentType"),
        )


def create_storage_service(settings: Settings) -> StorageService:
    logger.info(
        "Initializing storage client for %s (access key %s)",
        settings.s3_endpoint_url,
        settings.access_key,
    )
    return StorageService(settings)
