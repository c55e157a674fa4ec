import asyncio
import logging
from collections.abc import Iterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException
from starlette.types import Message

from s3_gateway.api.deps import get_settings_dep, get_storage
from s3_gateway.core.config import Settings
from s3_gateway.core.errors import StorageError, StreamingError
from s3_gateway.schemas import ListObjectsResponse, MessageResponse
from s3_gateway.services.storage import StorageObject, StorageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["objects"])


# Room for boundaries, part headers and the bucket field on top of the file cap.
FORM_OVERHEAD_BYTES = 64 * 1024


class BodyTooLarge(MultiPartException):
    """Raised while receiving a request body that exceeds the upload cap."""


async def read_limited_form(request: Request, limit: int) -> FormData:
    """Parse a form body, refusing to receive more than ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise BodyTooLarge(f"declared body of {declared} bytes exceeds {limit}")

    received = 0

    async def receive() -> Message:
        nonlocal received
        message = await request.receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > limit:
                raise BodyTooLarge(f"body exceeds {limit} bytes")
        return message

    return await Request(request.scope, receive).form()


def content_disposition(filename: str) -> str:
    try:
        filename.encode("latin-1")
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename)}"
    if not filename.isprintable():
        return f"attachment; filename*=UTF-8''{quote(filename)}"
    return f"attachment; filename={filename}"


def collect_keys(storage: StorageService, bucket: str) -> list[str]:
    keys: list[str] = []
    for entry in storage.list_objects(bucket, recursive=True):
        logger.debug("Found object: %s", entry.key)
        keys.append(entry.key)
    return keys


def stream_object_body(obj: StorageObject, chunk_size: int) -> Iterator[bytes]:
    # Status and headers are already sent once this runs; errors can only abort.
    sent = 0
    try:
        for chunk in obj.iter_chunks(chunk_size):
            sent += len(chunk)
            yield chunk
    except StorageError as exc:
        logger.exception("Error streaming object %s after %d bytes", obj.key, sent)
        raise StreamingError(f"Error streaming object data: {exc}") from exc
    finally:
        obj.close()
    logger.info("Object downloaded successfully: %s (%d bytes)", obj.key, sent)


@router.post("/upload", response_model=MessageResponse)
async def upload_object(
    request: Request,
    storage: StorageService = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> MessageResponse:
    logger.info("Handling file upload request")
    try:
        form = await read_limited_form(request, settings.max_upload_bytes + FORM_OVERHEAD_BYTES)
    except (MultiPartException, StarletteHTTPException) as exc:
        logger.warning("Error parsing form data: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unable to parse form") from None

    try:
        for item in form.values():
            if isinstance(item, UploadFile) and (item.size or 0) > settings.max_upload_bytes:
                logger.warning("File %s of %d bytes exceeds %d", item.filename, item.size, settings.max_upload_bytes)
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unable to parse form")

        bucket = form.get("bucket")
        if not isinstance(bucket, str) or not bucket:
            logger.warning("Bucket name is missing in the request")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bucket name is required")

        upload = form.get("file")
        if not isinstance(upload, UploadFile) or not upload.filename:
            logger.warning("File is missing in the request")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is required")

        key = storage.object_key_for(upload.filename)
        size = upload.size or 0
        logger.info("Uploading %s (%d bytes) to bucket %s", key, size, bucket)
        try:
            result = await asyncio.to_thread(
                storage.put_object,
                bucket,
                key,
                upload.file,
                size,
                upload.content_type or "",
            )
        except StorageError as exc:
            logger.error("Failed to upload file: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to upload file: {exc}",
            ) from exc
    finally:
        await form.close()

    logger.info("File uploaded successfully: %s to bucket %s, size: %d bytes", result.key, bucket, result.size)
    return MessageResponse(
        message=f"Uploaded {result.key} to bucket {bucket}, size: {result.size} bytes"
    )


@router.get("/list", response_model=ListObjectsResponse)
async def list_objects(
    bucket: str = Query(default=""),
    storage: StorageService = Depends(get_storage),
) -> ListObjectsResponse:
    logger.info("Handling list objects request")
    if not bucket:
        logger.warning("Bucket name is missing in the request")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bucket name is required")

    try:
        keys = await asyncio.to_thread(collect_keys, storage, bucket)
    except StorageError as exc:
        logger.error("Error listing objects in bucket %s: %s", bucket, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error listing objects: {exc}",
        ) from exc

    return ListObjectsResponse(
        message=f"Listed {len(keys)} objects in bucket {bucket}",
        objects=keys,
    )


@router.get("/download")
async def download_object(
    bucket: str = Query(default=""),
    object_name: str = Query(default="", alias="object"),
    storage: StorageService = Depends(get_storage),
    settings: Settings = Depends(get_settings_dep),
) -> StreamingResponse:
    logger.info("Handling file download request")
    if not bucket or not object_name:
        logger.warning("Bucket or object name is missing in the request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Bucket and object names are required",
        )

    logger.info("Downloading object %s from bucket %s", object_name, bucket)
    try:
        obj = await asyncio.to_thread(storage.get_object, bucket, object_name)
    except StorageError as exc:
        logger.error("Failed to download object: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to download object: {exc}",
        ) from exc

    headers = {"Content-Disposition": content_disposition(object_name)}
    if obj.content_length is not None:
        headers["Content-Length"] = str(obj.content_length)
    return StreamingResponse(
        stream_object_body(obj, settings.download_chunk_size),
        media_type="application/octet-stream",
        headers=headers,
    )
