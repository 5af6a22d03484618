import logging
import os
import uuid
from dataclasses import dataclass

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from roomchat.core.config import settings
from roomchat.core.exceptions import InvalidFileException
from roomchat.schemas.message import MessageType

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
MAX_FILENAME_LENGTH = 255
UPLOAD_URL_PREFIX = "/uploads"


@dataclass
class StoredFile:
    path: str
    url: str
    original_name: str
    size: int
    message_type: MessageType


def _extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lower()


def _write_file(path: str, data: bytes) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


def _remove_file(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


async def save_upload(upload: UploadFile) -> StoredFile:
    """
    Validate and persist an uploaded file under the upload directory.

    Args:
        upload: The multipart file from the request

    Returns:
        StoredFile with the public URL, original name, byte size and the
        message type implied by the extension

    Raises:
        InvalidFileException: If the file is missing, its name is too long,
            its extension is not allowed or it is too large
    """
    if upload is None or not upload.filename:
        raise InvalidFileException(detail="No file uploaded")
    if len(upload.filename) > MAX_FILENAME_LENGTH:
        raise InvalidFileException(detail="File name too long")

    extension = _extension(upload.filename)
    if extension not in settings.allowed_upload_extensions:
        raise InvalidFileException(detail="File type not allowed")

    # one byte past the limit is enough to know it is too large
    data = await upload.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise InvalidFileException(detail="File too large")

    stored_name = f"{uuid.uuid4().hex}{extension}"
    path = os.path.join(settings.upload_dir, stored_name)
    await run_in_threadpool(_write_file, path, data)
    logger.info(f"Stored upload '{upload.filename}' as {stored_name} ({len(data)} bytes)")

    return StoredFile(
        path=path,
        url=f"{UPLOAD_URL_PREFIX}/{stored_name}",
        original_name=upload.filename,
        size=len(data),
        message_type=MessageType.IMAGE if extension in IMAGE_EXTENSIONS else MessageType.FILE,
    )


async def discard_upload(stored: StoredFile) -> None:
    """Delete a stored upload whose message was never created."""
    await run_in_threadpool(_remove_file, stored.path)
    logger.info(f"Discarded upload {stored.url}")
