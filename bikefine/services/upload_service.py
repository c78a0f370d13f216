import logging
import secrets
import string
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from bikefine.core.config import settings
from bikefine.core.constants import ALLOWED_IMAGE_TYPES, ALLOWED_VIDEO_TYPES
from bikefine.core.exceptions import UploadRejectedError

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class StoredFile:
    filename: str
    original_name: str
    content_type: str
    size: int
    kind: str  # "images" or "videos"
    url: str
    path: Path


def media_kind(content_type: Optional[str]) -> str:
    if content_type in ALLOWED_IMAGE_TYPES:
        return "images"
    if content_type in ALLOWED_VIDEO_TYPES:
        return "videos"
    raise UploadRejectedError(
        "Invalid file type. Only images (JPEG, PNG, GIF, WebP) and videos (MP4, AVI, MOV, WMV, FLV, WebM) are allowed."
    )


def generate_filename(original_name: Optional[str], kind: str) -> str:
    """``<epoch millis>-<random>.<ext>``; the extension falls back by media kind"""
    extension = ""
    if original_name and "." in original_name:
        extension = original_name.rsplit(".", 1)[1].lower()
    if not extension or not extension.isalnum():
        extension = "jpg" if kind == "images" else "mp4"

    suffix = "".join(secrets.choice(_BASE36) for _ in range(13))
    return f"{int(time.time() * 1000)}-{suffix}.{extension}"


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


async def save_upload(
    upload: UploadFile,
    upload_dir: Optional[Path] = None,
    max_bytes: Optional[int] = None,
) -> StoredFile:
    """
    Validate and store an uploaded image or video.

    Args:
        - upload (UploadFile): The multipart file.
        - upload_dir (Optional[Path]): Directory served at ``/uploads``.
        - max_bytes (Optional[int]): Size ceiling, 25 MB unless configured.

    Returns:
        - StoredFile: Where the file went and its public URL.

    Raises:
        - UploadRejectedError: Missing file, disallowed type or too large.
    """
    if upload is None or not upload.filename:
        raise UploadRejectedError("No file provided")

    upload_dir = Path(upload_dir or settings.upload_dir)
    max_bytes = max_bytes or settings.max_upload_bytes

    kind = media_kind(upload.content_type)

    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise UploadRejectedError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")

    filename = generate_filename(upload.filename, kind)
    path = upload_dir / kind / filename
    await run_in_threadpool(_write_file, path, content)

    logger.info("Stored upload %s (%d bytes) at %s", upload.filename, len(content), path)
    return StoredFile(
        filename=filename,
        original_name=upload.filename,
        content_type=upload.content_type,
        size=len(content),
        kind=kind,
        url=f"/uploads/{kind}/{filename}",
        path=path,
    )


def _remove_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


async def discard(stored: Optional[StoredFile]) -> None:
    """Remove a stored upload whose database record was never written."""
    if stored is None:
        return
    await run_in_threadpool(_remove_file, stored.path)
    logger.info("Discarded upload %s", stored.path)
