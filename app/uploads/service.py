"""Static upload storage for course media and user avatars."""

from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path
from typing import Any

from fastapi import UploadFile

from app.api.errors import ApiError, ApiErrorCode

LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif")
PDF_TYPE = "application/pdf"


def _upload_error(message: str) -> ApiError:
    return ApiError(status_code=400, error_code=ApiErrorCode.VALIDATION_ERROR, message=message)


def _megabytes(size: int) -> str:
    return f"{size / (1024 * 1024):g}MB"


def validate_file_upload(
    file: UploadFile | None,
    *,
    max_bytes: int = 5 * 1024 * 1024,
    allowed_types: tuple[str, ...] = IMAGE_TYPES,
    required: bool = False,
) -> UploadFile | None:
    """Check presence, declared size and MIME type of an uploaded file."""
    if file is None or not file.filename:
        if required:
            raise _upload_error("File is required")
        return None
    if file.size is not None and file.size > max_bytes:
        raise _upload_error(f"File size too large. Maximum size is {_megabytes(max_bytes)}")
    if (file.content_type or "") not in allowed_types:
        raise _upload_error(f"Invalid file type. Allowed types: {', '.join(allowed_types)}")
    return file


def media_subdir(content_type: str) -> str | None:
    """Storage folder for accepted media types: videos or PDFs only."""
    if content_type.startswith("video/"):
        return "videos"
    if content_type == PDF_TYPE:
        return "pdfs"
    return None


def unique_file_name(field_name: str, original_name: str) -> str:
    suffix = Path(original_name or "").suffix.lower()
    return f"{field_name}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"


class UploadService:
    """Writes uploaded files below ``uploads_dir`` and returns their public URLs."""

    def __init__(
        self,
        uploads_dir: Path,
        *,
        media_max_bytes: int,
        avatar_max_bytes: int,
        public_prefix: str = "/uploads",
    ) -> None:
        self._uploads_dir = uploads_dir
        self._media_max_bytes = media_max_bytes
        self._avatar_max_bytes = avatar_max_bytes
        self._public_prefix = public_prefix.rstrip("/")
        for subdir in ("videos", "pdfs", "avatars"):
            (self._uploads_dir / subdir).mkdir(parents=True, exist_ok=True)

    @property
    def uploads_dir(self) -> Path:
        return self._uploads_dir

    async def _stream_to_disk(self, file: UploadFile, destination: Path, max_bytes: int) -> int:
        """Copy in chunks, aborting and removing the partial file past ``max_bytes``."""
        written = 0
        try:
            with destination.open("wb") as fh:
                while True:
                    chunk = await file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise _upload_error(
                            f"File size too large. Maximum size is {_megabytes(max_bytes)}"
                        )
                    fh.write(chunk)
        except ApiError:
            destination.unlink(missing_ok=True)
            raise
        return written

    async def _store(
        self, file: UploadFile, *, subdir: str, field_name: str, max_bytes: int
    ) -> dict[str, Any]:
        stored_name = unique_file_name(field_name, file.filename or "")
        destination = self._uploads_dir / subdir / stored_name
        size = await self._stream_to_disk(file, destination, max_bytes)
        LOGGER.info("file_uploaded: %s/%s (%s bytes)", subdir, stored_name, size)
        return {
            "url": f"{self._public_prefix}/{subdir}/{stored_name}",
            "filename": stored_name,
            "originalName": file.filename or "",
            "mimeType": file.content_type or "",
            "size": size,
        }

    async def store_media(
        self, file: UploadFile | None, *, field_name: str = "file"
    ) -> dict[str, Any]:
        """Store a course video or PDF."""
        if file is None or not file.filename:
            raise _upload_error("File is required")
        subdir = media_subdir(file.content_type or "")
        if subdir is None:
            raise _upload_error("Only video files and PDF documents are allowed!")
        validate_file_upload(
            file,
            max_bytes=self._media_max_bytes,
            allowed_types=(file.content_type or "",),
            required=True,
        )
        return await self._store(
            file, subdir=subdir, field_name=field_name, max_bytes=self._media_max_bytes
        )

    async def store_avatar(self, file: UploadFile | None) -> dict[str, Any]:
        """Store a profile image."""
        checked = validate_file_upload(
            file, max_bytes=self._avatar_max_bytes, allowed_types=IMAGE_TYPES, required=True
        )
        if checked is None:
            raise _upload_error("File is required")
        return await self._store(
            checked, subdir="avatars", field_name="avatar", max_bytes=self._avatar_max_bytes
        )
