from __future__ import annotations

import asyncio
import re
from io import BytesIO
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.api.errors import ApiError
from app.uploads.service import UploadService, media_subdir, unique_file_name


def _upload_file(filename: str, content_type: str, data: bytes = b"abc") -> UploadFile:
    return UploadFile(
        file=BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def _service(tmp_path: Path, *, media_max_bytes: int = 1024) -> UploadService:
    return UploadService(
        tmp_path / "uploads", media_max_bytes=media_max_bytes, avatar_max_bytes=64
    )


def _error(coro) -> ApiError:
    with pytest.raises(ApiError) as exc:
        asyncio.run(coro)
    return exc.value


def test_media_subdir_accepts_only_video_and_pdf() -> None:
    assert media_subdir("video/mp4") == "videos"
    assert media_subdir("application/pdf") == "pdfs"
    assert media_subdir("image/png") is None


def test_unique_file_name_shape() -> None:
    name = unique_file_name("file", "Lecture One.MP4")

    assert re.fullmatch(r"file-\d+-\d+\.mp4", name)
    assert unique_file_name("file", "a.pdf") != unique_file_name("file", "a.pdf")


def test_store_media_routes_by_type(tmp_path: Path) -> None:
    service = _service(tmp_path)

    video = asyncio.run(service.store_media(_upload_file("intro.mp4", "video/mp4")))
    pdf = asyncio.run(service.store_media(_upload_file("notes.pdf", "application/pdf")))

    assert video["url"].startswith("/uploads/videos/file-")
    assert pdf["url"].startswith("/uploads/pdfs/file-")
    assert video["originalName"] == "intro.mp4"
    assert video["size"] == 3
    assert (tmp_path / "uploads" / "videos" / video["filename"]).read_bytes() == b"abc"


def test_store_media_rejects_other_types(tmp_path: Path) -> None:
    error = _error(_service(tmp_path).store_media(_upload_file("photo.png", "image/png")))

    assert error.status_code == 400
    assert error.detail["message"] == "Only video files and PDF documents are allowed!"


def test_store_media_requires_file(tmp_path: Path) -> None:
    assert _error(_service(tmp_path).store_media(None)).detail["message"] == "File is required"


def test_oversized_upload_is_aborted_and_removed(tmp_path: Path) -> None:
    service = _service(tmp_path, media_max_bytes=10)

    error = _error(service.store_media(_upload_file("big.mp4", "video/mp4", b"x" * 11)))

    assert error.status_code == 400
    assert "File size too large" in error.detail["message"]
    assert list((tmp_path / "uploads" / "videos").iterdir()) == []


def test_store_avatar_accepts_images_only(tmp_path: Path) -> None:
    service = _service(tmp_path)

    stored = asyncio.run(service.store_avatar(_upload_file("me.png", "image/png")))
    error = _error(service.store_avatar(_upload_file("me.pdf", "application/pdf")))

    assert stored["url"].startswith("/uploads/avatars/avatar-")
    assert error.detail["message"].startswith("Invalid file type")
