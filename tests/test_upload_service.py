import io
import re

import pytest
from starlette.datastructures import Headers, UploadFile

from bikefine.core.exceptions import UploadRejectedError
from bikefine.services import upload_service


def make_upload(content: bytes, filename: str, content_type: str) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.mark.parametrize("content_type, kind", [
    ("image/jpeg", "images"),
    ("image/webp", "images"),
    ("video/mp4", "videos"),
    ("video/webm", "videos"),
])
def test_media_kind(content_type, kind):
    assert upload_service.media_kind(content_type) == kind


@pytest.mark.parametrize("content_type", ["application/pdf", "text/html", None])
def test_media_kind_rejects_other_types(content_type):
    with pytest.raises(UploadRejectedError):
        upload_service.media_kind(content_type)


def test_generate_filename_keeps_extension():
    name = upload_service.generate_filename("Helmet Photo.PNG", "images")
    assert re.fullmatch(r"\d{13}-[0-9a-z]{13}\.png", name)


def test_generate_filename_falls_back_by_kind():
    assert upload_service.generate_filename("clip", "videos").endswith(".mp4")
    assert upload_service.generate_filename(None, "images").endswith(".jpg")


async def test_save_small_image(tmp_path):
    stored = await upload_service.save_upload(
        make_upload(b"\x89PNG fake image", "proof.png", "image/png"),
        upload_dir=tmp_path,
    )
    assert stored.kind == "images"
    assert stored.url.startswith("/uploads/images/")
    assert stored.path.read_bytes() == b"\x89PNG fake image"
    assert stored.size == len(b"\x89PNG fake image")


async def test_pdf_rejected(tmp_path):
    with pytest.raises(UploadRejectedError):
        await upload_service.save_upload(make_upload(b"%PDF-1.4", "ticket.pdf", "application/pdf"), upload_dir=tmp_path)
    assert not any(tmp_path.rglob("*.pdf"))


async def test_oversized_image_rejected(tmp_path):
    content = b"0" * (30 * 1024 * 1024)
    with pytest.raises(UploadRejectedError) as exc:
        await upload_service.save_upload(make_upload(content, "huge.jpg", "image/jpeg"), upload_dir=tmp_path)
    assert "25MB" in exc.value.message
    assert not list(tmp_path.rglob("*.jpg"))
