"""
Shared fixtures for the travelchat test suite.

Images are generated with Pillow on the fly so no binary fixtures are
checked in.
"""
from __future__ import annotations

import io

import pytest
from PIL import Image

from travelchat.config import Settings


def make_image(width: int, height: int, fmt: str = "PNG", mode: str = "RGB", color=(200, 120, 40)) -> bytes:
    """Encode a solid-colour image of the given size."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def image_size(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def image_format(data: bytes) -> str:
    with Image.open(io.BytesIO(data)) as img:
        return img.format


@pytest.fixture
def png_bytes() -> bytes:
    return make_image(320, 240, "PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image(640, 480, "JPEG")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        upload_path=str(tmp_path / "uploads"),
        gapi_project_id=None,
        gapi_client_email=None,
        gapi_private_key=None,
        sri_system_instruction="You are a travel assistant. Today is {{CURRENT_DATE}}.",
    )
