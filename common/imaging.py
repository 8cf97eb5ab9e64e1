"""Shared imaging helpers."""

from __future__ import annotations

from io import BytesIO
from typing import Any

from PIL import Image


def image_to_bytes(image: Image.Image, format: str = "PNG", **params: Any) -> bytes:
    buf = BytesIO()
    image.save(buf, format=format, **params)
    return buf.getvalue()


def bytes_to_image(data: bytes) -> Image.Image:
    image = Image.open(BytesIO(data))
    image.load()
    return image


__all__ = ["image_to_bytes", "bytes_to_image"]
