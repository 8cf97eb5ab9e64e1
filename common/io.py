"""Common IO helpers for plugins."""

from __future__ import annotations

from io import BytesIO


def buffer_from_bytes(data: bytes) -> BytesIO:
    buffer = BytesIO()
    buffer.write(data)
    buffer.seek(0)
    return buffer


def download_name(stem: str, output_format: str) -> str:
    ext = "jpg" if output_format.lower() in {"jpg", "jpeg"} else output_format.lower()
    return f"{stem}.{ext}"


__all__ = ["buffer_from_bytes", "download_name"]
