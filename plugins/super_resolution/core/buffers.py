"""RGBA pixel buffers passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class PixelBuffer:
    """Interleaved RGBA pixels held as a ``(height, width, 4)`` uint8 array.

    Every stage of the pipeline returns a new buffer; the array is never
    modified after construction.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError("Pixel buffer must have shape (height, width, 4)")
        if pixels.shape[0] <= 0 or pixels.shape[1] <= 0:
            raise ValueError("Pixel buffer dimensions must be positive")
        if pixels.dtype != np.uint8:
            pixels = pixels.astype(np.uint8)
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "PixelBuffer":
        if width <= 0 or height <= 0:
            raise ValueError("Pixel buffer dimensions must be positive")
        expected = width * height * 4
        if len(data) != expected:
            raise ValueError(
                f"Expected {expected} bytes for a {width}x{height} RGBA buffer, got {len(data)}"
            )
        pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4).copy()
        return cls(pixels)

    @classmethod
    def filled(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> "PixelBuffer":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = rgba
        return cls(pixels)

    @classmethod
    def from_rgb(cls, rgb: np.ndarray, alpha: np.ndarray | int = 255) -> "PixelBuffer":
        rgb = np.asarray(rgb, dtype=np.uint8)
        pixels = np.empty((rgb.shape[0], rgb.shape[1], 4), dtype=np.uint8)
        pixels[:, :, :3] = rgb
        pixels[:, :, 3] = alpha
        return cls(pixels)

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(np.array(image, dtype=np.uint8))

    def to_bytes(self) -> bytes:
        return self.pixels.tobytes()

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def crop(self, x: int, y: int, width: int, height: int) -> "PixelBuffer":
        if x < 0 or y < 0 or x + width > self.width or y + height > self.height:
            raise ValueError(
                f"Crop {width}x{height}+{x}+{y} exceeds {self.width}x{self.height} buffer"
            )
        return PixelBuffer(self.pixels[y : y + height, x : x + width].copy())

    def with_rgb(self, rgb: np.ndarray) -> "PixelBuffer":
        """Return a new buffer with ``rgb`` channels and this buffer's alpha."""

        return PixelBuffer.from_rgb(rgb, self.alpha)


__all__ = ["PixelBuffer"]
