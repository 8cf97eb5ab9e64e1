"""3x3 convolution over RGBA pixel buffers with edge-clamped sampling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .buffers import PixelBuffer


@dataclass(frozen=True)
class Kernel:
    weights: tuple[float, ...]
    divisor: float = 1.0
    bias: float = 0.0

    def __post_init__(self) -> None:
        weights = tuple(float(w) for w in self.weights)
        if len(weights) != 9:
            raise ValueError("Kernel must contain exactly 9 weights")
        if self.divisor == 0:
            raise ValueError("Kernel divisor must be non-zero")
        object.__setattr__(self, "weights", weights)

    @classmethod
    def of(cls, weights: Sequence[float], divisor: float = 1.0, bias: float = 0.0) -> "Kernel":
        return cls(tuple(weights), divisor, bias)

    def as_matrix(self) -> np.ndarray:
        return np.asarray(self.weights, dtype=np.float64).reshape(3, 3)


IDENTITY = Kernel.of([0, 0, 0, 0, 1, 0, 0, 0, 0])
GAUSSIAN_3X3 = Kernel.of([1, 2, 1, 2, 4, 2, 1, 2, 1], divisor=16)
BOX_3X3 = Kernel.of([1] * 9, divisor=9)


def to_channel(values: np.ndarray) -> np.ndarray:
    """Round and clamp float channel values into the 0-255 byte range."""

    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def convolve3x3(buffer: PixelBuffer, kernel: Kernel) -> PixelBuffer:
    """Convolve the RGB channels of ``buffer`` with ``kernel``.

    Neighbours outside the buffer are sampled from the nearest edge pixel,
    so a 1x1 buffer sees its single pixel in all nine taps. Alpha is copied
    through unchanged.
    """

    rgb = buffer.rgb.astype(np.float64)
    height, width = buffer.height, buffer.width
    padded = np.pad(rgb, ((1, 1), (1, 1), (0, 0)), mode="edge")

    acc = np.zeros_like(rgb)
    matrix = kernel.as_matrix()
    for ky in range(3):
        for kx in range(3):
            weight = matrix[ky, kx]
            if weight == 0:
                continue
            acc += weight * padded[ky : ky + height, kx : kx + width]

    out = acc / kernel.divisor + kernel.bias
    return buffer.with_rgb(to_channel(out))


__all__ = ["Kernel", "IDENTITY", "GAUSSIAN_3X3", "BOX_3X3", "convolve3x3", "to_channel"]
