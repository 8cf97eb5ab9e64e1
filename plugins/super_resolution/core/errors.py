"""Error types raised by the super-resolution core."""

from __future__ import annotations

from typing import Sequence


class SuperResolutionError(RuntimeError):
    """Base error for super-resolution failures."""


class SuperResolutionUnavailableError(SuperResolutionError):
    """Raised when the optional inference runtime is missing."""


class SuperResolutionModelError(SuperResolutionError):
    """Raised when model weights cannot be loaded."""


class SuperResolutionInputError(SuperResolutionError):
    """Raised when the input image is invalid."""


class GeometryError(SuperResolutionError):
    """Raised for non-positive tile, stride or overlap configuration."""


class SizeMismatch(SuperResolutionError):
    """Raised when a model output tensor holds fewer samples than its shape needs."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Model output size mismatch. got={actual}, expected={expected}"
        )
        self.expected = expected
        self.actual = actual


class InferenceFailure(SuperResolutionError):
    """Raised when every normalization mode failed for a tile."""

    def __init__(
        self,
        message: str,
        *,
        last_error: BaseException | None = None,
        modes: Sequence[str] = (),
        tile: tuple[int, int] | None = None,
    ):
        super().__init__(message)
        self.last_error = last_error
        self.modes = tuple(modes)
        self.tile = tile


class UpscaleCancelled(SuperResolutionError):
    """Raised when the caller cancels an upscale between tiles."""


__all__ = [
    "SuperResolutionError",
    "SuperResolutionUnavailableError",
    "SuperResolutionModelError",
    "SuperResolutionInputError",
    "GeometryError",
    "SizeMismatch",
    "InferenceFailure",
    "UpscaleCancelled",
]
