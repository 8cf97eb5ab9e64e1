"""Conversion between RGBA tiles and channel-planar float32 model tensors."""

from __future__ import annotations

from enum import Enum

import numpy as np

from .buffers import PixelBuffer
from .errors import SizeMismatch


class NormalizationMode(str, Enum):
    ZERO_TO_ONE = "0to1"
    NEG_ONE_TO_ONE = "neg1to1"
    ZERO_TO_255 = "0to255"
    AUTO = "auto"

    @classmethod
    def parse(cls, value: "str | NormalizationMode | None") -> "NormalizationMode":
        if isinstance(value, cls):
            return value
        normalized = str(value or "auto").strip().lower().replace("_", "").replace("-", "")
        aliases = {
            "0to1": cls.ZERO_TO_ONE,
            "zerotoone": cls.ZERO_TO_ONE,
            "neg1to1": cls.NEG_ONE_TO_ONE,
            "negonetoone": cls.NEG_ONE_TO_ONE,
            "0to255": cls.ZERO_TO_255,
            "zeroto255": cls.ZERO_TO_255,
            "auto": cls.AUTO,
        }
        try:
            return aliases[normalized]
        except KeyError as exc:
            raise ValueError(f"Unknown normalization mode '{value}'") from exc


DEFAULT_MODE_ORDER: tuple[NormalizationMode, ...] = (
    NormalizationMode.ZERO_TO_ONE,
    NormalizationMode.NEG_ONE_TO_ONE,
    NormalizationMode.ZERO_TO_255,
)


def encode_tile(
    tile: PixelBuffer, *, bgr_order: bool, mode: NormalizationMode
) -> np.ndarray:
    """Encode ``tile`` into a ``(1, 3, H, W)`` float32 tensor.

    ``mode`` must be concrete; resolving ``AUTO`` by retrying each mode is
    the orchestrator's job.
    """

    if mode is NormalizationMode.AUTO:
        raise ValueError("encode_tile needs a concrete normalization mode")
    if tile.width <= 0 or tile.height <= 0:
        raise ValueError("Tile dimensions must be positive")

    rgb = tile.rgb.astype(np.float32)
    if mode is NormalizationMode.ZERO_TO_ONE:
        rgb = rgb / 255.0
    elif mode is NormalizationMode.NEG_ONE_TO_ONE:
        rgb = (rgb / 255.0 - 0.5) / 0.5

    if bgr_order:
        rgb = rgb[:, :, ::-1]
    planar = np.ascontiguousarray(rgb.transpose(2, 0, 1), dtype=np.float32)
    return planar[np.newaxis, ...]


def resolve_output_mode(samples: np.ndarray) -> NormalizationMode:
    """Guess the output range of a model from its finite samples."""

    finite = samples[np.isfinite(samples)]
    if finite.size == 0:
        return NormalizationMode.ZERO_TO_ONE
    if float(finite.min()) < 0:
        return NormalizationMode.NEG_ONE_TO_ONE
    if float(finite.max()) > 1.5:
        return NormalizationMode.ZERO_TO_255
    return NormalizationMode.ZERO_TO_ONE


def _denormalize(planes: np.ndarray, mode: NormalizationMode) -> np.ndarray:
    values = planes.astype(np.float64)
    if mode is NormalizationMode.NEG_ONE_TO_ONE:
        values = (values * 0.5 + 0.5) * 255.0
    elif mode is NormalizationMode.ZERO_TO_ONE:
        values = values * 255.0
    values = np.where(np.isfinite(values), values, 0.0)
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def tensor_dims(tensor: np.ndarray, fallback: tuple[int, int] | None = None) -> tuple[int, int]:
    """Return ``(height, width)`` read from an NCHW tensor shape.

    Tensors without a usable 4-D shape fall back to ``fallback``.
    """

    shape = tuple(int(d) for d in np.shape(tensor))
    if len(shape) == 4 and shape[2] > 0 and shape[3] > 0:
        return shape[2], shape[3]
    if fallback is None:
        raise ValueError(f"Cannot read tile dimensions from tensor shape {shape}")
    return fallback


def decode_tensor(
    tensor: np.ndarray,
    mode: NormalizationMode = NormalizationMode.AUTO,
    *,
    bgr_order: bool = False,
    fallback_dims: tuple[int, int] | None = None,
) -> tuple[PixelBuffer, NormalizationMode]:
    """Decode a model output tensor into an opaque RGBA buffer.

    Returns the buffer and the concrete mode used, which differs from
    ``mode`` only when ``mode`` is ``AUTO``.
    """

    height, width = tensor_dims(tensor, fallback_dims)
    plane = height * width
    flat = np.asarray(tensor, dtype=np.float32).reshape(-1)
    if flat.size < plane * 3:
        raise SizeMismatch(expected=plane * 3, actual=int(flat.size))

    planes = flat[: plane * 3].reshape(3, height, width)
    if mode is NormalizationMode.AUTO:
        mode = resolve_output_mode(planes)
    if bgr_order:
        planes = planes[::-1]

    rgb = _denormalize(planes, mode).transpose(1, 2, 0)
    return PixelBuffer.from_rgb(rgb, 255), mode


__all__ = [
    "NormalizationMode",
    "DEFAULT_MODE_ORDER",
    "encode_tile",
    "decode_tensor",
    "resolve_output_mode",
    "tensor_dims",
]
