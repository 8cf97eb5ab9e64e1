"""Denoise, unsharp-mask and high-pass boost passes built on ``convolve3x3``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import numpy as np

from .buffers import PixelBuffer
from .convolution import BOX_3X3, GAUSSIAN_3X3, convolve3x3, to_channel


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class EnhancementStrengths:
    denoise: float = 0.0
    detail: float = 0.0
    micro: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "denoise", _clamp_unit(self.denoise))
        object.__setattr__(self, "detail", _clamp_unit(self.detail))
        object.__setattr__(self, "micro", _clamp_unit(self.micro))

    @classmethod
    def from_mapping(
        cls, raw: Mapping[str, object] | None, *, defaults: "EnhancementStrengths | None" = None
    ) -> "EnhancementStrengths":
        base = defaults or cls()
        raw = raw or {}

        def _pick(key: str, fallback: float) -> float:
            try:
                return float(raw.get(key, fallback))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                return fallback

        return cls(
            denoise=_pick("denoise", base.denoise),
            detail=_pick("detail", base.detail),
            micro=_pick("micro", base.micro),
        )

    @property
    def is_noop(self) -> bool:
        return self.denoise == 0 and self.detail == 0 and self.micro == 0


NO_ENHANCEMENT = EnhancementStrengths()


def denoise(buffer: PixelBuffer, amount: float) -> PixelBuffer:
    """Blend ``buffer`` towards its Gaussian blur by ``amount``."""

    mix = _clamp_unit(amount)
    if mix == 0:
        return buffer
    blurred = convolve3x3(buffer, GAUSSIAN_3X3)
    original = buffer.rgb.astype(np.float64)
    out = original * (1 - mix) + blurred.rgb.astype(np.float64) * mix
    # Halves round up here, unlike the convolution passes.
    return buffer.with_rgb(to_channel(np.floor(out + 0.5)))


def _push_from_box_blur(buffer: PixelBuffer, amount: float) -> PixelBuffer:
    blurred = convolve3x3(buffer, BOX_3X3)
    source = buffer.rgb.astype(np.float64)
    residual = source - blurred.rgb.astype(np.float64)
    return buffer.with_rgb(to_channel(source + residual * amount))


def unsharp_mask(buffer: PixelBuffer, amount: float) -> PixelBuffer:
    """Push every channel away from its 3x3 box blur by ``amount``."""

    amount = _clamp_unit(amount)
    if amount == 0:
        return buffer
    return _push_from_box_blur(buffer, amount)


def high_pass_boost(buffer: PixelBuffer, strength: float) -> PixelBuffer:
    """Add the high-frequency residual (input minus box blur) scaled by ``strength``."""

    strength = _clamp_unit(strength)
    if strength == 0:
        return buffer
    return _push_from_box_blur(buffer, strength)


def enhance(buffer: PixelBuffer, strengths: EnhancementStrengths = NO_ENHANCEMENT) -> PixelBuffer:
    """Run denoise, then unsharp mask, then high-pass boost.

    Each pass takes the previous pass's output as its baseline, so the order
    is fixed.
    """

    work = denoise(buffer, strengths.denoise)
    work = unsharp_mask(work, strengths.detail)
    work = high_pass_boost(work, strengths.micro)
    return work


__all__ = [
    "EnhancementStrengths",
    "NO_ENHANCEMENT",
    "denoise",
    "unsharp_mask",
    "high_pass_boost",
    "enhance",
]
