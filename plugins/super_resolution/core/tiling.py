"""Tile-by-tile upscaling through an external inference step."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Sequence

import numpy as np

from common.logging import get_logger

from .buffers import PixelBuffer
from .enhance import NO_ENHANCEMENT, EnhancementStrengths, enhance
from .errors import GeometryError, InferenceFailure, UpscaleCancelled
from .geometry import PaddedPlan, TileDescriptor, TileGeometry, pad_buffer, plan_padding
from .tensor_codec import (
    DEFAULT_MODE_ORDER,
    NormalizationMode,
    decode_tensor,
    encode_tile,
)

logger = get_logger(__name__)


class TileInference(Protocol):
    def __call__(self, tensor: np.ndarray) -> Awaitable[np.ndarray]: ...


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


ProgressCallback = Callable[[int, int], None]


def as_async_inference(func: Callable[[np.ndarray], Any]) -> TileInference:
    """Adapt a blocking ``tensor -> tensor`` callable to :class:`TileInference`."""

    if inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    ):
        return func

    async def _run(tensor: np.ndarray) -> np.ndarray:
        result = await asyncio.to_thread(func, tensor)
        if inspect.isawaitable(result):
            result = await result
        return result

    return _run


@dataclass(frozen=True)
class TileResult:
    buffer: PixelBuffer
    input_mode: NormalizationMode
    output_mode: NormalizationMode


@dataclass(frozen=True)
class CropMargins:
    left: int
    top: int
    right: int
    bottom: int


def crop_margins(tile: TileDescriptor, overlap: int, factor: int) -> CropMargins:
    """Overlap to discard from each side of an upscaled tile.

    Sides touching the padded buffer's border are kept whole; interior
    facing sides lose ``overlap * factor`` pixels.
    """

    margin = overlap * factor
    return CropMargins(
        left=0 if tile.is_left_edge else margin,
        top=0 if tile.is_top_edge else margin,
        right=0 if tile.is_right_edge else margin,
        bottom=0 if tile.is_bottom_edge else margin,
    )


def _attempt_modes(
    normalization: NormalizationMode, order: Sequence[NormalizationMode]
) -> tuple[NormalizationMode, ...]:
    if normalization is not NormalizationMode.AUTO:
        return (normalization,)
    modes = tuple(mode for mode in order if mode is not NormalizationMode.AUTO)
    if not modes:
        raise ValueError("Normalization order must list at least one concrete mode")
    return modes


async def infer_tile(
    tile: PixelBuffer,
    infer: TileInference,
    *,
    bgr_order: bool,
    normalization: NormalizationMode = NormalizationMode.AUTO,
    normalization_order: Sequence[NormalizationMode] = DEFAULT_MODE_ORDER,
    output_normalization: NormalizationMode = NormalizationMode.AUTO,
    bgr_output: bool = False,
    expected_dims: tuple[int, int] | None = None,
    position: tuple[int, int] | None = None,
) -> TileResult:
    """Encode, infer and decode one tile, retrying each normalization mode."""

    modes = _attempt_modes(normalization, normalization_order)
    last_error: BaseException | None = None
    for mode in modes:
        try:
            tensor = encode_tile(tile, bgr_order=bgr_order, mode=mode)
            output = await infer(tensor)
            decoded, resolved = decode_tensor(
                np.asarray(output),
                output_normalization,
                bgr_order=bgr_output,
                fallback_dims=expected_dims,
            )
        except Exception as exc:
            last_error = exc
            logger.warning(
                "Inference attempt failed (tile=%s, mode=%s): %s", position, mode.value, exc
            )
            continue
        return TileResult(buffer=decoded, input_mode=mode, output_mode=resolved)

    raise InferenceFailure(
        "Inference failed for all normalization modes",
        last_error=last_error,
        modes=[mode.value for mode in modes],
        tile=position,
    ) from last_error


def _blit(
    assembled: np.ndarray,
    upscaled: PixelBuffer,
    tile: TileDescriptor,
    margins: CropMargins,
    factor: int,
) -> None:
    src_w = upscaled.width - margins.left - margins.right
    src_h = upscaled.height - margins.top - margins.bottom
    dst_x = tile.sx * factor + margins.left
    dst_y = tile.sy * factor + margins.top
    src_w = min(src_w, assembled.shape[1] - dst_x)
    src_h = min(src_h, assembled.shape[0] - dst_y)
    if src_w <= 0 or src_h <= 0:
        logger.debug("Tile %s left nothing to place after cropping", (tile.tx, tile.ty))
        return
    assembled[dst_y : dst_y + src_h, dst_x : dst_x + src_w] = upscaled.pixels[
        margins.top : margins.top + src_h, margins.left : margins.left + src_w
    ]


@dataclass(frozen=True)
class UpscaleReport:
    buffer: PixelBuffer
    plan: PaddedPlan
    factor: int
    input_modes: tuple[str, ...]
    output_modes: tuple[str, ...]


async def run_tile_pass(
    source: PixelBuffer,
    factor: int,
    geometry: TileGeometry,
    infer: TileInference,
    *,
    normalization: NormalizationMode = NormalizationMode.AUTO,
    bgr_order: bool = False,
    strengths: EnhancementStrengths = NO_ENHANCEMENT,
    normalization_order: Sequence[NormalizationMode] = DEFAULT_MODE_ORDER,
    output_normalization: NormalizationMode = NormalizationMode.AUTO,
    bgr_output: bool = False,
    cancel: CancelToken | None = None,
    progress: ProgressCallback | None = None,
) -> UpscaleReport:
    """Upscale ``source`` tile by tile and enhance the assembled result.

    Tiles run one at a time in row-major order. A failure on any tile
    aborts the whole pass.
    """

    if int(factor) != factor or factor < 1:
        raise GeometryError(f"Upscale factor must be a positive integer, got {factor}")
    factor = int(factor)

    plan = plan_padding(source.width, source.height, geometry)
    padded = pad_buffer(source, plan)
    total = plan.tile_count
    g = geometry
    logger.info(
        "Upscaling %d tiles (%dx%d -> %dx%d), padded %dx%d",
        total,
        g.tile_width,
        g.tile_height,
        g.tile_width * factor,
        g.tile_height * factor,
        plan.padded_width,
        plan.padded_height,
    )

    assembled = np.zeros(
        (plan.padded_height * factor, plan.padded_width * factor, 4), dtype=np.uint8
    )
    input_modes: set[str] = set()
    output_modes: set[str] = set()
    expected_dims = (g.tile_height * factor, g.tile_width * factor)

    for done, tile in enumerate(plan.tiles(), start=1):
        if cancel is not None and cancel.is_set():
            raise UpscaleCancelled(f"Upscale cancelled after {done - 1} of {total} tiles")

        window = padded.crop(tile.sx, tile.sy, g.tile_width, g.tile_height)
        result = await infer_tile(
            window,
            infer,
            bgr_order=bgr_order,
            normalization=normalization,
            normalization_order=normalization_order,
            output_normalization=output_normalization,
            bgr_output=bgr_output,
            expected_dims=expected_dims,
            position=(tile.tx, tile.ty),
        )
        input_modes.add(result.input_mode.value)
        output_modes.add(result.output_mode.value)
        _blit(assembled, result.buffer, tile, crop_margins(tile, g.overlap, factor), factor)

        logger.debug("Tile %d/%d placed at (%d, %d)", done, total, tile.sx, tile.sy)
        if progress is not None:
            progress(done, total)

    final_w = source.width * factor
    final_h = source.height * factor
    upscaled = PixelBuffer(assembled[:final_h, :final_w].copy())
    return UpscaleReport(
        buffer=enhance(upscaled, strengths),
        plan=plan,
        factor=factor,
        input_modes=tuple(sorted(input_modes)),
        output_modes=tuple(sorted(output_modes)),
    )


async def upscale_tile_set(
    source: PixelBuffer,
    factor: int,
    geometry: TileGeometry,
    infer: TileInference,
    *,
    normalization: NormalizationMode = NormalizationMode.AUTO,
    bgr_order: bool = False,
    strengths: EnhancementStrengths = NO_ENHANCEMENT,
    **options: Any,
) -> PixelBuffer:
    """Return the upscaled, enhanced ``source``; see :func:`run_tile_pass`."""

    report = await run_tile_pass(
        source,
        factor,
        geometry,
        infer,
        normalization=normalization,
        bgr_order=bgr_order,
        strengths=strengths,
        **options,
    )
    return report.buffer


__all__ = [
    "TileInference",
    "CancelToken",
    "TileResult",
    "CropMargins",
    "UpscaleReport",
    "as_async_inference",
    "crop_margins",
    "infer_tile",
    "run_tile_pass",
    "upscale_tile_set",
]
