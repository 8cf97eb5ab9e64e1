"""Tiled super-resolution pipeline backed by ONNX Runtime or Real-ESRGAN weights."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Sequence

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from common.imaging import bytes_to_image, image_to_bytes
from common.logging import get_logger

from .buffers import PixelBuffer
from .enhance import NO_ENHANCEMENT, EnhancementStrengths, enhance
from .errors import (
    InferenceFailure,
    SuperResolutionInputError,
    SuperResolutionModelError,
    SuperResolutionUnavailableError,
)
from .geometry import DEFAULT_OVERLAP, TileGeometry
from .tensor_codec import DEFAULT_MODE_ORDER, NormalizationMode
from .tiling import CancelToken, TileInference, as_async_inference, run_tile_pass

ONNX_AVAILABLE = False
TORCH_AVAILABLE = False
IMPORT_ERRORS: dict[str, str] = {}

try:  # Optional dependency (heavy)
    import onnxruntime as ort

    ONNX_AVAILABLE = True
except Exception as exc:  # pragma: no cover - exercised in integration
    IMPORT_ERRORS["onnx"] = repr(exc)

try:  # Optional dependency (heavy)
    import torch
    from basicsr.archs.rrdbnet_arch import RRDBNet

    TORCH_AVAILABLE = True
except Exception as exc:  # pragma: no cover - exercised in integration
    IMPORT_ERRORS["torch"] = repr(exc)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    name: str
    weights_path: Path
    scale: int
    tile_size: int | None = None
    bgr: bool | None = None
    num_block: int = 23
    num_feat: int = 64
    num_grow_ch: int = 32

    @property
    def backend(self) -> str:
        return "onnx" if self.weights_path.suffix.lower() == ".onnx" else "torch"


@dataclass(frozen=True)
class UpscaleOptions:
    tile_overlap: int = DEFAULT_OVERLAP
    normalization: NormalizationMode = NormalizationMode.AUTO
    normalization_order: tuple[NormalizationMode, ...] = DEFAULT_MODE_ORDER
    output_normalization: NormalizationMode = NormalizationMode.AUTO
    bgr_input: bool = True
    bgr_output: bool = False
    fallback_to_classic: bool = True
    enhancement: EnhancementStrengths = field(
        default_factory=lambda: EnhancementStrengths(denoise=0.15, detail=0.60, micro=0.30)
    )


@dataclass(frozen=True)
class UpscaleResult:
    image_bytes: bytes
    width: int
    height: int
    scale: float
    output_format: str
    method: str = "ai"
    tiles: int = 0
    normalization: tuple[str, ...] = ()


class OnnxTileModel:
    """Blocking ``tensor -> tensor`` runner around an ONNX Runtime session."""

    def __init__(self, weights_path: Path, device: str):
        providers = ["CPUExecutionProvider"]
        if device == "cuda" and "CUDAExecutionProvider" in ort.get_available_providers():
            providers.insert(0, "CUDAExecutionProvider")
        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        self.session = ort.InferenceSession(
            str(weights_path), sess_options=options, providers=providers
        )
        model_input = self.session.get_inputs()[0]
        self.input_name = model_input.name
        self.input_shape = list(model_input.shape or [])

    def input_dims(self) -> tuple[int, int] | None:
        """Fixed ``(height, width)`` declared by the model, if any."""

        if len(self.input_shape) != 4:
            return None
        height, width = self.input_shape[2], self.input_shape[3]
        if isinstance(height, int) and isinstance(width, int) and height > 0 and width > 0:
            return height, width
        return None

    def __call__(self, tensor: np.ndarray) -> np.ndarray:
        outputs = self.session.run(None, {self.input_name: tensor})
        return np.asarray(outputs[0])


class TorchTileModel:
    """Blocking runner for Real-ESRGAN ``RRDBNet`` weights."""

    def __init__(self, spec: ModelSpec, device: str):
        model = RRDBNet(
            num_in_ch=3,
            num_out_ch=3,
            num_feat=spec.num_feat,
            num_block=spec.num_block,
            num_grow_ch=spec.num_grow_ch,
            scale=spec.scale,
        )
        state = torch.load(spec.weights_path, map_location="cpu")
        if isinstance(state, dict):
            for key in ("params_ema", "params"):
                if key in state:
                    state = state[key]
                    break
            model.load_state_dict(state, strict=True)
        else:
            raise SuperResolutionModelError("Unsupported model serialization format")
        model.eval()
        self.device = torch.device(device)
        self.model = model.to(self.device)

    def input_dims(self) -> tuple[int, int] | None:
        return None

    def __call__(self, tensor: np.ndarray) -> np.ndarray:
        with torch.no_grad():
            batch = torch.from_numpy(tensor).to(self.device)
            output = self.model(batch)
        return output.float().cpu().numpy()


@dataclass(frozen=True)
class ModelBundle:
    spec: ModelSpec
    device: str
    runner: Any

    @property
    def infer(self) -> TileInference:
        return as_async_inference(self.runner)

    def input_dims(self) -> tuple[int, int] | None:
        return self.runner.input_dims()


_MODEL_CACHE: dict[tuple[str, str], ModelBundle] = {}
_MODEL_LOCK = Lock()


def is_available(backend: str | None = None) -> bool:
    if backend == "onnx":
        return ONNX_AVAILABLE
    if backend == "torch":
        return TORCH_AVAILABLE
    return ONNX_AVAILABLE or TORCH_AVAILABLE


def import_error() -> str | None:
    if not IMPORT_ERRORS:
        return None
    return "; ".join(f"{name}: {message}" for name, message in sorted(IMPORT_ERRORS.items()))


def select_device(preference: str) -> str:
    normalized = (preference or "auto").lower()
    if normalized not in {"auto", "cpu", "cuda"}:
        normalized = "auto"
    if normalized == "cpu":
        return "cpu"
    if TORCH_AVAILABLE and torch.cuda.is_available():
        return "cuda"
    if ONNX_AVAILABLE and "CUDAExecutionProvider" in ort.get_available_providers():
        return "cuda"
    return "cpu"


def model_cached(spec: ModelSpec, device: str) -> bool:
    return (spec.name, device) in _MODEL_CACHE


def _load_runner(spec: ModelSpec, device: str) -> ModelBundle:
    if not is_available(spec.backend):
        raise SuperResolutionUnavailableError(
            f"The {spec.backend} runtime is unavailable. "
            + ("Install onnxruntime." if spec.backend == "onnx" else "Install torch and basicsr.")
        )
    if not spec.weights_path.exists():
        raise SuperResolutionModelError(f"Missing weights file: {spec.weights_path}")

    try:
        if spec.backend == "onnx":
            runner: Any = OnnxTileModel(spec.weights_path, device)
        else:
            runner = TorchTileModel(spec, device)
    except SuperResolutionModelError:
        raise
    except Exception as exc:
        raise SuperResolutionModelError(f"Failed to load {spec.name}: {exc}") from exc
    logger.info("Loaded %s model %s on %s", spec.backend, spec.name, device)
    return ModelBundle(spec=spec, device=device, runner=runner)


def get_runner(spec: ModelSpec, device: str) -> ModelBundle:
    key = (spec.name, device)
    bundle = _MODEL_CACHE.get(key)
    if bundle is not None:
        return bundle
    with _MODEL_LOCK:
        bundle = _MODEL_CACHE.get(key)
        if bundle is not None:
            return bundle
        bundle = _load_runner(spec, device)
        _MODEL_CACHE[key] = bundle
        return bundle


def resolve_geometry(
    spec: ModelSpec,
    options: UpscaleOptions,
    model_dims: tuple[int, int] | None = None,
) -> TileGeometry:
    """Pick the tile shape: model metadata, then the spec, then the scale default."""

    if model_dims:
        height, width = model_dims
        return TileGeometry.from_hint(
            width, height, factor=spec.scale, max_overlap=options.tile_overlap
        )
    return TileGeometry.from_hint(
        spec.tile_size, spec.tile_size, factor=spec.scale, max_overlap=options.tile_overlap
    )


def decode_image(data: bytes) -> Image.Image:
    try:
        image = bytes_to_image(data)
        return ImageOps.exif_transpose(image)
    except (UnidentifiedImageError, OSError) as exc:
        raise SuperResolutionInputError("Unsupported or corrupted image stream") from exc


def prepare_buffer(image: Image.Image) -> PixelBuffer:
    """Flatten transparency onto white and return an opaque RGBA buffer."""

    if image.mode in {"RGBA", "LA", "PA"} or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        background.alpha_composite(rgba)
        return PixelBuffer.from_image(background)
    return PixelBuffer.from_image(image.convert("RGB"))


def normalize_output_format(value: str) -> str:
    normalized = (value or "png").lower()
    if normalized in {"jpg", "jpeg"}:
        return "jpg"
    if normalized == "png":
        return "png"
    raise SuperResolutionInputError("Output format must be png or jpg")


def encode_buffer(buffer: PixelBuffer, output_format: str) -> bytes:
    fmt = normalize_output_format(output_format)
    image = buffer.to_image()
    if fmt == "jpg":
        return image_to_bytes(image.convert("RGB"), format="JPEG", quality=95)
    return image_to_bytes(image, format="PNG")


def classic_upscale(
    buffer: PixelBuffer, factor: int, strengths: EnhancementStrengths = NO_ENHANCEMENT
) -> PixelBuffer:
    """Bicubic resize followed by the enhancement passes."""

    width = max(1, round(buffer.width * factor))
    height = max(1, round(buffer.height * factor))
    resized = buffer.to_image().resize((width, height), Image.BICUBIC)
    return enhance(PixelBuffer.from_image(resized), strengths)


def _result(
    buffer: PixelBuffer,
    *,
    scale: float,
    output_format: str,
    method: str,
    tiles: int = 0,
    normalization: Sequence[str] = (),
) -> UpscaleResult:
    fmt = normalize_output_format(output_format)
    return UpscaleResult(
        image_bytes=encode_buffer(buffer, fmt),
        width=buffer.width,
        height=buffer.height,
        scale=scale,
        output_format=fmt,
        method=method,
        tiles=tiles,
        normalization=tuple(normalization),
    )


def upscale_buffer(
    buffer: PixelBuffer,
    bundle: ModelBundle,
    *,
    options: UpscaleOptions,
    strengths: EnhancementStrengths | None = None,
    cancel: CancelToken | None = None,
):
    """Run the tiled pass for ``buffer`` synchronously and return its report."""

    spec = bundle.spec
    geometry = resolve_geometry(spec, options, bundle.input_dims())
    return asyncio.run(
        run_tile_pass(
            buffer,
            spec.scale,
            geometry,
            bundle.infer,
            normalization=options.normalization,
            bgr_order=options.bgr_input if spec.bgr is None else spec.bgr,
            strengths=strengths if strengths is not None else options.enhancement,
            normalization_order=options.normalization_order,
            output_normalization=options.output_normalization,
            bgr_output=options.bgr_output,
            cancel=cancel,
        )
    )


def upscale_image(
    data: bytes,
    *,
    spec: ModelSpec,
    device: str,
    output_format: str,
    options: UpscaleOptions | None = None,
    strengths: EnhancementStrengths | None = None,
    cancel: CancelToken | None = None,
) -> UpscaleResult:
    options = options or UpscaleOptions()
    strengths = strengths if strengths is not None else options.enhancement
    normalize_output_format(output_format)

    buffer = prepare_buffer(decode_image(data))

    try:
        bundle = get_runner(spec, device)
        report = upscale_buffer(
            buffer, bundle, options=options, strengths=strengths, cancel=cancel
        )
    except (SuperResolutionUnavailableError, InferenceFailure) as exc:
        if not options.fallback_to_classic:
            raise
        logger.warning("AI upscale unavailable (%s); using classic resize", exc)
        classic = classic_upscale(buffer, spec.scale, strengths)
        return _result(classic, scale=float(spec.scale), output_format=output_format, method="classic")
    return _result(
        report.buffer,
        scale=float(report.factor),
        output_format=output_format,
        method="ai",
        tiles=report.plan.tile_count,
        normalization=report.input_modes,
    )


def enhance_image(
    data: bytes, *, strengths: EnhancementStrengths, output_format: str
) -> UpscaleResult:
    buffer = prepare_buffer(decode_image(data))
    enhanced = enhance(buffer, strengths)
    return _result(enhanced, scale=1.0, output_format=output_format, method="enhance")


__all__ = [
    "ModelSpec",
    "ModelBundle",
    "UpscaleOptions",
    "UpscaleResult",
    "OnnxTileModel",
    "TorchTileModel",
    "is_available",
    "import_error",
    "select_device",
    "model_cached",
    "get_runner",
    "resolve_geometry",
    "decode_image",
    "prepare_buffer",
    "normalize_output_format",
    "encode_buffer",
    "classic_upscale",
    "upscale_buffer",
    "upscale_image",
    "enhance_image",
]
