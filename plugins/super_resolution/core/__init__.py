"""Super resolution core functionality."""

from .buffers import PixelBuffer
from .convolution import BOX_3X3, GAUSSIAN_3X3, IDENTITY, Kernel, convolve3x3
from .engine import (
    ModelBundle,
    ModelSpec,
    UpscaleOptions,
    UpscaleResult,
    classic_upscale,
    enhance_image,
    get_runner,
    import_error,
    is_available,
    model_cached,
    resolve_geometry,
    select_device,
    upscale_image,
)
from .enhance import (
    EnhancementStrengths,
    denoise,
    enhance,
    high_pass_boost,
    unsharp_mask,
)
from .errors import (
    GeometryError,
    InferenceFailure,
    SizeMismatch,
    SuperResolutionError,
    SuperResolutionInputError,
    SuperResolutionModelError,
    SuperResolutionUnavailableError,
    UpscaleCancelled,
)
from .geometry import PaddedPlan, TileDescriptor, TileGeometry, pad_buffer, plan_padding
from .settings import SuperResolutionSettings, load_settings
from .tensor_codec import NormalizationMode, decode_tensor, encode_tile
from .tiling import (
    as_async_inference,
    crop_margins,
    infer_tile,
    run_tile_pass,
    upscale_tile_set,
)

__all__ = [
    "PixelBuffer",
    "Kernel",
    "IDENTITY",
    "GAUSSIAN_3X3",
    "BOX_3X3",
    "convolve3x3",
    "EnhancementStrengths",
    "denoise",
    "unsharp_mask",
    "high_pass_boost",
    "enhance",
    "NormalizationMode",
    "encode_tile",
    "decode_tensor",
    "TileGeometry",
    "TileDescriptor",
    "PaddedPlan",
    "plan_padding",
    "pad_buffer",
    "as_async_inference",
    "crop_margins",
    "infer_tile",
    "run_tile_pass",
    "upscale_tile_set",
    "ModelBundle",
    "ModelSpec",
    "UpscaleOptions",
    "UpscaleResult",
    "SuperResolutionError",
    "SuperResolutionInputError",
    "SuperResolutionModelError",
    "SuperResolutionUnavailableError",
    "GeometryError",
    "InferenceFailure",
    "SizeMismatch",
    "UpscaleCancelled",
    "SuperResolutionSettings",
    "load_settings",
    "classic_upscale",
    "enhance_image",
    "get_runner",
    "import_error",
    "is_available",
    "model_cached",
    "resolve_geometry",
    "select_device",
    "upscale_image",
]
