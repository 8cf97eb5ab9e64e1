"""Super resolution API blueprint."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from flask import Blueprint, Response, current_app, request, send_file
from pydantic import Field

from common.errors import (
    InternalAppError,
    UnavailableAppError,
    UpstreamAppError,
    ValidationAppError,
)
from common.forms import get_choice, get_int, get_strength
from common.io import buffer_from_bytes, download_name
from common.logging import get_logger
from common.responses import fail, ok
from common.validation import (
    SchemaModel,
    ValidationError,
    file_size,
    parse_model,
    validate_mime,
)

from ..core import (
    EnhancementStrengths,
    GeometryError,
    InferenceFailure,
    NormalizationMode,
    SuperResolutionInputError,
    SuperResolutionModelError,
    SuperResolutionUnavailableError,
    TileGeometry,
    UpscaleResult,
    crop_margins,
    enhance_image,
    import_error,
    is_available,
    load_settings,
    model_cached,
    plan_padding,
    select_device,
    upscale_image,
)

api_bp = Blueprint(
    "super_resolution_api", __name__, url_prefix="/api/v1/super_resolution"
)
logger = get_logger(__name__)

ALLOWED_MIME = {"image/png", "image/jpeg", "image/webp", "image/bmp", "image/tiff"}
MAX_PLAN_SIDE = 16384
MAX_PLAN_TILES = 4096


class PlanRequest(SchemaModel):
    width: int = Field(gt=0, le=MAX_PLAN_SIDE)
    height: int = Field(gt=0, le=MAX_PLAN_SIDE)
    factor: int = Field(default=2, ge=1, le=8)
    tile_width: int | None = Field(default=None, gt=0)
    tile_height: int | None = Field(default=None, gt=0)
    overlap: int | None = Field(default=None, ge=0)


def _repo_root() -> Path:
    return Path(current_app.root_path).resolve().parent


def _settings():
    settings = current_app.config.get("PLUGIN_SETTINGS", {}).get("super_resolution", {})
    return load_settings(settings, root=_repo_root())


def _invalid(message: str, code: str, *, status: int | None = None) -> Response:
    return fail(ValidationAppError(message=message, code=code), status=status)


def _parse_strengths(defaults: EnhancementStrengths) -> EnhancementStrengths:
    form = request.form
    return EnhancementStrengths(
        denoise=get_strength(form, "denoise", defaults.denoise),
        detail=get_strength(form, "detail", defaults.detail),
        micro=get_strength(form, "micro", defaults.micro),
    )


def _select_model_name(models: dict[str, object], requested: str | None, scale: int, default: str) -> str:
    if requested:
        if requested not in models:
            raise ValidationError("Unknown model selection")
        return requested
    for name, spec in models.items():
        if getattr(spec, "scale", None) == scale:
            return name
    if default in models:
        return default
    return next(iter(models.keys()))


def _read_upload(settings) -> tuple[bytes | None, Response | None]:
    file = request.files.get("image")
    if not file:
        return None, _invalid("Image file is required", "super_resolution.missing_image")

    if file_size(file) > max(1, settings.max_upload_mb) * 1024 * 1024:
        return None, _invalid(
            f"File exceeds {settings.max_upload_mb} MB limit",
            "super_resolution.too_large",
            status=413,
        )
    try:
        validate_mime([file], ALLOWED_MIME)
    except ValidationError as exc:
        return None, _invalid(str(exc), "super_resolution.invalid_upload")

    try:
        file.stream.seek(0)
    except (AttributeError, OSError):
        pass
    return file.read(), None


def _send_result(result: UpscaleResult, stem: str) -> Response:
    response = send_file(
        buffer_from_bytes(result.image_bytes),
        mimetype="image/png" if result.output_format == "png" else "image/jpeg",
        as_attachment=True,
        download_name=download_name(stem, result.output_format),
        max_age=0,
    )
    response.headers["X-Upscale-Method"] = result.method
    response.headers["X-Upscale-Size"] = f"{result.width}x{result.height}"
    if result.tiles:
        response.headers["X-Upscale-Tiles"] = str(result.tiles)
    if result.normalization:
        response.headers["X-Upscale-Normalization"] = ",".join(result.normalization)
    return response


@api_bp.get("/health")
def health() -> Response:
    settings = _settings()
    device = select_device(settings.device)
    default_spec = settings.models.get(settings.default_model)
    model_name = default_spec.name if default_spec else settings.default_model
    loaded = False
    if default_spec:
        loaded = model_cached(default_spec, device)
    payload = {
        "status": "ok",
        "model_loaded": loaded,
        "model_name": model_name,
        "device": device,
        "backend_available": is_available(default_spec.backend if default_spec else None),
        "import_error": import_error(),
        "models": {
            name: {"scale": spec.scale, "backend": spec.backend}
            for name, spec in settings.models.items()
        },
    }
    return ok(payload, headers={"Cache-Control": "no-store"})


@api_bp.post("/plan")
def plan() -> Response:
    try:
        params = parse_model(PlanRequest, request.get_json(silent=True))
    except ValidationError as exc:
        return fail(
            ValidationAppError(
                message=str(exc),
                code="super_resolution.invalid_parameters",
                details={"errors": exc.details},
            )
        )

    settings = _settings()
    try:
        if params.overlap is None:
            geometry = TileGeometry.from_hint(
                params.tile_width,
                params.tile_height,
                factor=params.factor,
                max_overlap=settings.options.tile_overlap,
            )
        else:
            hinted = TileGeometry.from_hint(
                params.tile_width, params.tile_height, factor=params.factor
            )
            geometry = TileGeometry(hinted.tile_width, hinted.tile_height, params.overlap)
        padded = plan_padding(params.width, params.height, geometry)
    except GeometryError as exc:
        return _invalid(str(exc), "super_resolution.invalid_geometry")
    if padded.tile_count > MAX_PLAN_TILES:
        return _invalid(
            f"Plan needs {padded.tile_count} tiles; the limit is {MAX_PLAN_TILES}",
            "super_resolution.invalid_geometry",
        )

    factor = params.factor
    tiles = []
    for tile in padded.tiles():
        margins = crop_margins(tile, geometry.overlap, factor)
        tiles.append(
            {
                "tx": tile.tx,
                "ty": tile.ty,
                "sx": tile.sx,
                "sy": tile.sy,
                "crop": {
                    "left": margins.left,
                    "top": margins.top,
                    "right": margins.right,
                    "bottom": margins.bottom,
                },
                "dest": {
                    "x": tile.sx * factor + margins.left,
                    "y": tile.sy * factor + margins.top,
                    "width": geometry.tile_width * factor - margins.left - margins.right,
                    "height": geometry.tile_height * factor - margins.top - margins.bottom,
                },
            }
        )

    return ok(
        {
            "tile_width": geometry.tile_width,
            "tile_height": geometry.tile_height,
            "overlap": geometry.overlap,
            "stride_x": geometry.stride_x,
            "stride_y": geometry.stride_y,
            "padded_width": padded.padded_width,
            "padded_height": padded.padded_height,
            "tiles_x": padded.tiles_x,
            "tiles_y": padded.tiles_y,
            "output_width": params.width * factor,
            "output_height": params.height * factor,
            "tiles": tiles,
        }
    )


@api_bp.post("/enhance")
def enhance() -> Response:
    settings = _settings()
    data, error = _read_upload(settings)
    if error is not None:
        return error

    try:
        strengths = _parse_strengths(settings.options.enhancement)
        output_format = get_choice(
            request.form, "output_format", "png", choices={"png", "jpg", "jpeg"}
        )
    except ValidationError as exc:
        return _invalid(str(exc), "super_resolution.invalid_parameters")

    try:
        result = enhance_image(data, strengths=strengths, output_format=output_format)
    except SuperResolutionInputError as exc:
        return _invalid(str(exc), "super_resolution.invalid_input")
    return _send_result(result, "enhanced")


@api_bp.post("/predict")
def predict() -> Response:
    settings = _settings()
    if not settings.enabled:
        return _invalid(
            "Super-resolution is disabled in config.yml",
            "super_resolution.disabled",
            status=404,
        )

    data, error = _read_upload(settings)
    if error is not None:
        return error

    try:
        scale = get_int(request.form, "scale", settings.default_scale, choices={2, 4})
        output_format = get_choice(
            request.form, "output_format", "png", choices={"png", "jpg", "jpeg"}
        )
        strengths = _parse_strengths(settings.options.enhancement)
        normalization = NormalizationMode.parse(
            request.form.get("normalization") or settings.options.normalization.value
        )
        model_name = _select_model_name(
            settings.models,
            request.form.get("model"),
            scale,
            settings.default_model,
        )
    except (ValidationError, ValueError) as exc:
        return _invalid(str(exc), "super_resolution.invalid_parameters")

    spec = settings.models.get(model_name)
    if not spec:
        return _invalid("Unknown model selection", "super_resolution.invalid_model")
    if spec.scale != scale:
        return _invalid(
            "Selected model does not match requested scale",
            "super_resolution.scale_mismatch",
        )

    options = settings.options
    if normalization is not options.normalization:
        options = replace(options, normalization=normalization)

    device = select_device(settings.device)
    try:
        result = upscale_image(
            data,
            spec=spec,
            device=device,
            output_format=output_format,
            options=options,
            strengths=strengths,
        )
    except SuperResolutionUnavailableError as exc:
        return fail(UnavailableAppError.from_exception(exc, code="super_resolution.unavailable"))
    except SuperResolutionModelError as exc:
        return fail(InternalAppError.from_exception(exc, code="super_resolution.missing_weights"))
    except GeometryError as exc:
        return _invalid(str(exc), "super_resolution.invalid_geometry")
    except InferenceFailure as exc:
        logger.error("Inference failed for %s: %s", spec.name, exc.last_error)
        return fail(
            UpstreamAppError.from_exception(
                exc,
                code="super_resolution.inference_failed",
                details={"modes": list(exc.modes), "cause": repr(exc.last_error)},
            )
        )
    except SuperResolutionInputError as exc:
        return _invalid(str(exc), "super_resolution.invalid_input")

    return _send_result(result, "upscaled")


blueprints = [api_bp]


__all__ = ["blueprints", "health", "plan", "enhance", "predict"]
