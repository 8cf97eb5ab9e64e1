"""Configuration helpers for super-resolution."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .engine import ModelSpec, UpscaleOptions
from .enhance import EnhancementStrengths
from .geometry import DEFAULT_OVERLAP
from .tensor_codec import DEFAULT_MODE_ORDER, NormalizationMode

DEFAULT_ENHANCEMENT = EnhancementStrengths(denoise=0.15, detail=0.60, micro=0.30)


@dataclass(frozen=True)
class SuperResolutionSettings:
    enabled: bool
    device: str
    max_upload_mb: int
    default_scale: int
    default_model: str
    weights_dir: Path
    models: dict[str, ModelSpec]
    options: UpscaleOptions


def _resolve_path(root: Path, value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return (root / path).resolve()


def _as_int(value: Any, default: int) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_mode(value: Any, default: NormalizationMode) -> NormalizationMode:
    try:
        return NormalizationMode.parse(value) if value is not None else default
    except ValueError:
        return default


def _mode_order(value: Any) -> tuple[NormalizationMode, ...]:
    if not isinstance(value, (list, tuple)):
        return DEFAULT_MODE_ORDER
    modes: list[NormalizationMode] = []
    for item in value:
        mode = _as_mode(item, NormalizationMode.AUTO)
        if mode is not NormalizationMode.AUTO and mode not in modes:
            modes.append(mode)
    return tuple(modes) or DEFAULT_MODE_ORDER


def _model_defaults(weights_dir: Path) -> dict[str, ModelSpec]:
    return {
        "realesrgan_x2": ModelSpec(
            name="realesrgan_x2",
            weights_path=weights_dir / "realesrgan_x2.onnx",
            scale=2,
        ),
        "realesrgan_x4": ModelSpec(
            name="realesrgan_x4",
            weights_path=weights_dir / "realesrgan_x4.onnx",
            scale=4,
        ),
    }


def _load_options(raw: Mapping[str, Any]) -> UpscaleOptions:
    tiling = raw.get("tiling")
    tiling = tiling if isinstance(tiling, Mapping) else {}
    enhancement = raw.get("enhancement")
    return UpscaleOptions(
        tile_overlap=max(0, _as_int(tiling.get("overlap", raw.get("tile_overlap")), DEFAULT_OVERLAP)),
        normalization=_as_mode(raw.get("normalization"), NormalizationMode.AUTO),
        normalization_order=_mode_order(raw.get("normalization_order")),
        output_normalization=_as_mode(raw.get("output_normalization"), NormalizationMode.AUTO),
        bgr_input=_as_bool(raw.get("bgr_input"), True),
        bgr_output=_as_bool(raw.get("bgr_output"), False),
        fallback_to_classic=_as_bool(raw.get("fallback_to_classic"), True),
        enhancement=EnhancementStrengths.from_mapping(
            enhancement if isinstance(enhancement, Mapping) else None,
            defaults=DEFAULT_ENHANCEMENT,
        ),
    )


def load_settings(raw: Mapping[str, object] | None, *, root: Path) -> SuperResolutionSettings:
    raw = raw or {}
    enabled = _as_bool(raw.get("enabled"), True)
    device = str(raw.get("device", "auto"))
    max_upload_mb = raw.get("max_upload_mb")
    if max_upload_mb is None:
        upload = raw.get("upload")
        if isinstance(upload, Mapping):
            max_upload_mb = upload.get("max_mb", 20)
        else:
            max_upload_mb = 20
    max_upload_mb = max(1, _as_int(max_upload_mb, 20))
    default_scale = _as_int(raw.get("default_scale", 2), 2)
    weights_dir = _resolve_path(
        root, str(raw.get("weights_dir", "models/super_resolution/weights"))
    )

    models_raw = raw.get("models")
    models: dict[str, ModelSpec] = {}
    if isinstance(models_raw, Mapping):
        for name, data in models_raw.items():
            if not isinstance(data, Mapping):
                continue
            weights_path = data.get("weights_path")
            if not weights_path:
                weights_path = str(weights_dir / f"{name}.onnx")
            bgr = data.get("bgr")
            models[str(name)] = ModelSpec(
                name=str(name),
                weights_path=_resolve_path(root, str(weights_path)),
                scale=_as_int(data.get("scale", default_scale), default_scale),
                tile_size=_as_int(data.get("tile_size"), 0) or None,
                bgr=None if bgr is None else _as_bool(bgr, True),
                num_block=_as_int(data.get("num_block", 23), 23),
                num_feat=_as_int(data.get("num_feat", 64), 64),
                num_grow_ch=_as_int(data.get("num_grow_ch", 32), 32),
            )

    if not models:
        models = _model_defaults(weights_dir)

    default_model = str(raw.get("default_model") or next(iter(models.keys())))
    if default_model not in models:
        default_model = next(iter(models.keys()))

    return SuperResolutionSettings(
        enabled=enabled,
        device=device,
        max_upload_mb=max_upload_mb,
        default_scale=default_scale,
        default_model=default_model,
        weights_dir=weights_dir,
        models=models,
        options=_load_options(raw),
    )


__all__ = ["SuperResolutionSettings", "DEFAULT_ENHANCEMENT", "load_settings"]
