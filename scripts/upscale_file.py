#!/usr/bin/env python3
"""Upscale an image file offline with the configured super-resolution model."""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Mapping

import yaml

from plugins.super_resolution.core import (
    EnhancementStrengths,
    NormalizationMode,
    SuperResolutionError,
    load_settings,
    select_device,
    upscale_image,
)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _load_config(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("input", type=Path, help="Image to upscale.")
    parser.add_argument("output", type=Path, help="Destination .png or .jpg file.")
    parser.add_argument(
        "--config",
        type=Path,
        default=_repo_root() / "config.yml",
        help="Path to config.yml",
    )
    parser.add_argument("--model", help="Model name from config (defaults to the scale match).")
    parser.add_argument("--scale", type=int, choices=(2, 4), help="Upscale factor.")
    parser.add_argument(
        "--normalization",
        choices=[mode.value for mode in NormalizationMode],
        help="Model input range; auto tries each mode in turn.",
    )
    parser.add_argument("--denoise", type=float, help="Denoise strength 0-1.")
    parser.add_argument("--detail", type=float, help="Unsharp mask strength 0-1.")
    parser.add_argument("--micro", type=float, help="High-pass boost strength 0-1.")
    parser.add_argument(
        "--no-fallback",
        action="store_true",
        help="Fail instead of falling back to a bicubic resize.",
    )
    args = parser.parse_args()

    config = _load_config(args.config)
    plugins = config.get("plugins", {}) if isinstance(config, Mapping) else {}
    raw = plugins.get("super_resolution", {}) if isinstance(plugins, Mapping) else {}
    settings = load_settings(raw, root=_repo_root())

    scale = args.scale or settings.default_scale
    name = args.model
    if not name:
        name = next(
            (key for key, spec in settings.models.items() if spec.scale == scale),
            settings.default_model,
        )
    spec = settings.models.get(name)
    if spec is None:
        raise SystemExit(f"Unknown model '{name}' in config.")

    options = settings.options
    if args.normalization:
        options = replace(options, normalization=NormalizationMode.parse(args.normalization))
    if args.no_fallback:
        options = replace(options, fallback_to_classic=False)
    defaults = options.enhancement
    strengths = EnhancementStrengths(
        denoise=defaults.denoise if args.denoise is None else args.denoise,
        detail=defaults.detail if args.detail is None else args.detail,
        micro=defaults.micro if args.micro is None else args.micro,
    )

    output_format = "jpg" if args.output.suffix.lower() in {".jpg", ".jpeg"} else "png"
    try:
        result = upscale_image(
            args.input.read_bytes(),
            spec=spec,
            device=select_device(settings.device),
            output_format=output_format,
            options=options,
            strengths=strengths,
        )
    except SuperResolutionError as exc:
        print(f"Upscale failed: {exc}", file=sys.stderr)
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_bytes(result.image_bytes)
    print(
        f"Wrote {args.output} ({result.width}x{result.height}, "
        f"method={result.method}, tiles={result.tiles})"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
