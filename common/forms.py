"""Form value parsing helpers shared across plugins."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from .validation import ValidationError


FormDataLike = Mapping[str, Any] | Any


def _lookup(data: FormDataLike, key: str) -> Any:
    if data is None:
        return None
    getter = getattr(data, "get", None)
    if callable(getter):
        return getter(key)
    return None


def _blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and raw.strip() == "")


def get_float(
    data: FormDataLike,
    key: str,
    default: float,
    *,
    field_name: str | None = None,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """Extract a float from *data*.

    Blank values fall back to ``default``; ``minimum`` and ``maximum`` are
    inclusive bounds.
    """

    label = field_name or key
    raw = _lookup(data, key)
    if _blank(raw):
        value = float(default)
    else:
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid value for {label}") from exc
        if not math.isfinite(value):
            raise ValidationError(f"Invalid value for {label}")

    if minimum is not None and value < minimum:
        raise ValidationError(f"{label} must be ≥ {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{label} must be ≤ {maximum}")
    return value


def get_strength(data: FormDataLike, key: str, default: float) -> float:
    """Extract an enhancement strength in the closed range [0, 1]."""

    return get_float(data, key, default, minimum=0.0, maximum=1.0)


def get_int(
    data: FormDataLike,
    key: str,
    default: int,
    *,
    field_name: str | None = None,
    choices: Iterable[int] | None = None,
) -> int:
    label = field_name or key
    value = get_float(data, key, float(default), field_name=label)
    if value != int(value):
        raise ValidationError(f"{label} must be a whole number")
    result = int(value)
    if choices is not None:
        allowed = sorted(set(choices))
        if result not in allowed:
            raise ValidationError(
                f"{label} must be one of {', '.join(str(item) for item in allowed)}"
            )
    return result


def get_choice(
    data: FormDataLike,
    key: str,
    default: str,
    *,
    choices: Iterable[str],
    field_name: str | None = None,
) -> str:
    raw = _lookup(data, key)
    if _blank(raw):
        return default
    value = str(raw).strip().lower()
    allowed = {choice.lower() for choice in choices}
    if value not in allowed:
        raise ValidationError(f"Unsupported {field_name or key} '{raw}'")
    return value


__all__ = ["get_float", "get_strength", "get_int", "get_choice"]
