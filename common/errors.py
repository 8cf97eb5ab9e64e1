"""HTTP-facing error types rendered by :func:`common.responses.fail`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(slots=True)
class AppError(Exception):
    """An error with a stable ``code`` and the status it maps to."""

    message: str
    code: str = "error"
    status_code: int = 400
    details: Mapping[str, Any] | None = None

    @classmethod
    def from_exception(
        cls, exc: BaseException, *, code: str, details: Mapping[str, Any] | None = None
    ) -> "AppError":
        return cls(message=str(exc) or exc.__class__.__name__, code=code, details=details)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": dict(self.details or {}),
        }


@dataclass(slots=True)
class ValidationAppError(AppError):
    code: str = "validation_error"
    status_code: int = 400


@dataclass(slots=True)
class NotFoundAppError(AppError):
    code: str = "not_found"
    status_code: int = 404


@dataclass(slots=True)
class UnavailableAppError(AppError):
    """An optional inference runtime is not installed."""

    code: str = "unavailable"
    status_code: int = 503


@dataclass(slots=True)
class UpstreamAppError(AppError):
    """The external inference step failed for every attempt."""

    code: str = "upstream_error"
    status_code: int = 502


@dataclass(slots=True)
class InternalAppError(AppError):
    code: str = "internal_error"
    status_code: int = 500


__all__ = [
    "AppError",
    "ValidationAppError",
    "NotFoundAppError",
    "UnavailableAppError",
    "UpstreamAppError",
    "InternalAppError",
]
