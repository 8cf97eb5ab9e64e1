"""JSON envelopes shared by the app and plugin blueprints."""

from __future__ import annotations

from typing import Any, Mapping

from flask import Response, g, has_request_context, jsonify

from .errors import AppError


def _request_id() -> str | None:
    if not has_request_context():
        return None
    return getattr(g, "request_id", None)


def _envelope(payload: dict[str, Any], status: int, headers: Mapping[str, str] | None) -> Response:
    response = jsonify(payload)
    response.status_code = status
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response


def ok(data: Any, *, status: int = 200, headers: Mapping[str, str] | None = None) -> Response:
    return _envelope({"success": True, "data": data}, status, headers)


def fail(error: AppError | Mapping[str, Any], *, status: int | None = None) -> Response:
    """Return a failure envelope tagged with the current request id."""

    if isinstance(error, AppError):
        body = error.to_dict()
        code = status or error.status_code
    else:
        body = dict(error)
        code = status or 400
    request_id = _request_id()
    if request_id:
        body.setdefault("request_id", request_id)
    return _envelope({"success": False, "error": body}, code, None)


__all__ = ["ok", "fail"]
