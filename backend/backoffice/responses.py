# Overview: Shared JSON error responses and query-string helpers for the API routes.

from __future__ import annotations

from flask import jsonify, request

from .errors import BackofficeError, ValidationError, NotFoundError, ConflictError
from .validation import coerce_int


def error_response(e: BackofficeError):
    """Map a domain error onto its HTTP status."""
    if isinstance(e, ValidationError):
        status = 400
    elif isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, ConflictError):
        status = 409
    else:
        status = 400
    return jsonify({"error": e.message, "details": e.details}), status


def query_int(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return coerce_int(name, raw)


def query_flag(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes"}
