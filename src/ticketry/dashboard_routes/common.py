"""Shared helpers for dashboard route modules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from ticketry.db_base import StaleIssueError
from ticketry.fields import UnmappedFieldError
from ticketry.validation import sanitize_actor
from ticketry.workflow import FieldValueError, StateNotFoundError, UnknownFieldError

logger = logging.getLogger(__name__)

_BOOL_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_BOOL_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _exception_response(exc: Exception) -> JSONResponse:
    """Map a DB-layer exception onto the matching structured error."""
    if isinstance(exc, StaleIssueError):
        return _error_response(str(exc), "CONFLICT", 409, {"expected_version": exc.expected_version})
    if isinstance(exc, StateNotFoundError):
        return _error_response(str(exc), "INVALID_STATE", 400, {"state": exc.state})
    if isinstance(exc, UnknownFieldError):
        return _error_response(str(exc), "UNKNOWN_FIELD", 400, {"field": exc.name})
    if isinstance(exc, UnmappedFieldError):
        return _error_response(str(exc), "UNMAPPED_FIELD", 400, {"field": exc.field_name})
    if isinstance(exc, FieldValueError):
        return _error_response(str(exc), "INVALID_VALUE", 400, {"field": exc.field_name})
    if isinstance(exc, KeyError):
        message = str(exc.args[0]) if exc.args else "Not found"
        return _error_response(message, "NOT_FOUND", 404)
    return _error_response(str(exc), "VALIDATION_ERROR", 400)


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    import json

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _validate_actor(value: Any) -> str | JSONResponse:
    """Clean the optional ``actor`` body field; a missing actor becomes ``"api"``."""
    if value is None:
        return "api"
    cleaned, err = sanitize_actor(value)
    if err:
        return _error_response(err, "VALIDATION_ERROR", 400, {"param": "actor"})
    return cleaned


def _validate_expected_version(value: Any) -> int | None | JSONResponse:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        return _error_response("expected_version must be an integer", "VALIDATION_ERROR", 400)
    return value


def _safe_int(value: str, name: str, *, min_value: int | None = None) -> int | JSONResponse:
    """Parse a query-param string to int, returning a 400 error response on failure."""
    try:
        result = int(value)
    except (ValueError, TypeError):
        return _error_response(
            f'Invalid value for {name}: "{value}". Must be an integer.',
            "VALIDATION_ERROR",
            400,
        )
    if min_value is not None and result < min_value:
        return _error_response(
            f"Invalid value for {name}: {result}. Must be >= {min_value}.",
            "VALIDATION_ERROR",
            400,
        )
    return result


def _parse_pagination(params: Mapping[str, str], default_limit: int = 100) -> tuple[int, int] | JSONResponse:
    """Extract ``limit`` and ``offset`` from query params with validation."""
    limit = _safe_int(params.get("limit", str(default_limit)), "limit", min_value=1)
    if not isinstance(limit, int):
        return limit
    offset = _safe_int(params.get("offset", "0"), "offset", min_value=0)
    if not isinstance(offset, int):
        return offset
    return limit, offset


def _get_bool_param(params: Mapping[str, str], name: str, default: bool) -> bool | JSONResponse:
    """Extract a boolean query param, returning *default* when absent."""
    raw = params.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _BOOL_TRUE_VALUES:
        return True
    if value in _BOOL_FALSE_VALUES:
        return False
    return _error_response(
        f'Invalid value for {name}: "{raw}". Must be one of true/false, 1/0, yes/no, on/off.',
        "VALIDATION_ERROR",
        400,
        {"param": name, "value": raw},
    )


def _parse_csv_param(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]
