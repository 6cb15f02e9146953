"""Shared validation functions for all entry points.

Pure functions -- no FastAPI or Click dependencies.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable
from typing import Any

_MAX_ACTOR_LENGTH = 128
_MAX_TITLE_LENGTH = 255


def _find_control_char(value: str) -> str | None:
    for ch in value:
        if unicodedata.category(ch).startswith("C"):  # Cc (control) and Cf (format)
            return ch
    return None


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an actor name.

    Returns (cleaned_actor, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    # Reject "\nbad" rather than silently absorbing the newline via strip().
    ch = _find_control_char(value)
    if ch is not None:
        return ("", f"actor must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "actor must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def validate_title(value: Any) -> str:
    """Return the stripped title or raise ValueError."""
    if not isinstance(value, str) or not value.strip():
        msg = "Title cannot be empty"
        raise ValueError(msg)
    cleaned = value.strip()
    if len(cleaned) > _MAX_TITLE_LENGTH:
        msg = f"Title must be at most {_MAX_TITLE_LENGTH} characters"
        raise ValueError(msg)
    if "\n" in cleaned or "\r" in cleaned:
        msg = "Title must be a single line"
        raise ValueError(msg)
    return cleaned


def parse_field_args(pairs: Iterable[str]) -> dict[str, Any]:
    """Parse repeated ``Name=value`` arguments into a field-value dict.

    A name given more than once collects its values into a list, which is
    how multi-valued fields are set from the command line. An empty value
    (``Name=``) clears the field.
    """
    result: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            msg = f"Invalid field format: {pair} (expected Name=value)"
            raise ValueError(msg)
        name, value = pair.split("=", 1)
        name = name.strip()
        if not name:
            msg = f"Invalid field format: {pair} (field name cannot be empty)"
            raise ValueError(msg)
        parsed: Any = value if value != "" else None
        if name not in result:
            result[name] = parsed
        elif isinstance(result[name], list):
            result[name].append(parsed)
        else:
            result[name] = [result[name], parsed]
    return result
