"""Canonical text encoding for step arguments, inputs and results."""

from __future__ import annotations

import base64
import hashlib
import json
import traceback
from datetime import timedelta
from typing import Any

from pydantic_core import to_jsonable_python


def dumps(value: Any) -> str:
    """Serialize ``value`` to compact, deterministic JSON.

    Pydantic models, datetimes, timedeltas and other types pydantic knows
    how to encode are converted first.
    """
    return json.dumps(
        value,
        default=to_jsonable_python,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def loads(text: str | None) -> Any:
    if text is None:
        return None
    return json.loads(text)


def digest(text: str) -> str:
    """Base64-encoded SHA-256 of ``text``."""
    return base64.b64encode(hashlib.sha256(text.encode("utf-8")).digest()).decode(
        "ascii"
    )


def compact_key(text: str, limit: int) -> str:
    """Return ``text`` itself when shorter than ``limit``, else its digest."""
    return text if len(text) < limit else digest(text)


def format_error(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def to_timedelta(value: Any) -> timedelta:
    """Accept a timedelta or a number of seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    raise TypeError(f"Expected a duration, got {type(value).__name__}")
