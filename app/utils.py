"""Utility helpers for the catalog service."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable

from pydantic import ValidationError as PydanticValidationError


TIMESTAMP_UNSAFE_RE = re.compile(r"[:.]")


def split_genres(value: object) -> list[str]:
    """Return trimmed, non-empty genres from a comma-joined string or list."""

    if value is None:
        return []
    if isinstance(value, str):
        raw_values: Iterable[object] = value.split(",")
    elif isinstance(value, Iterable):
        raw_values = value
    else:
        raise ValueError("Genres must be a comma-separated string or a list")
    return [genre for genre in (str(part).strip() for part in raw_values) if genre]


def file_timestamp(moment: datetime | None = None) -> str:
    """Return an ISO-8601 UTC timestamp safe to embed in file names.

    Milliseconds are kept so names sort chronologically, e.g.
    ``2024-05-01T10-20-30-123Z``.
    """

    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"
    return TIMESTAMP_UNSAFE_RE.sub("-", iso)


def first_error_message(exc: PydanticValidationError) -> str:
    """Return the human readable message of the first validation error."""

    errors = exc.errors()
    if not errors:
        return "Invalid catalog record"
    error = errors[0]
    context = error.get("ctx") or {}
    cause = context.get("error")
    if isinstance(cause, Exception):
        return str(cause)
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = str(error.get("msg") or "Invalid value")
    return f"{location}: {message}" if location else message
