"""Validation and normalisation of inbound event requests.

Creation payloads are decoded into :class:`schemas.EventIn` and checked for a
positive ``user_id`` and a non-empty ``action``. Query parameters arrive as raw
text; timestamps go through :func:`parse_time_flexible`, which tolerates values
that were percent-encoded more than once by intermediaries and accepts a small
set of common layouts.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Mapping, NamedTuple, Optional, Union
from urllib.parse import unquote

import pydantic

from . import schemas
from .errors import (
    EmptyTimeError,
    InvalidRangeError,
    MalformedRequestError,
    UnrecognizedTimeFormatError,
    ValidationError,
)

MAX_UNESCAPE_ROUNDS = 3

_DATE = r"\d{4}-\d{2}-\d{2}"
_CLOCK = r"\d{2}:\d{2}:\d{2}"
_OFFSET = r"(?:Z|[+-]\d{2}:\d{2})"

# Tried in order; the first layout that parses wins. strptime alone accepts
# unpadded fields and "+0000" offsets, so each layout is guarded by a pattern.
TIME_FORMATS = (
    (re.compile(rf"{_DATE}T{_CLOCK}\.\d+{_OFFSET}"), "%Y-%m-%dT%H:%M:%S.%f%z"),
    (re.compile(rf"{_DATE}T{_CLOCK}{_OFFSET}"), "%Y-%m-%dT%H:%M:%S%z"),
    (re.compile(rf"{_DATE} {_CLOCK}"), "%Y-%m-%d %H:%M:%S"),
    (re.compile(rf"{_DATE}T{_CLOCK}"), "%Y-%m-%dT%H:%M:%S"),
    (re.compile(_DATE), "%Y-%m-%d"),
)

# strptime's %f stops at microseconds; RFC 3339 allows nanoseconds.
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


class EventsQuery(NamedTuple):
    user_id: Optional[int]
    start: datetime
    end: datetime


def parse_event_request(body: Union[bytes, str]) -> schemas.EventIn:
    """Decode and validate a creation payload."""

    try:
        event_in = schemas.EventIn.model_validate_json(body)
    except pydantic.ValidationError as exc:
        raise MalformedRequestError(_describe_decode_error(exc)) from exc
    validate_event(event_in)
    return event_in


def _describe_decode_error(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or str(exc)


def validate_event(event_in: schemas.EventIn) -> None:
    if event_in.user_id <= 0:
        raise ValidationError("user_id must be a positive integer")
    if event_in.action == "":
        raise ValidationError("action is required")


def metadata_page(metadata: Optional[Mapping[str, str]]) -> Optional[str]:
    """Return the only persisted metadata field; other keys are dropped."""

    if not metadata:
        return None
    return metadata.get("page")


def _unescape(value: str) -> str:
    current = value
    for _ in range(MAX_UNESCAPE_ROUNDS):
        decoded = unquote(current)
        if decoded == current:
            break
        current = decoded
    return current


def parse_time_flexible(value: Optional[str]) -> datetime:
    """Parse a time string that may be percent-encoded up to three times.

    Values without an explicit offset, including date-only values, are taken
    to be UTC. The returned datetime is always timezone aware.
    """

    if not value:
        raise EmptyTimeError("empty time string")

    candidate = _unescape(value).strip()
    if not candidate:
        raise EmptyTimeError("empty time after unescape")

    for pattern, layout in TIME_FORMATS:
        if not pattern.fullmatch(candidate):
            continue
        text = _LONG_FRACTION.sub(r"\1", candidate) if "%f" in layout else candidate
        try:
            parsed = datetime.strptime(text, layout)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    raise UnrecognizedTimeFormatError(f"unrecognized time format: {value!r}")


def parse_user_id(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValidationError(f"invalid user_id: {value!r}") from exc
    if parsed > schemas.MAX_USER_ID:
        raise ValidationError(f"invalid user_id: {value!r} is out of range")
    return parsed


def parse_events_query(
    user_id: Optional[str],
    from_: Optional[str],
    to: Optional[str],
) -> EventsQuery:
    """Turn raw query parameters into store query arguments."""

    parsed_user_id = parse_user_id(user_id)
    if parsed_user_id is not None and parsed_user_id <= 0:
        raise InvalidRangeError("user_id must be a positive integer")

    if not from_:
        raise EmptyTimeError("from parameter is required")

    try:
        start = parse_time_flexible(from_)
    except ValidationError as exc:
        raise type(exc)(f"invalid from parameter: {exc}") from exc

    try:
        end = parse_time_flexible(to)
    except ValidationError as exc:
        raise type(exc)(f"invalid to parameter: {exc}") from exc

    if start > end:
        raise InvalidRangeError("from must be before or equal to to")

    return EventsQuery(user_id=parsed_user_id, start=start, end=end)
