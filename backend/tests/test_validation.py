import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app import validation  # noqa: E402
from backend.app.errors import (  # noqa: E402
    EmptyTimeError,
    InvalidRangeError,
    MalformedRequestError,
    UnrecognizedTimeFormatError,
    ValidationError,
)

NEW_YEAR = datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_parse_event_request_accepts_valid_payload():
    event_in = validation.parse_event_request(
        b'{"user_id": 7, "action": "click", "metadata": {"page": "home"}}'
    )
    assert event_in.user_id == 7
    assert event_in.action == "click"
    assert event_in.metadata == {"page": "home"}


def test_parse_event_request_allows_missing_metadata():
    event_in = validation.parse_event_request(b'{"user_id": 1, "action": "view"}')
    assert event_in.metadata is None


@pytest.mark.parametrize(
    "body",
    [
        b"{bad json}",
        b"",
        b'{"action": "click"}',
        b'{"user_id": 1}',
        b'{"user_id": "1", "action": "click"}',
        b'{"user_id": 1, "action": "click", "metadata": {"page": 3}}',
    ],
)
def test_parse_event_request_rejects_undecodable_bodies(body):
    with pytest.raises(MalformedRequestError):
        validation.parse_event_request(body)


@pytest.mark.parametrize("user_id", [0, -1, -9000])
def test_parse_event_request_rejects_non_positive_user_id(user_id):
    body = f'{{"user_id": {user_id}, "action": "click"}}'.encode()
    with pytest.raises(ValidationError) as excinfo:
        validation.parse_event_request(body)
    assert not isinstance(excinfo.value, MalformedRequestError)
    assert "user_id" in str(excinfo.value)


def test_parse_event_request_rejects_empty_action():
    with pytest.raises(ValidationError) as excinfo:
        validation.parse_event_request(b'{"user_id": 1, "action": ""}')
    assert "action" in str(excinfo.value)


def test_metadata_page_keeps_only_page_key():
    assert validation.metadata_page({"page": "X", "other": "Y"}) == "X"
    assert validation.metadata_page({"other": "Y"}) is None
    assert validation.metadata_page({}) is None
    assert validation.metadata_page(None) is None


@pytest.mark.parametrize(
    "value",
    [
        "2025-01-01T00:00:00Z",
        "2025-01-01T00:00:00.000Z",
        "2025-01-01T02:00:00+02:00",
        "2025-01-01 00:00:00",
        "2025-01-01T00:00:00",
        "2025-01-01",
        "  2025-01-01  ",
    ],
)
def test_parse_time_flexible_accepts_supported_layouts(value):
    assert validation.parse_time_flexible(value) == NEW_YEAR


def test_parse_time_flexible_returns_aware_utc_for_naive_layouts():
    parsed = validation.parse_time_flexible("2025-03-04 05:06:07")
    assert parsed.tzinfo is not None
    assert parsed.utcoffset().total_seconds() == 0
    assert parsed == datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


def test_parse_time_flexible_truncates_nanoseconds():
    parsed = validation.parse_time_flexible("2025-01-01T00:00:00.123456789Z")
    assert parsed == datetime(2025, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value",
    [
        "2025-01-01T00%3A00%3A00Z",
        "2025-01-01T00%253A00%253A00Z",
        "2025-01-01%252000%253A00%253A00",
        "2025-01-01%25252000:00:00",
    ],
)
def test_parse_time_flexible_decodes_repeated_percent_encoding(value):
    assert validation.parse_time_flexible(value) == NEW_YEAR


def test_parse_time_flexible_stops_after_three_decodes():
    with pytest.raises(UnrecognizedTimeFormatError):
        validation.parse_time_flexible("2025-01-01%2525252000:00:00")


@pytest.mark.parametrize("value", [None, "", "   ", "%20%20"])
def test_parse_time_flexible_rejects_empty_values(value):
    with pytest.raises(EmptyTimeError):
        validation.parse_time_flexible(value)


@pytest.mark.parametrize("value", ["not-a-time", "01/02/2025", "2025-13-01", "yesterday"])
def test_parse_time_flexible_rejects_unknown_formats(value):
    with pytest.raises(UnrecognizedTimeFormatError):
        validation.parse_time_flexible(value)


def test_parse_events_query_returns_normalised_values():
    query = validation.parse_events_query("42", "2025-01-01", "2025-01-02T00:00:00Z")
    assert query.user_id == 42
    assert query.start == NEW_YEAR
    assert query.end == datetime(2025, 1, 2, tzinfo=timezone.utc)


@pytest.mark.parametrize("user_id", [None, ""])
def test_parse_events_query_without_user_filter(user_id):
    query = validation.parse_events_query(user_id, "2025-01-01", "2025-01-02")
    assert query.user_id is None


def test_parse_events_query_allows_equal_bounds():
    query = validation.parse_events_query(None, "2025-01-01", "2025-01-01T00:00:00Z")
    assert query.start == query.end == NEW_YEAR


def test_parse_events_query_rejects_inverted_range():
    with pytest.raises(InvalidRangeError):
        validation.parse_events_query(None, "2025-01-02", "2025-01-01")


@pytest.mark.parametrize("user_id", ["0", "-3"])
def test_parse_events_query_rejects_non_positive_user(user_id):
    with pytest.raises(InvalidRangeError):
        validation.parse_events_query(user_id, "2025-01-01", "2025-01-02")


def test_parse_events_query_rejects_non_numeric_user():
    with pytest.raises(ValidationError) as excinfo:
        validation.parse_events_query("bad", "2025-01-01", "2025-01-02")
    assert "user_id" in str(excinfo.value)


def test_parse_events_query_requires_from():
    with pytest.raises(EmptyTimeError) as excinfo:
        validation.parse_events_query(None, None, "2025-01-02")
    assert "from" in str(excinfo.value)


@pytest.mark.parametrize("to", [None, ""])
def test_parse_events_query_requires_to(to):
    with pytest.raises(EmptyTimeError) as excinfo:
        validation.parse_events_query(None, "2025-01-01", to)
    assert "to parameter" in str(excinfo.value)


def test_parse_events_query_reports_which_bound_is_invalid():
    with pytest.raises(UnrecognizedTimeFormatError) as excinfo:
        validation.parse_events_query(None, "2025-01-01", "not-a-time")
    assert "invalid to parameter" in str(excinfo.value)


@pytest.mark.parametrize(
    "value",
    [
        "2025-1-1",
        "2025-01-01T0:0:0Z",
        "2025-01-01T00:00:00+0000",
        "2025-01-01 0:00:00",
        "2025-01-01T00:00:00.Z",
    ],
)
def test_parse_time_flexible_requires_zero_padded_layouts(value):
    with pytest.raises(UnrecognizedTimeFormatError):
        validation.parse_time_flexible(value)


def test_parse_event_request_rejects_user_id_beyond_bigint():
    with pytest.raises(MalformedRequestError):
        validation.parse_event_request(f'{{"user_id": {2**70}, "action": "click"}}'.encode())


def test_parse_event_request_accepts_largest_bigint():
    body = f'{{"user_id": {2**63 - 1}, "action": "click"}}'.encode()
    assert validation.parse_event_request(body).user_id == 2**63 - 1


def test_parse_events_query_rejects_user_id_beyond_bigint():
    with pytest.raises(ValidationError) as excinfo:
        validation.parse_events_query(str(2**70), "2025-01-01", "2025-01-02")
    assert "out of range" in str(excinfo.value)
