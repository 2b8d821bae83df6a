from datetime import datetime, timezone

import pytest

from core.timestamps import format_instant, normalize_timestamp, now_iso, parse_instant


@pytest.mark.parametrize("value,expected", [
    ("2024-01-02T03:04:05Z", "2024-01-02T03:04:05.000Z"),
    ("2024-01-02T03:04:05.678Z", "2024-01-02T03:04:05.678Z"),
    ("2024-01-02T05:04:05+02:00", "2024-01-02T03:04:05.000Z"),
    ("2024-01-02 03:04:05", "2024-01-02T03:04:05.000Z"),
    ("2024-01-02", "2024-01-02T00:00:00.000Z"),
    (1704067200, "2024-01-01T00:00:00.000Z"),
    (1704067200000, "2024-01-01T00:00:00.000Z"),
    ("1704067200000", "2024-01-01T00:00:00.000Z"),
    (1704067200.5, "2024-01-01T00:00:00.500Z"),
])
def test_parse_and_format(value, expected):
    assert format_instant(parse_instant(value)) == expected


@pytest.mark.parametrize("value", [None, "", "   ", "yesterday", True, 0, -5, {"ts": 1}])
def test_unparseable_values(value):
    assert parse_instant(value) is None


def test_normalize_timestamp_uses_first_parseable_candidate():
    assert normalize_timestamp(None, "bad", "2024-01-01T00:00:00Z") == "2024-01-01T00:00:00.000Z"


def test_normalize_timestamp_defaults_to_now():
    before = datetime.now(timezone.utc).replace(microsecond=0)
    stamp = normalize_timestamp(None, "")
    assert parse_instant(stamp) >= before
    assert stamp.endswith("Z") and len(stamp) == len("2024-01-01T00:00:00.000Z")
    assert now_iso().endswith("Z")


def test_naive_datetime_is_treated_as_utc():
    assert format_instant(datetime(2024, 5, 6, 7, 8, 9)) == "2024-05-06T07:08:09.000Z"
