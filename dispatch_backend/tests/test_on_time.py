"""
On-time classification tests.
"""

import pytest
from datetime import datetime, timezone
from types import SimpleNamespace

from dispatch_backend.app.domain.dispatch.on_time import (
    classify_arrival,
    minutes_from_plan,
    on_time_performance,
    parse_hhmm,
)
from dispatch_backend.app.models.dispatch_enums import OnTimeStatus


def test_parse_hhmm():
    assert parse_hhmm("09:00") == 540
    assert parse_hhmm("23:59:30") == 23 * 60 + 59
    assert parse_hhmm("") is None
    assert parse_hhmm(None) is None
    assert parse_hhmm("25:00") is None
    assert parse_hhmm("nine") is None


@pytest.mark.parametrize("arrival, expected", [
    (datetime(2026, 3, 1, 9, 10), OnTimeStatus.ON_TIME),
    (datetime(2026, 3, 1, 9, 15), OnTimeStatus.ON_TIME),
    (datetime(2026, 3, 1, 8, 45), OnTimeStatus.ON_TIME),
    (datetime(2026, 3, 1, 9, 16), OnTimeStatus.LATE),
    (datetime(2026, 3, 1, 8, 44), OnTimeStatus.EARLY),
])
def test_classification_boundaries(arrival, expected):
    """Tolerance is inclusive on both sides."""
    assert classify_arrival("09:00", arrival) == expected


def test_midnight_rollover():
    """An arrival just after midnight for a late-evening plan is late, not early."""
    assert minutes_from_plan("23:50", datetime(2026, 3, 2, 0, 20)) == 30
    assert classify_arrival("23:50", datetime(2026, 3, 2, 0, 20)) == OnTimeStatus.LATE
    assert classify_arrival("00:05", datetime(2026, 3, 1, 23, 58)) == OnTimeStatus.ON_TIME


def test_custom_tolerance():
    arrival = datetime(2026, 3, 1, 9, 10, tzinfo=timezone.utc)
    assert classify_arrival("09:00", arrival, tolerance_minutes=5) == OnTimeStatus.LATE
    assert classify_arrival("09:00", arrival, tolerance_minutes=10) == OnTimeStatus.ON_TIME


def test_unclassifiable_inputs():
    assert classify_arrival(None, datetime(2026, 3, 1, 9, 0)) is None
    assert classify_arrival("09:00", None) is None
    assert classify_arrival("bad", datetime(2026, 3, 1, 9, 0)) is None


def test_classification_is_idempotent():
    arrival = datetime(2026, 3, 1, 9, 40)
    assert classify_arrival("09:00", arrival) == classify_arrival("09:00", arrival) == OnTimeStatus.LATE


def test_performance_counts_early_and_on_time():
    stops = [
        SimpleNamespace(on_time_status=OnTimeStatus.ON_TIME),
        SimpleNamespace(on_time_status=OnTimeStatus.EARLY),
        SimpleNamespace(on_time_status=OnTimeStatus.LATE),
        SimpleNamespace(on_time_status=None),
    ]
    # 2 of the 3 classified stops
    assert on_time_performance(stops) == 67.0


def test_performance_none_when_nothing_classified():
    assert on_time_performance([SimpleNamespace(on_time_status=None)]) is None
    assert on_time_performance([]) is None
