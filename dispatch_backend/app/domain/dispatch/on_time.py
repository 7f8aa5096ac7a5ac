"""
On-time classification of stop arrivals.

An arrival is compared with the planned HH:MM on the arrival's own day. The
signed difference is folded into [-720, 720) minutes so an arrival just after
midnight for a 23:50 plan counts as slightly late, not 23 hours early.
"""

from datetime import datetime
from typing import Iterable, Optional

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.models.dispatch_enums import OnTimeStatus

MINUTES_PER_DAY = 24 * 60
HALF_DAY = MINUTES_PER_DAY // 2


def parse_hhmm(value: Optional[str]) -> Optional[int]:
    """Minutes after midnight for "HH:MM" (or "HH:MM:SS"), None if unparseable."""
    if not value:
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def minutes_from_plan(planned: str, actual: datetime) -> Optional[float]:
    """Signed minutes between actual and planned, negative when early."""
    planned_minutes = parse_hhmm(planned)
    if planned_minutes is None:
        return None
    actual_minutes = actual.hour * 60 + actual.minute + actual.second / 60
    diff = actual_minutes - planned_minutes
    return ((diff + HALF_DAY) % MINUTES_PER_DAY) - HALF_DAY


def classify_arrival(planned_eta: Optional[str], actual_arrival: Optional[datetime],
                     tolerance_minutes: Optional[int] = None) -> Optional[OnTimeStatus]:
    if actual_arrival is None:
        return None
    diff = minutes_from_plan(planned_eta, actual_arrival)
    if diff is None:
        return None
    tolerance = settings.on_time_tolerance_minutes if tolerance_minutes is None else tolerance_minutes
    if diff < -tolerance:
        return OnTimeStatus.EARLY
    if diff > tolerance:
        return OnTimeStatus.LATE
    return OnTimeStatus.ON_TIME


def on_time_performance(stops: Iterable) -> Optional[float]:
    """
    Share of classified stops that arrived on time or early, 0-100.

    None when no stop has been classified yet.
    """
    classified = [s.on_time_status for s in stops if s.on_time_status is not None]
    if not classified:
        return None
    good = sum(1 for s in classified if s in (OnTimeStatus.ON_TIME, OnTimeStatus.EARLY))
    return float(round(100 * good / len(classified)))
