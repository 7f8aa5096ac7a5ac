"""
Stop progress rules.

Stop status transitions, patch application and the per-stop and per-event
figures derived from stop execution data.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from dispatch_backend.app.core.exceptions import InvalidStopTransitionError, DispatchValidationError
from dispatch_backend.app.domain.dispatch.on_time import on_time_performance
from dispatch_backend.app.models.dispatch_enums import StopStatus

STOP_TRANSITIONS = {
    StopStatus.PENDING: [StopStatus.ARRIVED, StopStatus.COMPLETED, StopStatus.SKIPPED, StopStatus.EXCEPTION],
    StopStatus.ARRIVED: [StopStatus.COMPLETED, StopStatus.EXCEPTION],
    StopStatus.EXCEPTION: [StopStatus.ARRIVED, StopStatus.COMPLETED, StopStatus.SKIPPED],
    StopStatus.COMPLETED: [],
    StopStatus.SKIPPED: [],
}

PATCHABLE_STOP_FIELDS = (
    "actual_arrival_time",
    "actual_departure_time",
    "notes",
    "exception_reason",
    "skip_reason",
    "latitude",
    "longitude",
    "odometer",
    "fuel_used",
    "requires_attention",
)

NON_NULLABLE_STOP_FIELDS = ("status", "requires_attention")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_stop_transition(current: StopStatus, target: StopStatus):
    if target == current:
        return
    allowed = STOP_TRANSITIONS[current]
    if target not in allowed:
        raise InvalidStopTransitionError(current.value, target.value, [s.value for s in allowed])


def compute_service_time(arrival: Optional[datetime], departure: Optional[datetime]) -> Optional[float]:
    """Minutes spent at the stop, None unless both times are known."""
    if arrival is None or departure is None:
        return None
    return round((as_utc(departure) - as_utc(arrival)).total_seconds() / 60, 2)


class StopChange:
    """What a patch did to a stop, as needed by the later steps."""

    def __init__(self, previous_status: StopStatus):
        self.previous_status = previous_status
        self.arrival_changed = False
        self.times_changed = False
        self.became_arrived = False
        self.fields: Dict[str, Any] = {}


def check_stop_patch(stop, patch: Dict[str, Any]):
    """
    Business checks on a patch, run before anything is written.

    Raises:
        InvalidStopTransitionError: status change not allowed
        DispatchValidationError: departure before arrival, or null for a
            required field
    """
    for field in NON_NULLABLE_STOP_FIELDS:
        if field in patch and patch[field] is None:
            raise DispatchValidationError(
                f"{field} cannot be null",
                error_code="NULL_NOT_ALLOWED",
                details={"stop_id": stop.id, "field": field},
            )

    target = patch.get("status")
    if target is not None:
        validate_stop_transition(stop.status, target)

    arrival = patch["actual_arrival_time"] if "actual_arrival_time" in patch else stop.actual_arrival_time
    departure = patch["actual_departure_time"] if "actual_departure_time" in patch else stop.actual_departure_time
    if arrival is not None and departure is not None and as_utc(departure) < as_utc(arrival):
        raise DispatchValidationError(
            "Departure time cannot be before arrival time",
            error_code="DEPARTURE_BEFORE_ARRIVAL",
            details={"stop_id": stop.id},
        )


def apply_stop_patch(stop, patch: Dict[str, Any], now: datetime) -> StopChange:
    """Apply a validated patch to a stop."""
    change = StopChange(stop.status)

    for field in PATCHABLE_STOP_FIELDS:
        if field in patch and getattr(stop, field) != patch[field]:
            setattr(stop, field, patch[field])
            change.fields[field] = patch[field]

    change.arrival_changed = "actual_arrival_time" in change.fields
    change.times_changed = change.arrival_changed or "actual_departure_time" in change.fields

    target = patch.get("status")
    if target is not None and target != stop.status:
        stop.status = target
        change.fields["status"] = target

        if target == StopStatus.ARRIVED:
            change.became_arrived = True
            if stop.actual_arrival_time is None:
                stop.actual_arrival_time = now
                change.arrival_changed = change.times_changed = True
                change.fields["actual_arrival_time"] = now
        elif target == StopStatus.EXCEPTION:
            stop.requires_attention = True

    return change



def recompute_aggregates(event, stops: Sequence):
    """Recompute the event's derived metrics from the full stop set."""
    service_times = [s.service_time for s in stops if s.service_time is not None]
    event.total_service_time = round(sum(service_times), 2) if service_times else None

    fuel = [s.fuel_used for s in stops if s.fuel_used is not None]
    event.fuel_used = round(sum(fuel), 3) if fuel else None

    odometers = [s.odometer for s in stops if s.odometer is not None]
    event.total_miles = round(max(odometers) - min(odometers), 1) if len(odometers) >= 2 else None

    event.on_time_performance = on_time_performance(stops)
