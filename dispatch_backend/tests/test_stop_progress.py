"""
Stop progress rule tests.
"""

import pytest
from datetime import datetime, timezone
from types import SimpleNamespace

from dispatch_backend.app.core.exceptions import DispatchValidationError, InvalidStopTransitionError
from dispatch_backend.app.domain.dispatch.stop_progress import (
    STOP_TRANSITIONS,
    apply_stop_patch,
    check_stop_patch,
    compute_service_time,
    recompute_aggregates,
    validate_stop_transition,
)
from dispatch_backend.app.models.dispatch_enums import OnTimeStatus, StopStatus

NOW = datetime(2026, 3, 1, 9, 5, tzinfo=timezone.utc)


def make_stop(**kwargs):
    fields = dict(
        id=11,
        sequence=0,
        status=StopStatus.PENDING,
        planned_eta="09:00",
        actual_arrival_time=None,
        actual_departure_time=None,
        notes=None,
        exception_reason=None,
        skip_reason=None,
        latitude=None,
        longitude=None,
        odometer=None,
        fuel_used=None,
        requires_attention=False,
        service_time=None,
        on_time_status=None,
    )
    fields.update(kwargs)
    return SimpleNamespace(**fields)


@pytest.mark.parametrize("current", list(StopStatus))
@pytest.mark.parametrize("target", list(StopStatus))
def test_stop_transitions(current, target):
    if target == current or target in STOP_TRANSITIONS[current]:
        validate_stop_transition(current, target)
    else:
        with pytest.raises(InvalidStopTransitionError):
            validate_stop_transition(current, target)


def test_arrived_without_time_stamps_now():
    stop = make_stop()
    change = apply_stop_patch(stop, {"status": StopStatus.ARRIVED}, NOW)

    assert stop.actual_arrival_time == NOW
    assert change.became_arrived
    assert change.arrival_changed


def test_arrived_keeps_given_time():
    arrival = datetime(2026, 3, 1, 8, 50)
    stop = make_stop()
    apply_stop_patch(stop, {"status": StopStatus.ARRIVED, "actual_arrival_time": arrival}, NOW)
    assert stop.actual_arrival_time == arrival


def test_resending_status_is_noop():
    stop = make_stop(status=StopStatus.ARRIVED, actual_arrival_time=NOW)
    change = apply_stop_patch(stop, {"status": StopStatus.ARRIVED}, NOW)

    assert not change.became_arrived
    assert not change.arrival_changed
    assert "status" not in change.fields


def test_exception_flags_attention():
    stop = make_stop()
    apply_stop_patch(stop, {"status": StopStatus.EXCEPTION, "exception_reason": "dock closed"}, NOW)

    assert stop.status == StopStatus.EXCEPTION
    assert stop.requires_attention is True
    assert stop.exception_reason == "dock closed"


def test_terminal_stop_rejects_change():
    stop = make_stop(status=StopStatus.COMPLETED)
    with pytest.raises(InvalidStopTransitionError) as exc_info:
        check_stop_patch(stop, {"status": StopStatus.PENDING})
    assert exc_info.value.details["allowed"] == []


def test_departure_before_arrival_rejected():
    stop = make_stop(actual_arrival_time=datetime(2026, 3, 1, 9, 0))
    with pytest.raises(DispatchValidationError) as exc_info:
        check_stop_patch(stop, {"actual_departure_time": datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)})
    assert exc_info.value.error_code == "DEPARTURE_BEFORE_ARRIVAL"


def test_service_time_minutes():
    arrival = datetime(2026, 3, 1, 9, 0)
    departure = datetime(2026, 3, 1, 9, 27, 30, tzinfo=timezone.utc)
    assert compute_service_time(arrival, departure) == 27.5
    assert compute_service_time(arrival, None) is None


def test_aggregates():
    event = SimpleNamespace(total_service_time=None, fuel_used=None, total_miles=None, on_time_performance=None)
    stops = [
        make_stop(service_time=20.0, fuel_used=1.5, odometer=1000.0, on_time_status=OnTimeStatus.ON_TIME),
        make_stop(service_time=10.0, fuel_used=2.0, odometer=1042.5, on_time_status=OnTimeStatus.LATE),
        make_stop(),
    ]

    recompute_aggregates(event, stops)

    assert event.total_service_time == 30.0
    assert event.fuel_used == 3.5
    assert event.total_miles == 42.5
    assert event.on_time_performance == 50.0


def test_aggregates_need_two_odometer_readings():
    event = SimpleNamespace(total_service_time=None, fuel_used=None, total_miles=None, on_time_performance=None)
    recompute_aggregates(event, [make_stop(odometer=1000.0), make_stop()])

    assert event.total_miles is None
    assert event.total_service_time is None
    assert event.on_time_performance is None
