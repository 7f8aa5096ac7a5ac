"""
Status Engine (Domain Logic).

Owns the dispatch event transition table, the entry stamps applied when a
status is entered, and the cascade rules that derive event status from stop
progress.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from dispatch_backend.app.core.exceptions import InvalidStatusTransitionError, DispatchValidationError
from dispatch_backend.app.models.dispatch_enums import DispatchStatus, StopStatus

logger = logging.getLogger("dispatch.status")

VALID_STATUS_TRANSITIONS: Dict[DispatchStatus, List[DispatchStatus]] = {
    DispatchStatus.PLANNED: [DispatchStatus.ASSIGNED, DispatchStatus.CANCELLED],
    DispatchStatus.ASSIGNED: [DispatchStatus.DISPATCHED, DispatchStatus.CANCELLED, DispatchStatus.DELAYED],
    DispatchStatus.DISPATCHED: [DispatchStatus.IN_TRANSIT, DispatchStatus.DELAYED, DispatchStatus.CANCELLED],
    DispatchStatus.IN_TRANSIT: [DispatchStatus.COMPLETED, DispatchStatus.DELAYED, DispatchStatus.CANCELLED],
    DispatchStatus.DELAYED: [
        DispatchStatus.DISPATCHED,
        DispatchStatus.IN_TRANSIT,
        DispatchStatus.CANCELLED,
        DispatchStatus.COMPLETED,
    ],
    DispatchStatus.COMPLETED: [],
    DispatchStatus.CANCELLED: [],
}

TERMINAL_STATUSES = frozenset({DispatchStatus.COMPLETED, DispatchStatus.CANCELLED})

# Stops in these states need no further work
RESOLVED_STOP_STATUSES = frozenset({StopStatus.COMPLETED, StopStatus.SKIPPED, StopStatus.EXCEPTION})

# Stops in these states are not on the driver's path
OFF_ROUTE_STOP_STATUSES = frozenset({StopStatus.SKIPPED, StopStatus.EXCEPTION})

ARRIVAL_CASCADE_FROM = frozenset({DispatchStatus.ASSIGNED, DispatchStatus.DISPATCHED})


class StatusEngine:

    @staticmethod
    def allowed_targets(current: DispatchStatus) -> List[DispatchStatus]:
        return list(VALID_STATUS_TRANSITIONS[current])

    @staticmethod
    def is_terminal(status: DispatchStatus) -> bool:
        return status in TERMINAL_STATUSES

    @staticmethod
    def validate_transition(current: DispatchStatus, target: DispatchStatus,
                            cancellation_reason: Optional[str] = None):
        """
        Check a client-requested transition.

        Raises:
            InvalidStatusTransitionError: target not reachable from current
            DispatchValidationError: cancelling without a reason
        """
        allowed = VALID_STATUS_TRANSITIONS[current]
        if target not in allowed:
            raise InvalidStatusTransitionError(current.value, target.value, [s.value for s in allowed])

        if target == DispatchStatus.CANCELLED and not (cancellation_reason and cancellation_reason.strip()):
            raise DispatchValidationError(
                "A cancellation reason is required to cancel a dispatch event",
                error_code="CANCELLATION_REASON_REQUIRED",
                details={"status": target.value},
            )

    @staticmethod
    def apply_transition(event, target: DispatchStatus, now: datetime,
                         cancellation_reason: Optional[str] = None,
                         cancellation_notes: Optional[str] = None,
                         estimated_delay_minutes: Optional[int] = None):
        """Set the new status and the fields stamped on entering it."""
        event.status = target

        if target == DispatchStatus.DISPATCHED and event.actual_departure_time is None:
            event.actual_departure_time = now
        elif target == DispatchStatus.COMPLETED:
            event.actual_completion_time = now
        elif target == DispatchStatus.CANCELLED:
            event.cancellation_reason = cancellation_reason
            event.cancellation_notes = cancellation_notes
        elif target == DispatchStatus.DELAYED and estimated_delay_minutes is not None:
            event.estimated_delay_minutes = estimated_delay_minutes

    @staticmethod
    def is_first_live_stop(stop, stops: Sequence) -> bool:
        """
        True when stop has the lowest sequence among the stops still on the
        driver's path (skipped and exception stops are left out).
        """
        live = [s for s in stops if s.status not in OFF_ROUTE_STOP_STATUSES or s is stop]
        if not live:
            return False
        return min(live, key=lambda s: s.sequence) is stop

    @staticmethod
    def cascade(event, stops: Sequence, updated_stop, became_arrived: bool,
                now: datetime) -> Optional[DispatchStatus]:
        """
        Derive the event status from its stops after a stop update.

        Cascades bypass the transition table but never leave a terminal
        status. Returns the new status, or None when nothing changed.
        """
        if event.status in TERMINAL_STATUSES:
            return None

        if stops and all(s.status in RESOLVED_STOP_STATUSES for s in stops):
            event.status = DispatchStatus.COMPLETED
            event.actual_completion_time = now
            logger.info("Dispatch %s completed by stop progress", event.id)
            return DispatchStatus.COMPLETED

        if (
            became_arrived
            and event.status in ARRIVAL_CASCADE_FROM
            and StatusEngine.is_first_live_stop(updated_stop, stops)
        ):
            event.status = DispatchStatus.IN_TRANSIT
            if event.actual_departure_time is None:
                event.actual_departure_time = now
            logger.info("Dispatch %s in transit on first stop arrival", event.id)
            return DispatchStatus.IN_TRANSIT

        return None
