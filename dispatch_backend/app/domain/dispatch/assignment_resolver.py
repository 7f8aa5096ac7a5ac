"""
Assignment Resolver (Domain Logic).

Decides which driver and equipment a dispatch event carries, at creation and
on later (re)assignment.

Precedence at creation, per field:
1. Explicit value in the request
2. Active route substitution for the execution date
3. Route default (when auto_assign_route_defaults is enabled)
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.exceptions import DispatchValidationError, DriverUnavailableError
from dispatch_backend.app.core.reliability import call_collaborator
from dispatch_backend.app.domain.dispatch.status_engine import TERMINAL_STATUSES
from dispatch_backend.app.models.dispatch_enums import DispatchStatus

logger = logging.getLogger("dispatch.assignment")

# (event field, substitution field, route field)
ASSIGNMENT_SOURCES = (
    ("assigned_driver_id", "driver_id", "default_driver_id"),
    ("assigned_truck_id", "truck_number", "truck_number"),
    ("assigned_sub_unit_id", "sub_unit_number", "sub_unit_number"),
)


class AssignmentResolver:

    def __init__(self, availability, substitutions):
        self.availability = availability
        self.substitutions = substitutions

    async def find_substitution(self, route_id: int, execution_date: date):
        return await call_collaborator("substitutions", self.substitutions.find_active, route_id, execution_date)

    @staticmethod
    def resolve_initial(route, substitution, explicit: Dict[str, Any],
                        auto_assign_defaults: Optional[bool] = None) -> Dict[str, Any]:
        """
        Resolve the initial assignment of a new event.

        Returns:
            Dict with assigned_driver_id, assigned_truck_id, assigned_sub_unit_id
        """
        if auto_assign_defaults is None:
            auto_assign_defaults = settings.auto_assign_route_defaults

        resolved = {}
        for event_field, substitution_field, route_field in ASSIGNMENT_SOURCES:
            value = explicit.get(event_field)
            if value is None and substitution is not None:
                value = getattr(substitution, substitution_field)
            if value is None and auto_assign_defaults:
                value = getattr(route, route_field)
            resolved[event_field] = value
        return resolved

    @staticmethod
    def initial_status(assignment: Dict[str, Any]) -> DispatchStatus:
        if assignment.get("assigned_driver_id"):
            return DispatchStatus.ASSIGNED
        return DispatchStatus.PLANNED

    @staticmethod
    def ensure_open(event):
        """
        Raises:
            DispatchValidationError: the event is completed or cancelled
        """
        if event.status in TERMINAL_STATUSES:
            raise DispatchValidationError(
                f"Dispatch event is {event.status.value} and can no longer be reassigned",
                error_code="DISPATCH_CLOSED",
                details={"dispatch_event_id": event.id, "status": event.status.value},
            )

    async def ensure_driver_available(self, driver_id: Optional[int], execution_date: date):
        """
        Raises:
            DriverUnavailableError: availability says the driver is off that day
            DependencyFailureError: availability could not be checked
        """
        if driver_id is None:
            return
        available = await call_collaborator(
            "availability", self.availability.is_driver_available, driver_id, execution_date
        )
        if not available:
            logger.info("Driver %s unavailable on %s", driver_id, execution_date)
            raise DriverUnavailableError(driver_id, execution_date)

    @staticmethod
    def apply_driver(event, driver_id: Optional[int], fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Put a driver on the event, or take it off with driver_id None.

        planned moves to assigned when a driver is set; assigned falls back to
        planned when the driver is removed. truck_id is applied only when
        present in fields.
        """
        changes = {}
        if event.assigned_driver_id != driver_id:
            changes["assigned_driver_id"] = {"from": event.assigned_driver_id, "to": driver_id}
            event.assigned_driver_id = driver_id

        if "truck_id" in fields and event.assigned_truck_id != fields["truck_id"]:
            changes["assigned_truck_id"] = {"from": event.assigned_truck_id, "to": fields["truck_id"]}
            event.assigned_truck_id = fields["truck_id"]

        if driver_id is not None and event.status == DispatchStatus.PLANNED:
            changes["status"] = {"from": event.status.value, "to": DispatchStatus.ASSIGNED.value}
            event.status = DispatchStatus.ASSIGNED
        elif driver_id is None and event.status == DispatchStatus.ASSIGNED:
            changes["status"] = {"from": event.status.value, "to": DispatchStatus.PLANNED.value}
            event.status = DispatchStatus.PLANNED

        return changes

    @staticmethod
    def apply_equipment(event, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Apply truck_id / sub_unit_id when present in fields."""
        changes = {}
        for field, attr in (("truck_id", "assigned_truck_id"), ("sub_unit_id", "assigned_sub_unit_id")):
            if field in fields and getattr(event, attr) != fields[field]:
                changes[attr] = {"from": getattr(event, attr), "to": fields[field]}
                setattr(event, attr, fields[field])
        return changes
