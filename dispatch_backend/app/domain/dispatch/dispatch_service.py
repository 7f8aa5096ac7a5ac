"""
Dispatch Event Service (Domain Logic).

Orchestrates the dispatch event lifecycle over one AsyncSession. Every write
operation is an explicit pipeline of named steps (see pipeline.py):

1. Load and validate (no writes)
2. Mutate the event and/or its stops
3. Commit in a single transaction
4. Side effects after commit: real-time publish, then audit row

A failure before the commit rolls the whole operation back. Side effects never
fail an operation that has committed.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from dispatch_backend.app.core.exceptions import (
    AppException,
    ConcurrentModificationError,
    DependencyFailureError,
    DispatchNotFoundError,
    DispatchValidationError,
    DuplicateDispatchError,
    InsufficientPermissionsError,
    RouteNotFoundError,
    StopNotFoundError,
)
from dispatch_backend.app.core.permissions import can_delete_dispatch
from dispatch_backend.app.core.reliability import call_collaborator
from dispatch_backend.app.db.session import utcnow
from dispatch_backend.app.domain.dispatch.assignment_resolver import AssignmentResolver
from dispatch_backend.app.domain.dispatch.on_time import classify_arrival
from dispatch_backend.app.domain.dispatch.pipeline import OperationContext, Pipeline
from dispatch_backend.app.domain.dispatch.status_engine import StatusEngine
from dispatch_backend.app.domain.dispatch.stop_progress import (
    apply_stop_patch,
    check_stop_patch,
    compute_service_time,
    recompute_aggregates,
)
from dispatch_backend.app.models.dispatch_enums import DispatchPriority, DispatchStatus
from dispatch_backend.app.models.dispatch_event import DispatchEvent
from dispatch_backend.app.models.dispatch_event_stop import DispatchEventStop
from dispatch_backend.app.schemas.dispatch_event import DispatchEventResponse
from dispatch_backend.app.schemas.dispatch_event_stop import DispatchEventStopResponse
from dispatch_backend.app.services import realtime
from dispatch_backend.app.services.audit import AuditAction, AuditLogWriter
from dispatch_backend.app.services.availability import AvailabilityService
from dispatch_backend.app.services.route_directory import RouteDirectory
from dispatch_backend.app.services.substitution import SubstitutionService

logger = logging.getLogger("dispatch.service")

# Fields a client may patch directly on an event
PATCHABLE_EVENT_FIELDS = (
    "priority",
    "planned_departure_time",
    "actual_departure_time",
    "estimated_return_time",
    "actual_return_time",
    "estimated_completion_time",
    "estimated_delay_minutes",
    "dispatch_notes",
    "operational_notes",
    "last_location_update",
    "last_geotab_sync",
)

# Patchable but backed by NOT NULL columns
NON_NULLABLE_EVENT_FIELDS = ("priority",)


class DispatchEventService:
    """
    Dispatch event lifecycle engine.

    Collaborators default to the SQLAlchemy-backed services on the same
    session; tests and other adapters can pass their own.
    """

    def __init__(
        self,
        db: AsyncSession,
        publisher: Optional[realtime.RealtimePublisher] = None,
        routes=None,
        availability=None,
        substitutions=None,
        audit=None,
    ):
        self.db = db
        self.publisher = publisher
        self.routes = routes or RouteDirectory(db)
        self.availability = availability or AvailabilityService(db)
        self.substitutions = substitutions or SubstitutionService(db)
        self.audit = audit or AuditLogWriter(db)
        self.assignments = AssignmentResolver(self.availability, self.substitutions)

        self._pipelines = {
            pipeline.name: pipeline for pipeline in (
                Pipeline("create_dispatch_event", [
                    ("load_route", self._load_route),
                    ("reject_duplicate", self._reject_duplicate),
                    ("resolve_assignment", self._resolve_assignment),
                    ("insert_event", self._insert_event),
                    ("create_stops", self._create_stops),
                    ("commit", self._commit),
                ]),
                Pipeline("transition_status", [
                    ("load_event", self._load_event),
                    ("validate_transition", self._validate_transition),
                    ("apply_transition", self._apply_transition),
                    ("commit", self._commit),
                ]),
                Pipeline("update_dispatch_event", [
                    ("load_event", self._load_event),
                    ("apply_patch", self._apply_event_patch),
                    ("commit", self._commit),
                ]),
                Pipeline("assign_driver", [
                    ("load_event", self._load_event),
                    ("reject_closed", self._reject_closed),
                    ("check_availability", self._check_availability),
                    ("apply_driver", self._apply_driver),
                    ("commit", self._commit),
                ]),
                Pipeline("assign_equipment", [
                    ("load_event", self._load_event),
                    ("reject_closed", self._reject_closed),
                    ("apply_equipment", self._apply_equipment),
                    ("commit", self._commit),
                ]),
                Pipeline("update_stop", [
                    ("load_event", self._load_event),
                    ("load_stop", self._load_stop),
                    ("apply_patch", self._apply_stop_patch),
                    ("classify_arrival", self._classify_arrival),
                    ("compute_service_time", self._compute_service_time),
                    ("recompute_aggregates", self._recompute_aggregates),
                    ("cascade_event_status", self._cascade_event_status),
                    ("commit", self._commit),
                ]),
                Pipeline("delete_dispatch_event", [
                    ("authorize_delete", self._authorize_delete),
                    ("load_event", self._load_event),
                    ("delete_event", self._delete_event),
                    ("commit", self._commit),
                ]),
            )
        }

    def pipeline(self, name: str) -> Pipeline:
        return self._pipelines[name]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_dispatch_event(self, dispatch_event_id: int) -> DispatchEvent:
        result = await self.db.execute(select(DispatchEvent).where(DispatchEvent.id == dispatch_event_id))
        event = result.scalar_one_or_none()
        if event is None:
            raise DispatchNotFoundError(dispatch_event_id)
        return event

    async def list_stops(self, dispatch_event_id: int) -> List[DispatchEventStop]:
        result = await self.db.execute(
            select(DispatchEventStop)
            .where(DispatchEventStop.dispatch_event_id == dispatch_event_id)
            .order_by(DispatchEventStop.sequence, DispatchEventStop.id)
        )
        return list(result.scalars().all())

    async def get_dispatch_event_with_stops(self, dispatch_event_id: int) -> Tuple[DispatchEvent, List[DispatchEventStop]]:
        event = await self.get_dispatch_event(dispatch_event_id)
        return event, await self.list_stops(event.id)

    async def find_by_route_and_date(self, route_id: int, execution_date: date) -> Optional[DispatchEvent]:
        result = await self.db.execute(
            select(DispatchEvent).where(
                DispatchEvent.route_id == route_id,
                DispatchEvent.execution_date == execution_date,
            )
        )
        return result.scalar_one_or_none()

    async def list_dispatch_events_for_terminal(
        self,
        terminal_id: int,
        execution_date: Optional[date] = None,
        status: Optional[DispatchStatus] = None,
        driver_id: Optional[int] = None,
    ) -> List[DispatchEvent]:
        """Dispatch board: newest date first, then by planned departure."""
        query = select(DispatchEvent).where(DispatchEvent.terminal_id == terminal_id)
        if execution_date is not None:
            query = query.where(DispatchEvent.execution_date == execution_date)
        if status is not None:
            query = query.where(DispatchEvent.status == status)
        if driver_id is not None:
            query = query.where(DispatchEvent.assigned_driver_id == driver_id)
        query = query.order_by(
            DispatchEvent.execution_date.desc(),
            DispatchEvent.planned_departure_time.asc(),
            DispatchEvent.id.asc(),
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_dispatch_event(
        self,
        route_id: int,
        terminal_id: int,
        execution_date: date,
        priority: DispatchPriority = DispatchPriority.NORMAL,
        actor: Optional[dict] = None,
        **fields: Any,
    ) -> Tuple[DispatchEvent, List[DispatchEventStop]]:
        """
        Dispatch a route for one day.

        Optional fields: assigned_driver_id, assigned_truck_id,
        assigned_sub_unit_id, dispatch_notes, operational_notes.
        """
        ctx = OperationContext("create_dispatch_event", {
            "route_id": route_id,
            "terminal_id": terminal_id,
            "execution_date": execution_date,
            "priority": priority,
            **fields,
        }, actor)
        await self._execute(ctx)
        return ctx.event, ctx.stops

    async def transition_status(
        self,
        dispatch_event_id: int,
        status: DispatchStatus,
        cancellation_reason: Optional[str] = None,
        cancellation_notes: Optional[str] = None,
        estimated_delay_minutes: Optional[int] = None,
        actor: Optional[dict] = None,
    ) -> DispatchEvent:
        ctx = OperationContext("transition_status", {
            "dispatch_event_id": dispatch_event_id,
            "status": status,
            "cancellation_reason": cancellation_reason,
            "cancellation_notes": cancellation_notes,
            "estimated_delay_minutes": estimated_delay_minutes,
        }, actor)
        await self._execute(ctx)
        return ctx.event

    async def update_dispatch_event(self, dispatch_event_id: int, patch: Dict[str, Any],
                                    actor: Optional[dict] = None) -> DispatchEvent:
        ctx = OperationContext("update_dispatch_event", {"dispatch_event_id": dispatch_event_id, "patch": patch}, actor)
        await self._execute(ctx)
        return ctx.event

    async def assign_driver(self, dispatch_event_id: int, driver_id: Optional[int],
                            actor: Optional[dict] = None, **fields: Any) -> DispatchEvent:
        """
        Assign or unassign (driver_id None) the driver.

        Pass truck_id=... to change the truck in the same call.
        """
        ctx = OperationContext("assign_driver", {
            "dispatch_event_id": dispatch_event_id,
            "driver_id": driver_id,
            "fields": fields,
        }, actor)
        await self._execute(ctx)
        return ctx.event

    async def assign_equipment(self, dispatch_event_id: int, actor: Optional[dict] = None,
                               **fields: Any) -> DispatchEvent:
        """Set truck_id and/or sub_unit_id; absent keys are left alone."""
        ctx = OperationContext("assign_equipment", {"dispatch_event_id": dispatch_event_id, "fields": fields}, actor)
        await self._execute(ctx)
        return ctx.event

    async def update_stop(self, dispatch_event_id: int, stop_id: int, patch: Dict[str, Any],
                          actor: Optional[dict] = None) -> Tuple[DispatchEventStop, DispatchEvent]:
        """
        Record stop progress and cascade it into the event.

        Returns the updated stop and its (possibly cascaded) event.
        """
        ctx = OperationContext("update_stop", {
            "dispatch_event_id": dispatch_event_id,
            "stop_id": stop_id,
            "patch": patch,
        }, actor)
        await self._execute(ctx)
        return ctx.stop, ctx.event

    async def delete_dispatch_event(self, dispatch_event_id: int, actor: Optional[dict] = None):
        ctx = OperationContext("delete_dispatch_event", {"dispatch_event_id": dispatch_event_id}, actor)
        await self._execute(ctx)

    async def generate_daily_dispatch_events(
        self,
        terminal_id: int,
        execution_date: date,
        actor: Optional[dict] = None,
    ) -> Tuple[List[DispatchEvent], List[Dict[str, str]]]:
        """
        Dispatch every route of a terminal scheduled on the date's weekday.

        Routes that already have an event, or fail a business rule, are
        reported as skipped. Dependency failures abort the run.
        """
        routes = await call_collaborator(
            "route_directory", self.routes.list_routes_for_day, terminal_id, execution_date.weekday()
        )
        # Plain values: a failed create rolls back and expires loaded routes
        targets = [(route.id, route.trkid) for route in routes]

        created: List[DispatchEvent] = []
        created_ids: List[int] = []
        skipped: List[Dict[str, str]] = []
        for route_id, trkid in targets:
            try:
                event, _ = await self.create_dispatch_event(route_id, terminal_id, execution_date, actor=actor)
            except DependencyFailureError:
                raise
            except AppException as exc:
                skipped.append({"trkid": trkid, "reason": exc.error_code})
                continue
            created.append(event)
            created_ids.append(event.id)

        logger.info(
            "Generated dispatch for terminal %s on %s: %d created, %d skipped",
            terminal_id, execution_date, len(created), len(skipped),
        )
        await self.audit.record(
            AuditAction.DISPATCH_GENERATED,
            actor=actor,
            summary=f"Daily dispatch generated for terminal {terminal_id} on {execution_date}",
            metadata={
                "terminal_id": terminal_id,
                "execution_date": str(execution_date),
                "created": created_ids,
                "skipped": skipped,
            },
        )
        for event in created:
            await self.db.refresh(event)
        return created, skipped

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(self, ctx: OperationContext) -> OperationContext:
        pipeline = self._pipelines[ctx.operation]
        try:
            await pipeline.run(ctx)
        except StaleDataError:
            await self.db.rollback()
            logger.warning("Concurrent modification in %s on dispatch %s", ctx.operation, ctx.params.get("dispatch_event_id"))
            raise ConcurrentModificationError(ctx.params.get("dispatch_event_id"))
        except Exception:
            await self.db.rollback()
            raise
        await self._after_commit(ctx)
        return ctx

    async def _commit(self, ctx: OperationContext):
        await self.db.commit()

    async def _after_commit(self, ctx: OperationContext):
        if self.publisher is not None:
            for terminal_id, event_name, payload in ctx.messages:
                await self.publisher.publish(terminal_id, event_name, self._snapshot(payload))

        audit_failed = False
        for entry in ctx.audit_entries:
            if await self.audit.record(actor=ctx.actor, **entry) is None:
                audit_failed = True

        # A failed audit write rolled the session back and expired our objects
        if audit_failed and not ctx.deleted:
            for obj in [ctx.event, *ctx.stops]:
                if obj is not None:
                    await self.db.refresh(obj)

    @staticmethod
    def _snapshot(payload: Any) -> Any:
        if isinstance(payload, DispatchEvent):
            return DispatchEventResponse.model_validate(payload)
        if isinstance(payload, DispatchEventStop):
            return DispatchEventStopResponse.model_validate(payload)
        return payload

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _load_event(self, ctx: OperationContext):
        ctx.event = await self.get_dispatch_event(ctx.params["dispatch_event_id"])

    async def _reject_closed(self, ctx: OperationContext):
        AssignmentResolver.ensure_open(ctx.event)

    # ------------------------------------------------------------------
    # create_dispatch_event steps
    # ------------------------------------------------------------------

    async def _load_route(self, ctx: OperationContext):
        route_id = ctx.params["route_id"]
        route = await call_collaborator("route_directory", self.routes.get, route_id)
        if route is None or route.terminal_id != ctx.params["terminal_id"]:
            raise RouteNotFoundError(route_id)
        ctx.route = route
        ctx.route_stops = await call_collaborator("route_directory", self.routes.list_stops, route_id)

    async def _reject_duplicate(self, ctx: OperationContext):
        existing = await self.find_by_route_and_date(ctx.params["route_id"], ctx.params["execution_date"])
        if existing is not None:
            raise DuplicateDispatchError(ctx.params["route_id"], ctx.params["execution_date"])

    async def _resolve_assignment(self, ctx: OperationContext):
        substitution = await self.assignments.find_substitution(ctx.route.id, ctx.params["execution_date"])
        ctx.assignment = AssignmentResolver.resolve_initial(ctx.route, substitution, ctx.params)

    async def _insert_event(self, ctx: OperationContext):
        route = ctx.route
        event = DispatchEvent(
            route_id=route.id,
            terminal_id=route.terminal_id,
            execution_date=ctx.params["execution_date"],
            status=AssignmentResolver.initial_status(ctx.assignment),
            priority=ctx.params.get("priority") or DispatchPriority.NORMAL,
            planned_departure_time=route.departure_time,
            dispatch_notes=ctx.params.get("dispatch_notes"),
            operational_notes=ctx.params.get("operational_notes"),
            **ctx.assignment,
        )
        self.db.add(event)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost the race to another creator; the unique constraint decides
            await self.db.rollback()
            raise DuplicateDispatchError(route.id, ctx.params["execution_date"])
        ctx.event = event

    async def _create_stops(self, ctx: OperationContext):
        event = ctx.event
        ctx.stops = [
            DispatchEventStop(
                dispatch_event_id=event.id,
                route_stop_id=route_stop.id,
                sequence=route_stop.sequence,
                planned_eta=route_stop.eta,
                planned_etd=route_stop.etd,
            )
            for route_stop in ctx.route_stops
        ]
        self.db.add_all(ctx.stops)
        await self.db.flush()

        logger.info(
            "Dispatch %s created for route %s on %s (%s, %d stops)",
            event.id, ctx.route.trkid, event.execution_date, event.status.value, len(ctx.stops),
        )
        ctx.publish(event.terminal_id, realtime.DISPATCH_CREATED, event)
        ctx.audit(
            AuditAction.DISPATCH_CREATED,
            event.id,
            f"Dispatch event created for route {ctx.route.trkid} on {event.execution_date}",
            {"route_id": event.route_id, "stops_created": len(ctx.stops), "status": event.status.value},
        )

    # ------------------------------------------------------------------
    # transition_status steps
    # ------------------------------------------------------------------

    async def _validate_transition(self, ctx: OperationContext):
        StatusEngine.validate_transition(ctx.event.status, ctx.params["status"], ctx.params.get("cancellation_reason"))

    async def _apply_transition(self, ctx: OperationContext):
        event = ctx.event
        ctx.previous_status = event.status
        StatusEngine.apply_transition(
            event,
            ctx.params["status"],
            utcnow(),
            cancellation_reason=ctx.params.get("cancellation_reason"),
            cancellation_notes=ctx.params.get("cancellation_notes"),
            estimated_delay_minutes=ctx.params.get("estimated_delay_minutes"),
        )
        logger.info("Dispatch %s: %s -> %s", event.id, ctx.previous_status.value, event.status.value)
        ctx.publish(event.terminal_id, realtime.DISPATCH_STATUS_CHANGED, event)
        ctx.audit(
            AuditAction.DISPATCH_STATUS_CHANGED,
            event.id,
            f"Dispatch status changed: {ctx.previous_status.value} -> {event.status.value}",
            {"previous_status": ctx.previous_status.value, "new_status": event.status.value},
        )

    # ------------------------------------------------------------------
    # update_dispatch_event steps
    # ------------------------------------------------------------------

    async def _apply_event_patch(self, ctx: OperationContext):
        event = ctx.event
        patch = ctx.params["patch"]
        for field in NON_NULLABLE_EVENT_FIELDS:
            if field in patch and patch[field] is None:
                raise DispatchValidationError(
                    f"{field} cannot be null",
                    error_code="NULL_NOT_ALLOWED",
                    details={"field": field},
                )

        for field, value in patch.items():
            if field not in PATCHABLE_EVENT_FIELDS:
                continue
            if getattr(event, field) != value:
                setattr(event, field, value)
                ctx.changes[field] = value

        if not ctx.changes:
            return
        ctx.publish(event.terminal_id, realtime.DISPATCH_UPDATED, event)
        ctx.audit(
            AuditAction.DISPATCH_UPDATED,
            event.id,
            f"Dispatch event {event.id} updated",
            {"changes": jsonable_encoder(ctx.changes)},
        )

    # ------------------------------------------------------------------
    # assignment steps
    # ------------------------------------------------------------------

    async def _check_availability(self, ctx: OperationContext):
        await self.assignments.ensure_driver_available(ctx.params["driver_id"], ctx.event.execution_date)

    async def _apply_driver(self, ctx: OperationContext):
        event = ctx.event
        driver_id = ctx.params["driver_id"]
        ctx.changes = AssignmentResolver.apply_driver(event, driver_id, ctx.params["fields"])

        if driver_id is None:
            action, summary = AuditAction.DRIVER_UNASSIGNED, f"Driver unassigned from dispatch {event.id}"
        else:
            action, summary = AuditAction.DRIVER_ASSIGNED, f"Driver {driver_id} assigned to dispatch {event.id}"
        logger.info(summary)
        ctx.publish(event.terminal_id, realtime.DISPATCH_UPDATED, event)
        ctx.audit(action, event.id, summary, {"driver_id": driver_id, "changes": ctx.changes})

    async def _apply_equipment(self, ctx: OperationContext):
        event = ctx.event
        ctx.changes = AssignmentResolver.apply_equipment(event, ctx.params["fields"])
        ctx.publish(event.terminal_id, realtime.DISPATCH_UPDATED, event)
        ctx.audit(
            AuditAction.EQUIPMENT_ASSIGNED,
            event.id,
            f"Equipment updated on dispatch {event.id}",
            {"changes": ctx.changes},
        )

    # ------------------------------------------------------------------
    # update_stop steps
    # ------------------------------------------------------------------

    async def _load_stop(self, ctx: OperationContext):
        event = ctx.event
        stop_id = ctx.params["stop_id"]
        stop = await self.db.get(DispatchEventStop, stop_id)
        if stop is None:
            raise StopNotFoundError(stop_id, event.id)
        if stop.dispatch_event_id != event.id:
            raise StopNotFoundError(stop_id, event.id, foreign=True)
        ctx.stops = await self.list_stops(event.id)
        ctx.stop = stop

    async def _apply_stop_patch(self, ctx: OperationContext):
        patch = ctx.params["patch"]
        check_stop_patch(ctx.stop, patch)
        ctx.stop_change = apply_stop_patch(ctx.stop, patch, utcnow())

    async def _classify_arrival(self, ctx: OperationContext):
        stop = ctx.stop
        if ctx.stop_change.arrival_changed:
            stop.on_time_status = classify_arrival(stop.planned_eta, stop.actual_arrival_time)

    async def _compute_service_time(self, ctx: OperationContext):
        stop = ctx.stop
        if ctx.stop_change.times_changed:
            stop.service_time = compute_service_time(stop.actual_arrival_time, stop.actual_departure_time)

    async def _recompute_aggregates(self, ctx: OperationContext):
        recompute_aggregates(ctx.event, ctx.stops)
        # Always write the event so its version guards the cascade below
        ctx.event.updated_at = utcnow()

    async def _cascade_event_status(self, ctx: OperationContext):
        event, stop = ctx.event, ctx.stop
        ctx.previous_status = event.status
        ctx.cascaded_status = StatusEngine.cascade(
            event, ctx.stops, stop, ctx.stop_change.became_arrived, utcnow()
        )

        ctx.publish(event.terminal_id, realtime.STOP_UPDATED, stop)
        if ctx.cascaded_status is not None:
            ctx.publish(event.terminal_id, realtime.DISPATCH_STATUS_CHANGED, event)
        ctx.audit(
            AuditAction.STOP_UPDATED,
            event.id,
            f"Stop {stop.sequence} of dispatch {event.id} updated",
            {
                "stop_id": stop.id,
                "changes": jsonable_encoder(ctx.stop_change.fields),
                "previous_event_status": ctx.previous_status.value,
                "cascaded_status": ctx.cascaded_status.value if ctx.cascaded_status else None,
            },
        )

    # ------------------------------------------------------------------
    # delete_dispatch_event steps
    # ------------------------------------------------------------------

    async def _authorize_delete(self, ctx: OperationContext):
        if not can_delete_dispatch(ctx.actor):
            raise InsufficientPermissionsError(
                "Only terminal managers and above can delete dispatch events",
                details={"dispatch_event_id": ctx.params["dispatch_event_id"]},
            )

    async def _delete_event(self, ctx: OperationContext):
        event = ctx.event
        await self.db.execute(
            delete(DispatchEventStop).where(DispatchEventStop.dispatch_event_id == event.id)
        )
        await self.db.delete(event)
        ctx.deleted = True

        logger.info("Dispatch %s deleted", event.id)
        ctx.publish(event.terminal_id, realtime.DISPATCH_DELETED, {"id": event.id})
        ctx.audit(
            AuditAction.DISPATCH_DELETED,
            event.id,
            f"Dispatch event {event.id} deleted",
            {"route_id": event.route_id, "execution_date": str(event.execution_date)},
        )
