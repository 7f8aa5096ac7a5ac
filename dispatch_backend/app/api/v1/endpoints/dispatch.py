"""
Dispatch API Endpoints.

Dispatch board per terminal plus the lifecycle operations on a single
dispatch event and its stops.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Request, status

from dispatch_backend.app.core.dependencies import get_current_user, get_dispatch_service
from dispatch_backend.app.core.guards import require_role, TerminalScopeGuard
from dispatch_backend.app.domain.dispatch.dispatch_service import DispatchEventService
from dispatch_backend.app.models.dispatch_enums import DispatchStatus
from dispatch_backend.app.models.enums import DISPATCH_WRITE_ROLES, DISPATCH_DELETE_ROLES
from dispatch_backend.app.schemas.assignment import DriverAssignmentRequest, EquipmentAssignmentRequest
from dispatch_backend.app.schemas.dispatch_event import (
    DispatchEventCreate,
    DispatchEventResponse,
    DispatchEventUpdate,
    DispatchEventWithStopsResponse,
    DispatchGenerateRequest,
    DispatchGenerateResponse,
    DispatchStatusChange,
    SkippedRoute,
    StopUpdateResponse,
)
from dispatch_backend.app.schemas.dispatch_event_stop import DispatchEventStopResponse, DispatchEventStopUpdate

terminal_router = APIRouter(prefix="/terminals/{terminal_id}/dispatch", tags=["Dispatch Board"])
router = APIRouter(prefix="/dispatch", tags=["Dispatch"])
terminal_guard = TerminalScopeGuard()


def _actor(request: Request, current_user: dict) -> dict:
    """Token payload enriched with request origin for the audit log."""
    return {
        **current_user,
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def _with_stops(event, stops) -> DispatchEventWithStopsResponse:
    return DispatchEventWithStopsResponse(
        event=DispatchEventResponse.model_validate(event),
        stops=[DispatchEventStopResponse.model_validate(s) for s in stops],
    )


async def _load_in_scope(service: DispatchEventService, dispatch_id: int, current_user: dict):
    event = await service.get_dispatch_event(dispatch_id)
    terminal_guard.enforce(event.terminal_id, current_user)
    return event


# ----------------------------------------------------------------------
# Terminal dispatch board
# ----------------------------------------------------------------------

@terminal_router.get("", response_model=List[DispatchEventResponse])
async def list_dispatch_events(
    terminal_id: int = Path(..., gt=0),
    execution_date: Optional[date] = Query(None, alias="date"),
    status_filter: Optional[DispatchStatus] = Query(None, alias="status"),
    driver_id: Optional[int] = Query(None, gt=0),
    current_user: dict = Depends(get_current_user),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """List a terminal's dispatch events, newest date first."""
    terminal_guard.enforce(terminal_id, current_user)
    events = await service.list_dispatch_events_for_terminal(
        terminal_id, execution_date=execution_date, status=status_filter, driver_id=driver_id
    )
    return [DispatchEventResponse.model_validate(e) for e in events]


@terminal_router.post("", response_model=DispatchEventWithStopsResponse, status_code=status.HTTP_201_CREATED)
async def create_dispatch_event(
    payload: DispatchEventCreate,
    request: Request,
    terminal_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """
    Dispatch a route for one day.

    Driver and equipment come from the request, else an active substitution,
    else the route defaults. Stops are created from the route's templates.
    """
    terminal_guard.enforce(terminal_id, current_user)
    data = payload.model_dump(exclude={"route_id", "execution_date", "priority"})
    event, stops = await service.create_dispatch_event(
        payload.route_id,
        terminal_id,
        payload.execution_date,
        priority=payload.priority,
        actor=_actor(request, current_user),
        **data,
    )
    return _with_stops(event, stops)


@terminal_router.post("/generate", response_model=DispatchGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_daily_dispatch(
    payload: DispatchGenerateRequest,
    request: Request,
    terminal_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """Create the day's dispatch events for every route scheduled on that weekday."""
    terminal_guard.enforce(terminal_id, current_user)
    created, skipped = await service.generate_daily_dispatch_events(
        terminal_id, payload.execution_date, actor=_actor(request, current_user)
    )
    return DispatchGenerateResponse(
        created=[DispatchEventResponse.model_validate(e) for e in created],
        skipped=[SkippedRoute(**s) for s in skipped],
    )


# ----------------------------------------------------------------------
# Single dispatch event
# ----------------------------------------------------------------------

@router.get("/{dispatch_id}", response_model=DispatchEventResponse)
async def get_dispatch_event(
    dispatch_id: int = Path(..., gt=0),
    current_user: dict = Depends(get_current_user),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    event = await _load_in_scope(service, dispatch_id, current_user)
    return DispatchEventResponse.model_validate(event)


@router.get("/{dispatch_id}/stops", response_model=DispatchEventWithStopsResponse)
async def get_dispatch_event_with_stops(
    dispatch_id: int = Path(..., gt=0),
    current_user: dict = Depends(get_current_user),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    await _load_in_scope(service, dispatch_id, current_user)
    event, stops = await service.get_dispatch_event_with_stops(dispatch_id)
    return _with_stops(event, stops)


@router.patch("/{dispatch_id}", response_model=DispatchEventResponse)
async def update_dispatch_event(
    payload: DispatchEventUpdate,
    request: Request,
    dispatch_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """
    Patch schedule, notes and telemetry fields.

    Status, assignment and the computed metrics have dedicated endpoints.
    """
    await _load_in_scope(service, dispatch_id, current_user)
    event = await service.update_dispatch_event(
        dispatch_id, payload.model_dump(exclude_unset=True), actor=_actor(request, current_user)
    )
    return DispatchEventResponse.model_validate(event)


@router.patch("/{dispatch_id}/status", response_model=DispatchEventResponse)
async def change_dispatch_status(
    payload: DispatchStatusChange,
    request: Request,
    dispatch_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """Move the event along the transition table; cancelling needs a reason."""
    await _load_in_scope(service, dispatch_id, current_user)
    event = await service.transition_status(
        dispatch_id,
        payload.status,
        cancellation_reason=payload.cancellation_reason,
        cancellation_notes=payload.cancellation_notes,
        estimated_delay_minutes=payload.estimated_delay_minutes,
        actor=_actor(request, current_user),
    )
    return DispatchEventResponse.model_validate(event)


@router.post("/{dispatch_id}/assign", response_model=DispatchEventResponse)
async def assign_driver(
    payload: DriverAssignmentRequest,
    request: Request,
    dispatch_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """Assign a driver (checked against availability) or unassign with null."""
    await _load_in_scope(service, dispatch_id, current_user)
    fields = payload.model_dump(exclude_unset=True, exclude={"driver_id"})
    event = await service.assign_driver(
        dispatch_id, payload.driver_id, actor=_actor(request, current_user), **fields
    )
    return DispatchEventResponse.model_validate(event)


@router.post("/{dispatch_id}/equipment", response_model=DispatchEventResponse)
async def assign_equipment(
    payload: EquipmentAssignmentRequest,
    request: Request,
    dispatch_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    await _load_in_scope(service, dispatch_id, current_user)
    event = await service.assign_equipment(
        dispatch_id, actor=_actor(request, current_user), **payload.model_dump(exclude_unset=True)
    )
    return DispatchEventResponse.model_validate(event)


@router.patch("/{dispatch_id}/stops/{stop_id}", response_model=StopUpdateResponse)
async def update_stop(
    payload: DispatchEventStopUpdate,
    request: Request,
    dispatch_id: int = Path(..., gt=0),
    stop_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """
    Record stop progress.

    On-time status and service time are computed; the event may cascade to
    in_transit (first stop arrival) or completed (every stop resolved).
    """
    await _load_in_scope(service, dispatch_id, current_user)
    stop, event = await service.update_stop(
        dispatch_id, stop_id, payload.model_dump(exclude_unset=True), actor=_actor(request, current_user)
    )
    return StopUpdateResponse(
        stop=DispatchEventStopResponse.model_validate(stop),
        event=DispatchEventResponse.model_validate(event),
    )


@router.delete("/{dispatch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dispatch_event(
    request: Request,
    dispatch_id: int = Path(..., gt=0),
    current_user: dict = Depends(require_role(DISPATCH_DELETE_ROLES)),
    service: DispatchEventService = Depends(get_dispatch_service),
):
    """Delete an event and its stops (terminal managers and above)."""
    await _load_in_scope(service, dispatch_id, current_user)
    await service.delete_dispatch_event(dispatch_id, actor=_actor(request, current_user))
