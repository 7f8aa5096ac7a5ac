"""
Failure Injection Tests.

Validates resilience against collaborator, audit and real-time failures.
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock
from sqlalchemy import select, func

from dispatch_backend.app.core.exceptions import (
    DependencyFailureError,
    DriverUnavailableError,
    ErrorKind,
)
from dispatch_backend.app.core.reliability import CircuitBreaker, CircuitOpenError, call_collaborator
from dispatch_backend.app.domain.dispatch.dispatch_service import DispatchEventService
from dispatch_backend.app.models.dispatch_enums import DispatchStatus, StopStatus
from dispatch_backend.app.models.dispatch_event import DispatchEvent
from dispatch_backend.app.services.audit import AuditAction, AuditLogWriter, get_audit_trail
from dispatch_backend.app.services.realtime import RealtimePublisher

EXECUTION_DATE = date(2026, 3, 1)


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    assert cb.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_recovers():
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    async def healthy_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Pretend the reset timeout has elapsed
    cb.last_failure_time = 0
    assert await cb.call(healthy_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_business_errors_do_not_open_circuit():
    """A collaborator answering with a business error is healthy."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    async def unavailable_driver():
        raise DriverUnavailableError(42, EXECUTION_DATE)

    for _ in range(5):
        with pytest.raises(DriverUnavailableError):
            await cb.call(unavailable_driver)

    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_call_collaborator_maps_errors():
    async def broken():
        raise ConnectionError("connection refused")

    async def business_rule():
        raise DriverUnavailableError(42, EXECUTION_DATE)

    with pytest.raises(DependencyFailureError) as exc_info:
        await call_collaborator("availability", broken)
    assert exc_info.value.kind == ErrorKind.DEPENDENCY_FAILURE
    assert exc_info.value.status_code == 503
    assert exc_info.value.details["collaborator"] == "availability"

    # Business errors are not dependency failures
    with pytest.raises(DriverUnavailableError):
        await call_collaborator("substitutions", business_rule)


@pytest.mark.asyncio
async def test_availability_outage_leaves_event_unchanged(db_session, route_factory, redis_stub, mocker):
    """An unanswered availability check is a dependency failure, not 'unavailable'."""
    availability = mocker.Mock()
    availability.is_driver_available = AsyncMock(side_effect=ConnectionError("availability down"))
    service = DispatchEventService(db_session, publisher=RealtimePublisher(redis_stub), availability=availability)

    route = await route_factory()
    event, _ = await service.create_dispatch_event(route.id, 1, EXECUTION_DATE)
    event_id = event.id

    with pytest.raises(DependencyFailureError) as exc_info:
        await service.assign_driver(event_id, 42)
    assert exc_info.value.error_code == "DEPENDENCY_FAILURE"

    event = await db_session.get(DispatchEvent, event_id)
    await db_session.refresh(event)
    assert event.status == DispatchStatus.PLANNED
    assert event.assigned_driver_id is None


@pytest.mark.asyncio
async def test_availability_circuit_opens(db_session, route_factory, mocker):
    availability = mocker.Mock()
    availability.is_driver_available = AsyncMock(side_effect=TimeoutError("availability timeout"))
    service = DispatchEventService(db_session, availability=availability)

    route = await route_factory()
    event, _ = await service.create_dispatch_event(route.id, 1, EXECUTION_DATE)
    event_id = event.id

    for _ in range(5):
        with pytest.raises(DependencyFailureError):
            await service.assign_driver(event_id, 42)

    with pytest.raises(DependencyFailureError) as exc_info:
        await service.assign_driver(event_id, 42)
    assert exc_info.value.details["reason"] == "circuit open"
    assert availability.is_driver_available.await_count == 5


@pytest.mark.asyncio
async def test_route_directory_outage_creates_nothing(db_session, mocker):
    routes = mocker.Mock()
    routes.get = AsyncMock(side_effect=ConnectionError("route store down"))
    service = DispatchEventService(db_session, routes=routes)

    with pytest.raises(DependencyFailureError):
        await service.create_dispatch_event(1, 1, EXECUTION_DATE)

    result = await db_session.execute(select(func.count()).select_from(DispatchEvent))
    assert result.scalar_one() == 0


@pytest.mark.asyncio
async def test_generate_aborts_on_dependency_failure(db_session, mocker):
    routes = mocker.Mock()
    routes.list_routes_for_day = AsyncMock(side_effect=ConnectionError("route store down"))
    service = DispatchEventService(db_session, routes=routes)

    with pytest.raises(DependencyFailureError):
        await service.generate_daily_dispatch_events(1, date(2026, 3, 2))


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_operation(service, route_factory, db_session, mocker):
    route = await route_factory(default_driver_id=10)
    event, stops = await service.create_dispatch_event(route.id, 1, EXECUTION_DATE)
    event_id = event.id

    mocker.patch(
        "dispatch_backend.app.services.audit.log_event",
        AsyncMock(side_effect=RuntimeError("audit table locked")),
    )
    stop, event = await service.update_stop(event_id, stops[0].id, {"status": StopStatus.ARRIVED})

    # Returned objects are usable after the audit rollback
    assert stop.status == StopStatus.ARRIVED
    assert event.status == DispatchStatus.IN_TRANSIT

    result = await db_session.execute(select(DispatchEvent.status).where(DispatchEvent.id == event_id))
    assert result.scalar_one() == DispatchStatus.IN_TRANSIT


@pytest.mark.asyncio
async def test_audit_writer_swallows_errors(db_session, mocker):
    mocker.patch(
        "dispatch_backend.app.services.audit.log_event",
        AsyncMock(side_effect=RuntimeError("audit table locked")),
    )
    writer = AuditLogWriter(db_session)

    assert await writer.record(AuditAction.DISPATCH_UPDATED, entity_id=1) is None


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_operation(service, route_factory, redis_stub, db_session):
    redis_stub.fail_publish = True
    route = await route_factory()

    event, stops = await service.create_dispatch_event(route.id, 1, EXECUTION_DATE)

    assert event.id is not None
    assert len(stops) == 2
    assert redis_stub.published == []
    trail = await get_audit_trail(db_session, entity_id=event.id, action=AuditAction.DISPATCH_CREATED)
    assert len(trail) == 1
