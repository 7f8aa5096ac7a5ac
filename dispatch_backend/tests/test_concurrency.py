"""
Concurrency Tests.

Validates that lost updates are detected through the dispatch event version
and that the route/date uniqueness holds when the pre-check is raced.
"""

import pytest
from datetime import date
from sqlalchemy import select, func, text
from unittest.mock import AsyncMock

from dispatch_backend.app.core.exceptions import ConcurrentModificationError, DuplicateDispatchError
from dispatch_backend.app.models.dispatch_enums import DispatchStatus, StopStatus
from dispatch_backend.app.models.dispatch_event import DispatchEvent
from dispatch_backend.app.models.dispatch_event_stop import DispatchEventStop
from dispatch_backend.app.services.audit import AuditAction, get_audit_trail

EXECUTION_DATE = date(2026, 3, 1)


async def bump_version_elsewhere(db_session, event_id):
    """Simulate another writer committing a change behind our loaded copy."""
    await db_session.execute(
        text("UPDATE dispatch_events SET version = version + 1 WHERE id = :id"), {"id": event_id}
    )
    await db_session.commit()


@pytest.mark.asyncio
async def test_stale_stop_update_is_rejected(service, route_factory, db_session, redis_stub):
    """A stop update against a stale event version fails and writes nothing."""
    route = await route_factory(default_driver_id=10)
    event, stops = await service.create_dispatch_event(route.id, 1, EXECUTION_DATE)
    event_id, stop_id = event.id, stops[0].id
    published_before = len(redis_stub.published)

    await bump_version_elsewhere(db_session, event_id)

    with pytest.raises(ConcurrentModificationError) as exc_info:
        await service.update_stop(event_id, stop_id, {"status": StopStatus.ARRIVED})
    assert exc_info.value.error_code == "CONCURRENT_MODIFICATION"
    assert exc_info.value.status_code == 409

    stop = await db_session.get(DispatchEventStop, stop_id)
    await db_session.refresh(stop)
    assert stop.status == StopStatus.PENDING
    assert stop.actual_arrival_time is None

    event = await db_session.get(DispatchEvent, event_id)
    await db_session.refresh(event)
    assert event.status == DispatchStatus.ASSIGNED
    assert event.version == 2

    # No side effects for the losing write
    assert len(redis_stub.published) == published_before
    trail = await get_audit_trail(db_session, entity_id=event_id, action=AuditAction.STOP_UPDATED)
    assert trail == []


@pytest.mark.asyncio
async def test_retry_after_conflict_succeeds(service, route_factory, db_session):
    """After a conflict the caller reloads and retries."""
    route = await route_factory(default_driver_id=10)
    event, stops = await service.create_dispatch_event(route.id, 1, EXECUTION_DATE)
    event_id, stop_id = event.id, stops[0].id

    await bump_version_elsewhere(db_session, event_id)
    with pytest.raises(ConcurrentModificationError):
        await service.update_stop(event_id, stop_id, {"status": StopStatus.ARRIVED})

    stop, event = await service.update_stop(event_id, stop_id, {"status": StopStatus.ARRIVED})

    assert stop.status == StopStatus.ARRIVED
    assert event.status == DispatchStatus.IN_TRANSIT
    assert event.version == 3


@pytest.mark.asyncio
async def test_stale_status_transition_is_rejected(service, route_factory, db_session):
    route = await route_factory(default_driver_id=10)
    event, _ = await service.create_dispatch_event(route.id, 1, EXECUTION_DATE)
    event_id = event.id

    await bump_version_elsewhere(db_session, event_id)

    with pytest.raises(ConcurrentModificationError):
        await service.transition_status(event_id, DispatchStatus.DISPATCHED)

    event = await db_session.get(DispatchEvent, event_id)
    await db_session.refresh(event)
    assert event.status == DispatchStatus.ASSIGNED
    assert event.actual_departure_time is None


@pytest.mark.asyncio
async def test_racing_creators_produce_one_event(service, route_factory, db_session, mocker):
    """
    Both creators pass the existence pre-check; the unique constraint lets
    exactly one of them through.
    """
    route = await route_factory()
    route_id = route.id
    mocker.patch.object(service, "find_by_route_and_date", AsyncMock(return_value=None))

    outcomes = []
    for _ in range(2):
        try:
            event, _ = await service.create_dispatch_event(route_id, 1, EXECUTION_DATE)
            outcomes.append(event.id)
        except DuplicateDispatchError as exc:
            outcomes.append(exc.error_code)

    assert outcomes[1] == "DUPLICATE_DISPATCH"
    result = await db_session.execute(
        select(func.count()).select_from(DispatchEvent).where(DispatchEvent.route_id == route_id)
    )
    assert result.scalar_one() == 1
