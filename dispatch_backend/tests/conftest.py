"""
Centralized Test Configuration.
"""

import json
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from dispatch_backend.app.main import app
from dispatch_backend.app.db.session import get_db, Base
from dispatch_backend.app.core.jwt import create_access_token
from dispatch_backend.app.core.redis_client import get_redis
from dispatch_backend.app.core.reliability import reset_breakers
from dispatch_backend.app.domain.dispatch.dispatch_service import DispatchEventService
from dispatch_backend.app.models.route import Route
from dispatch_backend.app.models.route_stop import RouteStop
from dispatch_backend.app.services.realtime import RealtimePublisher
import dispatch_backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Shared session for fixture data creation and service-level tests
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.published = []
        self.fail_publish = False
        self._closed = False

    async def ping(self):
        return not self._closed

    async def publish(self, channel, message):
        if self.fail_publish or self._closed:
            raise ConnectionError("redis unavailable")
        self.published.append((channel, json.loads(message)))
        return 1

    def events(self, channel=None):
        return [m["event"] for c, m in self.published if channel is None or c == channel]

    async def aclose(self):
        self._closed = True


@pytest.fixture
def redis_stub():
    return MockRedis()


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    reset_breakers()
    yield
    reset_breakers()


@pytest.fixture
def service(db_session, redis_stub):
    return DispatchEventService(db_session, publisher=RealtimePublisher(redis_stub))


@pytest.fixture
async def client(session_factory, redis_stub, monkeypatch):
    """Async client for testing."""
    # Patch the global redis client used by the health check
    monkeypatch.setattr(redis_client_module, "redis_client", redis_stub)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return redis_stub

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}


@pytest.fixture
def route_factory(db_session):
    """
    Create a committed route with stop templates.

    stops is a list of (eta, etd) pairs; sequences are 0, 1, 2...
    """
    async def make_route(
        trkid="R100",
        terminal_id=1,
        stops=(("09:00", "09:30"), ("10:30", "11:00")),
        default_driver_id=None,
        truck_number=None,
        sub_unit_number=None,
        departure_time="08:00",
        **days,
    ):
        route = Route(
            trkid=trkid,
            terminal_id=terminal_id,
            default_driver_id=default_driver_id,
            truck_number=truck_number,
            sub_unit_number=sub_unit_number,
            departure_time=departure_time,
            **days,
        )
        db_session.add(route)
        await db_session.flush()
        db_session.add_all([
            RouteStop(route_id=route.id, sequence=i, cust_name=f"Customer {i}", eta=eta, etd=etd)
            for i, (eta, etd) in enumerate(stops)
        ])
        await db_session.commit()
        return route

    return make_route


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user with the given roles and terminals."""
    def make_headers(roles=("dispatcher",), terminal_ids=(1,), user_id=7, username="dispatch_user"):
        token = create_access_token(data={
            "sub": username,
            "user_id": user_id,
            "roles": list(roles),
            "terminal_ids": list(terminal_ids),
        })
        return {"Authorization": f"Bearer {token}"}

    return make_headers
