"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models carry no
PostgreSQL-only column types, so the real metadata is created directly.
A ``StaticPool`` keeps every session on the same in-memory database.

The engine runs in autocommit mode: each statement commits on its own, so
requests issued together with ``asyncio.gather`` see one another's writes
the way READ COMMITTED transactions do, and one request's rollback never
undoes another's work on the shared connection.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ridehail.api.middleware import limiter
from ridehail.api.security import decode_access_token
from ridehail.infrastructure.database import Base
from ridehail.realtime.rooms import rooms
from tests.helpers import NEAR, trip_body

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables on a fresh in-memory DB, yield a session factory."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        isolation_level="AUTOCOMMIT",
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _reset_globals():
    limiter.reset()
    rooms.clear()
    yield
    rooms.clear()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient backed by SQLite; Redis and the dispatch loop are mocked."""
    with (
        patch(
            "ridehail.workers.dispatcher.start_dispatch_loop",
            new_callable=AsyncMock,
        ),
        patch(
            "ridehail.workers.dispatcher.stop_dispatch_loop",
            new_callable=AsyncMock,
        ),
        patch(
            "ridehail.infrastructure.redis_client.ping",
            new=AsyncMock(return_value=True),
        ),
    ):
        async def _test_db():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        from ridehail.api.app import create_app
        from ridehail.api.dependencies import get_db

        app = create_app()
        app.dependency_overrides[get_db] = _test_db

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture
def register(client: AsyncClient):
    """Factory: register an account and return ``(user_id, auth headers)``."""
    counter = {"n": 0}

    async def _register(role: str = "user", name: str | None = None) -> tuple[int, dict]:
        counter["n"] += 1
        n = counter["n"]
        body = {
            "name": name or f"{role}-{n}",
            "email": f"{role}{n}@example.com",
            "password": "secret123",
            "role": role,
        }
        if role == "driver":
            body["car"] = {"model": "Nissan Versa", "color": "White", "plate": f"ABC-{n:03d}"}
        resp = await client.post("/api/auth/register", json=body)
        assert resp.status_code == 201, resp.text
        token = resp.json()["token"]
        user_id, _ = decode_access_token(token)
        return user_id, {"Authorization": f"Bearer {token}"}

    return _register


@pytest.fixture
def online_driver(client: AsyncClient, register):
    """Factory: a registered driver, positioned and available."""

    async def _online(position: tuple[float, float] = NEAR) -> tuple[int, dict]:
        user_id, headers = await register("driver")
        resp = await client.patch(
            "/api/drivers/location",
            json={"lat": position[0], "lng": position[1]},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        resp = await client.patch(
            "/api/drivers/availability", json={"isAvailable": True}, headers=headers
        )
        assert resp.status_code == 200, resp.text
        return user_id, headers

    return _online


@pytest.fixture
def request_trip(client: AsyncClient):
    async def _request(headers: dict, **kwargs) -> dict:
        resp = await client.post("/api/trips/request", json=trip_body(**kwargs), headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _request
