"""Pytest configuration and fixtures."""

import random
from datetime import datetime, timezone

import pytest

from consultai.core.clock import FrozenClock
from consultai.core.config import CoreConfig, TierLimits
from consultai.core.ledger import InMemoryAuditSink
from consultai.core.limiter import UsageLimiter
from consultai.core.tenants import InMemoryTenantStore
from consultai.db.session import reset_session_factory

START = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

TENANT_ID = "tenant-1"
USER_ID = "user-1"


@pytest.fixture(autouse=True)
def reset_db_state():
    """Reset database engine/session state before each test.

    This prevents event loop conflicts when running multiple async tests.
    """
    reset_session_factory()
    yield
    reset_session_factory()


@pytest.fixture(autouse=True)
def seed_random():
    """Seed random for deterministic tests."""
    random.seed(42)
    yield


@pytest.fixture
def clock():
    """Clock frozen mid-month, mid-day."""
    return FrozenClock(START)


@pytest.fixture
def config():
    """Default core configuration."""
    return CoreConfig()


@pytest.fixture
def limits():
    """$100 monthly, $10 daily."""
    return TierLimits(monthly_cents=10_000, daily_cents=1_000)


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def store(audit_sink, limits, clock):
    """In-memory tenant store with one tenant and one member user."""
    tenant_store = InMemoryTenantStore(audit_sink=audit_sink)
    tenant_store.add_tenant(TENANT_ID, limits, users=[USER_ID], now=clock.now())
    return tenant_store


@pytest.fixture
def limiter(store, config, clock):
    return UsageLimiter(store, config, clock=clock)


@pytest.fixture
async def sqlite_session_factory():
    """Session factory on a fresh in-memory SQLite database with the schema created."""
    from consultai.db.engine import create_engine_for_url
    from consultai.db.schema import metadata
    from consultai.db.session import make_session_factory

    engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def redis_client():
    """Create a Redis async client for testing; skip when Redis is unreachable."""
    import redis.asyncio as redis
    from redis.exceptions import RedisError

    from consultai.settings import get_settings

    settings = get_settings()
    client = redis.from_url(settings.redis_url)
    try:
        await client.ping()
    except (RedisError, OSError):
        await client.aclose()
        pytest.skip("Redis not reachable")
    yield client
    await client.aclose()


@pytest.fixture
async def clean_redis(redis_client):
    """Clean job queue keys before/after test."""
    from consultai.jobs.constants import KEY_PREFIX

    async def cleanup():
        keys = await redis_client.keys(f"{KEY_PREFIX}:*")
        if keys:
            await redis_client.delete(*keys)

    await cleanup()
    yield redis_client
    await cleanup()
