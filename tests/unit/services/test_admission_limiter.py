"""
Unit tests for the Admission Limiter
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from crawlgate.app.services.admission_limiter import (
    FAIL_OPEN_LIMIT,
    FAIL_OPEN_REMAINING,
    AdmissionLimiter,
)
from crawlgate.domain.errors import TenantStoreError

TENANT_ID = "3f0c6a3e-2d0b-4a64-9c53-0b1f8e8f8c11"


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def tenant_with_rate(limit: int):
    return SimpleNamespace(limits=SimpleNamespace(rate_limit_per_minute=limit))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    registry = MagicMock()
    registry.load = AsyncMock(return_value=None)
    return registry


@pytest.fixture
def observer():
    observer = MagicMock()
    observer.audit = AsyncMock()
    return observer


@pytest.fixture
def limiter(registry, observer, clock):
    return AdmissionLimiter(registry, observer, clock=clock)


@pytest.mark.asyncio
async def test_counts_down_then_blocks(limiter, observer):
    # Arrange: no tenant plan, no matching rule, so the default of 100 applies
    for i in range(100):
        info = await limiter.check_rate_limit(TENANT_ID, "/api/projects")
        assert info.blocked is False
        assert info.remaining == 99 - i

    # Act
    info = await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    # Assert
    assert info.limit == 100
    assert info.remaining == 0
    assert info.blocked is True
    observer.audit.assert_awaited_once()
    assert observer.audit.call_args.kwargs["action"] == "rate_limit_exceeded"


@pytest.mark.asyncio
async def test_audit_failure_still_blocks(limiter, observer):
    observer.audit.side_effect = RuntimeError("audit store unavailable")
    for _ in range(10):
        await limiter.check_rate_limit(TENANT_ID, "/api/projects", custom_limit=10)

    info = await limiter.check_rate_limit(TENANT_ID, "/api/projects", custom_limit=10)

    assert info.blocked is True
    assert info.limit == 10
    assert info.remaining == 0
    observer.audit.assert_awaited_once()


@pytest.mark.asyncio
async def test_blocked_window_stops_counting(limiter, observer):
    for _ in range(101):
        await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    info = await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    assert info.blocked is True
    assert limiter._entries[f"{TENANT_ID}:/api/projects"].count == 101
    # Only the crossing request is audited
    observer.audit.assert_awaited_once()


@pytest.mark.asyncio
async def test_window_resets_after_expiry(limiter, clock):
    for _ in range(101):
        await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    clock.now += 60

    info = await limiter.check_rate_limit(TENANT_ID, "/api/projects")
    assert info.blocked is False
    assert info.remaining == 99
    assert info.reset_time == clock.now + 60


@pytest.mark.asyncio
async def test_retry_after_is_at_least_one_second(limiter, clock):
    info = await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    assert info.retry_after(clock.now) == 60
    assert info.retry_after(info.reset_time + 5) == 1


@pytest.mark.asyncio
async def test_tenant_plan_limit_takes_precedence(limiter, registry):
    registry.load.return_value = tenant_with_rate(10)

    for _ in range(10):
        assert not (await limiter.check_rate_limit(TENANT_ID, "/api/admin/users")).blocked
    info = await limiter.check_rate_limit(TENANT_ID, "/api/admin/users")

    assert info.limit == 10
    assert info.blocked is True


@pytest.mark.asyncio
async def test_unlimited_tenant_is_never_counted(limiter, registry):
    registry.load.return_value = tenant_with_rate(-1)

    for _ in range(500):
        info = await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    assert info.blocked is False
    assert info.limit == -1
    assert limiter.get_stats()["total_entries"] == 0


@pytest.mark.asyncio
async def test_custom_limit_skips_the_lookup(limiter, registry):
    info = await limiter.check_rate_limit(TENANT_ID, "/api/projects", custom_limit=3)

    assert info.limit == 3
    assert info.remaining == 2
    registry.load.assert_not_awaited()


@pytest.mark.asyncio
async def test_users_get_separate_windows(limiter):
    await limiter.check_rate_limit(TENANT_ID, "/api/projects", user_id="u1", custom_limit=1)
    blocked = await limiter.check_rate_limit(TENANT_ID, "/api/projects", user_id="u1", custom_limit=1)
    other = await limiter.check_rate_limit(TENANT_ID, "/api/projects", user_id="u2", custom_limit=1)

    assert blocked.blocked is True
    assert other.blocked is False


@pytest.mark.asyncio
async def test_store_failure_fails_open(limiter, registry):
    registry.load.side_effect = TenantStoreError("database is down")

    info = await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    assert info.blocked is False
    assert info.limit == FAIL_OPEN_LIMIT
    assert info.remaining == FAIL_OPEN_REMAINING


@pytest.mark.parametrize(
    "endpoint, expected",
    [
        ("/api/scrape/start", 10),
        ("/api/scrape/start?url=x", 10),
        ("/api/audit-projects", 100),
        ("/api/audit-projects/42/analyze", 50),
        ("/api/audit-projects/42", 100),
        ("/api/admin/tenants", 200),
        ("/api/adminx", 100),
        ("/health", 100),
    ],
)
def test_rule_matching_by_segment(limiter, endpoint, expected):
    assert limiter.default_limit_for(endpoint) == expected


@pytest.mark.asyncio
async def test_status_does_not_count(limiter):
    assert await limiter.get_rate_limit_status(TENANT_ID, "/api/projects") is None
    await limiter.check_rate_limit(TENANT_ID, "/api/projects")

    first = await limiter.get_rate_limit_status(TENANT_ID, "/api/projects")
    second = await limiter.get_rate_limit_status(TENANT_ID, "/api/projects")

    assert first.remaining == second.remaining == 99


@pytest.mark.asyncio
async def test_sweep_and_stats(limiter, clock):
    await limiter.check_rate_limit(TENANT_ID, "/api/projects")
    await limiter.check_rate_limit(TENANT_ID, "/api/other", custom_limit=1)
    await limiter.check_rate_limit(TENANT_ID, "/api/other", custom_limit=1)

    assert limiter.get_stats() == {"total_entries": 2, "blocked_entries": 1, "active_entries": 2}

    clock.now += 61
    assert limiter.get_stats()["active_entries"] == 0
    assert limiter.sweep() == 2
    assert limiter.get_stats()["total_entries"] == 0


@pytest.mark.asyncio
async def test_reset_and_clear(limiter):
    await limiter.check_rate_limit(TENANT_ID, "/api/projects")
    await limiter.check_rate_limit(TENANT_ID, "/api/other")

    assert limiter.reset_rate_limit(TENANT_ID, "/api/projects") is True
    assert limiter.reset_rate_limit(TENANT_ID, "/api/projects") is False

    limiter.clear_all()
    assert limiter.get_stats()["total_entries"] == 0
