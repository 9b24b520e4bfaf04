"""
Unit tests for the Tenant Registry, against a temporary SQLite datastore.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.domain.entities import PlanTier, TenantStatus, UsageKey
from crawlgate.domain.errors import TenantStoreError
from crawlgate.domain.values.tenancy import NewTenant


@pytest.mark.asyncio
async def test_create_derives_limits_from_plan_and_tier(make_tenant):
    # Act
    tenant = await make_tenant("acme", PlanTier.free)

    # Assert: tier slice overrides the plan for the four scaled fields
    assert tenant.limits.max_concurrent_crawls == 1
    assert tenant.limits.max_workers == 1
    assert tenant.limits.max_queue_size == 10
    assert tenant.limits.rate_limit_per_minute == 10
    # Everything else comes from the plan
    assert tenant.limits.max_projects == 1
    assert tenant.limits.monthly_crawl_limit == 10
    assert tenant.usage.current_crawls == 0
    assert tenant.usage.last_reset_date is not None


@pytest.mark.asyncio
async def test_create_with_unknown_plan_returns_none(registry, plans):
    tenant = await registry.create(NewTenant(name="Ghost", slug="ghost", plan_id=uuid4()))
    assert tenant is None


@pytest.mark.asyncio
async def test_get_by_slug(registry, make_tenant):
    created = await make_tenant("acme")

    tenant = await registry.get_by_slug("acme")

    assert tenant.id == created.id
    assert await registry.get_by_slug("missing") is None


@pytest.mark.asyncio
async def test_check_limit_denies_when_request_exceeds_limit(registry, make_tenant):
    # Arrange
    tenant = await make_tenant("acme", PlanTier.free)
    assert (await registry.check_limit(tenant.id, UsageKey.current_crawls, 1)).allowed
    await registry.increment_usage(tenant.id, UsageKey.current_crawls)

    # Act
    check = await registry.check_limit(tenant.id, UsageKey.current_crawls, 1)

    # Assert
    assert check.allowed is False
    assert check.current_usage == 1
    assert check.limit == 1
    assert check.reason == "Exceeds current_crawls limit (2/1)"


@pytest.mark.asyncio
async def test_check_limit_for_unknown_tenant(registry, plans):
    check = await registry.check_limit(uuid4(), UsageKey.current_crawls)

    assert check.allowed is False
    assert check.reason == "Tenant not found"
    assert check.limit == 0


@pytest.mark.asyncio
async def test_check_limit_for_suspended_tenant(registry, make_tenant):
    tenant = await make_tenant("acme")
    await registry.update_status(tenant.id, TenantStatus.suspended)

    check = await registry.check_limit(tenant.id, UsageKey.current_crawls)

    assert check.allowed is False
    assert check.reason == "Tenant is not active"


@pytest.mark.asyncio
async def test_unlimited_limit_always_allows(registry, make_tenant):
    tenant = await make_tenant("bigco", PlanTier.enterprise)

    check = await registry.check_limit(tenant.id, UsageKey.monthly_crawls, 1_000_000)

    assert check.allowed is True
    assert check.limit == -1


@pytest.mark.asyncio
async def test_increment_then_decrement_restores_usage(registry, make_tenant):
    tenant = await make_tenant("acme")

    assert await registry.increment_usage(tenant.id, UsageKey.current_pages, 7)
    assert await registry.decrement_usage(tenant.id, UsageKey.current_pages, 7)

    tenant = await registry.get(tenant.id)
    assert tenant.usage.current_pages == 0


@pytest.mark.asyncio
async def test_decrement_clamps_at_zero(registry, make_tenant):
    tenant = await make_tenant("acme")

    assert await registry.decrement_usage(tenant.id, UsageKey.current_crawls, 3)

    tenant = await registry.get(tenant.id)
    assert tenant.usage.current_crawls == 0


@pytest.mark.asyncio
async def test_mutation_on_unknown_tenant_returns_false(registry, plans):
    assert await registry.increment_usage(uuid4(), UsageKey.current_crawls) is False
    assert await registry.increment_usage("not-a-uuid", UsageKey.current_crawls) is False


@pytest.mark.asyncio
async def test_writes_invalidate_the_cached_tenant(registry, make_tenant):
    tenant = await make_tenant("acme")
    assert (await registry.get(tenant.id)).usage.monthly_crawls == 0

    await registry.update_usage(tenant.id, {UsageKey.monthly_crawls: 4})

    assert (await registry.get(tenant.id)).usage.monthly_crawls == 4


@pytest.mark.asyncio
async def test_update_settings_deep_merges(registry, make_tenant):
    tenant = await make_tenant("acme")

    assert await registry.update_settings(tenant.id, {"crawling": {"default_max_pages": 500}})

    settings = (await registry.get(tenant.id)).settings
    assert settings.crawling.default_max_pages == 500
    assert settings.crawling.respect_robots_txt is True
    assert settings.timezone == "UTC"


@pytest.mark.asyncio
async def test_update_settings_rejects_invalid_documents(registry, make_tenant):
    tenant = await make_tenant("acme")

    ok = await registry.update_settings(tenant.id, {"crawling": {"default_max_pages": "lots"}})

    assert ok is False
    assert (await registry.get(tenant.id)).settings.crawling.default_max_pages == 100


@pytest.mark.asyncio
async def test_update_all_tenant_limits_applies_the_new_plan(registry, planner, make_tenant):
    # Arrange
    tenant = await make_tenant("bigco", PlanTier.enterprise)
    assert tenant.limits.max_concurrent_crawls == 5
    registry.use_planner(planner.with_config(max_users=800, memory_per_worker_mb=64))

    # Act
    report = await registry.update_all_tenant_limits()

    # Assert
    assert report.updated == 1
    assert report.errors == []
    tenant = await registry.get(tenant.id)
    assert tenant.limits.max_concurrent_crawls == 8
    assert tenant.limits.max_queue_size == 160
    assert tenant.limits.max_workers == 16
    # Plan fields outside the tier slice are kept
    assert tenant.limits.monthly_crawl_limit == -1


@pytest.mark.asyncio
async def test_reset_due_monthly_usage(registry, make_tenant):
    tenant = await make_tenant("acme")
    await registry.update_usage(
        tenant.id, {"monthly_crawls": 5, "last_reset_date": "2000-01-15T00:00:00"}
    )

    assert await registry.reset_due_monthly_usage() == 1
    assert await registry.reset_due_monthly_usage() == 0

    usage = (await registry.get(tenant.id)).usage
    assert usage.monthly_crawls == 0
    assert usage.last_reset_date.year > 2000


@pytest.mark.asyncio
async def test_store_failure_raises_on_load_and_returns_none_on_get(mock_uow, planner):
    # Arrange
    mock_uow.tenants.get_by_id = AsyncMock(side_effect=SQLAlchemyError("database is down"))
    registry = TenantRegistry(lambda: mock_uow, planner)
    tenant_id = uuid4()

    # Act / Assert
    with pytest.raises(TenantStoreError):
        await registry.load(tenant_id)
    assert await registry.get(tenant_id) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("lookup", ["get", "get_by_slug"])
async def test_read_overlapping_a_write_does_not_cache_the_old_row(
    registry, make_tenant, gated_read, lookup
):
    # Arrange: the lookup has read the row but not yet filled the cache
    tenant = await make_tenant("acme")
    registry.invalidate(tenant.id)
    if lookup == "get":
        read_done, release = gated_read("get_by_id")
        pending = asyncio.create_task(registry.get(tenant.id))
    else:
        read_done, release = gated_read("get_by_slug")
        pending = asyncio.create_task(registry.get_by_slug("acme"))
    await read_done.wait()

    # Act
    assert await registry.increment_usage(tenant.id, UsageKey.current_crawls)
    release.set()
    seen = await pending

    # Assert: the lookup returns what it read, but the cache keeps the write
    assert seen.usage.current_crawls == 0
    assert (await registry.get(tenant.id)).usage.current_crawls == 1


@pytest.mark.asyncio
async def test_check_limit_reads_usage_from_the_datastore(registry, uow_factory, planner, make_tenant):
    tenant = await make_tenant("acme", PlanTier.free)
    assert (await registry.get(tenant.id)).usage.current_crawls == 0

    # Another process takes the only crawl slot behind this registry's cache
    other = TenantRegistry(uow_factory, planner)
    assert await other.increment_usage(tenant.id, UsageKey.current_crawls)

    check = await registry.check_limit(tenant.id, UsageKey.current_crawls, 1)

    assert check.allowed is False
    assert check.current_usage == 1


@pytest.mark.asyncio
async def test_tenant_locks_are_released_after_writes(registry, make_tenant):
    tenant = await make_tenant("acme")

    await asyncio.gather(
        *(registry.increment_usage(tenant.id, UsageKey.current_pages) for _ in range(5))
    )

    assert (await registry.get(tenant.id)).usage.current_pages == 5
    assert len(registry._locks) == 0
