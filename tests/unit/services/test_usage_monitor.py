"""
Unit tests for the Usage Monitor
"""

import pytest
import pytest_asyncio

from crawlgate.adapter.services.asyncio_job_queue import AsyncioJobQueue
from crawlgate.adapter.services.datastore_observer import DatastoreObserver
from crawlgate.app.services.job_queue_engine import JobOptions
from crawlgate.app.services.queue_orchestrator import QueueOrchestrator
from crawlgate.app.services.usage_monitor import UsageMonitor, utilization_by_key
from crawlgate.domain.entities import MetricType, PlanTier, QueueKind, TenantStatus
from crawlgate.domain.values.tenancy import TenantLimits, TenantUsage

NOW = JobOptions(delay=0, attempts=1)


@pytest.fixture
def observer(uow_factory):
    return DatastoreObserver(uow_factory)


@pytest_asyncio.fixture
async def engine():
    engine = AsyncioJobQueue()
    yield engine
    await engine.close()


@pytest.fixture
def orchestrator(registry, engine, planner, observer):
    return QueueOrchestrator(engine, registry, planner, observer)


@pytest.fixture
def monitor(uow_factory, registry, orchestrator, engine, observer):
    return UsageMonitor(uow_factory, registry, orchestrator, engine, observer)


def test_utilization_skips_unlimited_and_zero_limits():
    usage = TenantUsage(current_crawls=1, monthly_crawls=40, current_projects=2)
    limits = TenantLimits(max_concurrent_crawls=4, monthly_crawl_limit=-1, max_projects=0)

    result = utilization_by_key(usage, limits)

    assert result["current_crawls"] == 25.0
    assert "monthly_crawls" not in result
    assert "current_projects" not in result


@pytest.mark.asyncio
async def test_system_metrics(monitor, orchestrator, registry, make_tenant):
    # Arrange
    acme = await make_tenant("acme")
    globex = await make_tenant("globex")
    await registry.update_status(globex.id, TenantStatus.suspended)
    await orchestrator.create_tenant_queue(acme.id, QueueKind.web_scraping)
    await orchestrator.add_tenant_job(acme.id, QueueKind.web_scraping, {}, NOW)

    # Act
    metrics = await monitor.get_system_metrics()

    # Assert
    assert metrics.total_tenants == 2
    assert metrics.active_tenants == 1
    assert metrics.active_crawls == 1
    assert metrics.queue_count == 1
    assert metrics.queued_jobs == 1
    assert metrics.running_jobs == 0
    assert metrics.allocation.total_workers == 50


@pytest.mark.asyncio
async def test_tenant_metrics(monitor, orchestrator, make_tenant):
    tenant = await make_tenant("acme")
    await orchestrator.create_tenant_queue(tenant.id, QueueKind.web_scraping)
    await orchestrator.add_tenant_job(tenant.id, QueueKind.web_scraping, {}, NOW)

    result = await monitor.get_tenant_metrics(tenant.id)

    assert result.is_ok()
    metrics = result.value
    assert metrics.slug == "acme"
    assert metrics.utilization["current_crawls"] == 100.0
    assert metrics.utilization["monthly_crawls"] == 10.0
    assert len(metrics.queues) == 1
    assert [e.action for e in metrics.recent_events] == ["queue_created"]


@pytest.mark.asyncio
async def test_tenant_metrics_for_unknown_tenant(monitor, plans):
    result = await monitor.get_tenant_metrics("not-a-uuid")

    assert result.is_err()
    assert result.error.code == "TENANT_NOT_FOUND"


@pytest.mark.asyncio
async def test_resource_utilization_excludes_unlimited(monitor, registry, make_tenant):
    # Arrange
    acme = await make_tenant("acme", PlanTier.free)
    bigco = await make_tenant("bigco", PlanTier.enterprise)
    await registry.update_usage(acme.id, {"monthly_crawls": 5})
    await registry.update_usage(bigco.id, {"monthly_crawls": 500})

    # Act
    report = await monitor.get_resource_utilization()

    # Assert
    monthly = report.resources["monthly_crawls"]
    assert monthly.used == 5
    assert monthly.limit == 10
    assert monthly.utilization_percent == 50.0
    assert monthly.unlimited_tenants == 1
    assert report.top_tenants[0].tenant_id == acme.id


@pytest.mark.asyncio
async def test_health_check(monitor, orchestrator, engine, make_tenant):
    # No queues and no tenants yet
    report = await monitor.health_check()
    assert report.healthy is False
    assert report.checks["datastore"].healthy is True
    assert report.checks["queues"].healthy is False

    await make_tenant("acme")
    await orchestrator.create_global_queue(QueueKind.web_scraping)
    report = await monitor.health_check()
    assert report.healthy is True

    await engine.close()
    report = await monitor.health_check()
    assert report.checks["job_queue_engine"].healthy is False


@pytest.mark.asyncio
async def test_performance_analytics(monitor, orchestrator, plans):
    # Arrange
    await monitor.record_metric(MetricType.performance, "job_processing_time_ms", 100)
    await monitor.record_metric(MetricType.performance, "job_processing_time_ms", 300)
    await orchestrator.create_global_queue(QueueKind.web_scraping)
    assert await monitor.collect_queue_metrics() == 2

    # Act
    analytics = await monitor.get_performance_analytics("1h")

    # Assert
    assert len(analytics.metrics) == 2
    assert analytics.average_job_time_ms == 200.0
    assert {m.metric_name for m in analytics.queue_metrics} == {"queue_waiting", "queue_active"}


@pytest.mark.asyncio
async def test_performance_analytics_rejects_unknown_range(monitor):
    with pytest.raises(ValueError):
        await monitor.get_performance_analytics("90d")
