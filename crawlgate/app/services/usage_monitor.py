"""
Usage Monitor

Read-only aggregation over the tenant registry and the queue orchestrator:
system counts, per-tenant usage against limits, utilization and health.
The only writes it performs are metric records through the observer.
"""

import asyncio
import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, Field

from crawlgate.app.services.governance_observer import IGovernanceObserver
from crawlgate.app.services.job_queue_engine import IJobQueueEngine
from crawlgate.app.services.queue_orchestrator import QueueOrchestrator, QueueStats
from crawlgate.app.services.tenant_registry import TenantRef, TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.domain.entities import MetricType, PlanTier, TenantStatus, UsageKey
from crawlgate.domain.values.capacity import SystemResourceAllocation
from crawlgate.domain.values.tenancy import (
    USAGE_LIMIT_FIELDS,
    TenantLimits,
    TenantUsage,
)
from crawlgate.libs.result import Error, Result, Return

logger = logging.getLogger(__name__)

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

RECENT_AUDIT_EVENTS = 10
TOP_TENANTS = 10


class SystemMetrics(BaseModel):
    total_tenants: int
    active_tenants: int
    total_projects: int
    active_crawls: int
    queue_count: int
    queued_jobs: int
    running_jobs: int
    allocation: SystemResourceAllocation
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AuditEntry(BaseModel):
    action: str
    resource: str
    resource_id: Optional[str] = None
    metadata: Optional[dict] = None
    timestamp: datetime


class TenantMetrics(BaseModel):
    tenant_id: UUID
    name: str
    slug: str
    status: TenantStatus
    tier: PlanTier
    usage: TenantUsage
    limits: TenantLimits
    utilization: Dict[str, float]
    queues: List[QueueStats]
    recent_events: List[AuditEntry]


class ResourceTotals(BaseModel):
    used: float = 0
    limit: float = 0
    utilization_percent: float = 0
    unlimited_tenants: int = 0


class TenantUtilization(BaseModel):
    tenant_id: UUID
    name: str
    tier: PlanTier
    utilization: Dict[str, float]
    average_percent: float


class ResourceUtilization(BaseModel):
    resources: Dict[str, ResourceTotals]
    top_tenants: List[TenantUtilization]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ProbeResult(BaseModel):
    healthy: bool
    message: str
    latency_ms: float


class HealthReport(BaseModel):
    healthy: bool
    checks: Dict[str, ProbeResult]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MetricPoint(BaseModel):
    metric_type: MetricType
    metric_name: str
    metric_value: float
    tenant_id: Optional[UUID] = None
    metadata: Optional[dict] = None
    timestamp: datetime


class PerformanceAnalytics(BaseModel):
    time_range: str
    since: datetime
    metrics: List[MetricPoint]
    queue_metrics: List[MetricPoint]
    new_tenants: int
    average_job_time_ms: Optional[float] = None


def utilization_by_key(usage: TenantUsage, limits: TenantLimits) -> Dict[str, float]:
    """Percent of each limit in use. Unlimited (-1) and zero limits are left out."""
    result = {}
    for key, field in USAGE_LIMIT_FIELDS.items():
        limit = getattr(limits, field)
        if limit <= 0:
            continue
        result[key.value] = round(usage.get(key) / limit * 100, 2)
    return result


class UsageMonitor:
    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        registry: TenantRegistry,
        orchestrator: QueueOrchestrator,
        engine: IJobQueueEngine,
        observer: Optional[IGovernanceObserver] = None,
        collect_interval_seconds: float = 60,
    ):
        self.uow_factory = uow_factory
        self.registry = registry
        self.orchestrator = orchestrator
        self.engine = engine
        self.observer = observer
        self.collect_interval_seconds = collect_interval_seconds
        self._collector: Optional[asyncio.Task] = None

    async def get_system_metrics(self) -> SystemMetrics:
        async with self.uow_factory() as uow:
            total_tenants = await uow.tenants.count()
            active_tenants = await uow.tenants.count(TenantStatus.active)

        tenants = await self.registry.list_active()
        queues = self.orchestrator.get_all_queue_stats()

        return SystemMetrics(
            total_tenants=total_tenants,
            active_tenants=active_tenants,
            total_projects=sum(t.usage.current_projects for t in tenants),
            active_crawls=sum(t.usage.current_crawls for t in tenants),
            queue_count=len(queues),
            queued_jobs=sum(q.waiting + q.delayed for q in queues),
            running_jobs=sum(q.active for q in queues),
            allocation=self.registry.planner.system_allocation(),
        )

    async def get_tenant_metrics(self, tenant_id: TenantRef) -> Result[TenantMetrics]:
        tenant = await self.registry.get(tenant_id)
        if tenant is None:
            return Return.err(Error("TENANT_NOT_FOUND", "Tenant not found"))

        async with self.uow_factory() as uow:
            events = await uow.audit_logs.list_recent_by_tenant(tenant.id, RECENT_AUDIT_EVENTS)

        return Return.ok(
            TenantMetrics(
                tenant_id=tenant.id,
                name=tenant.name,
                slug=tenant.slug,
                status=tenant.status,
                tier=tenant.tier,
                usage=tenant.usage,
                limits=tenant.limits,
                utilization=utilization_by_key(tenant.usage, tenant.limits),
                queues=self.orchestrator.get_tenant_queue_stats(tenant.id),
                recent_events=[
                    AuditEntry(
                        action=e.action,
                        resource=e.resource,
                        resource_id=e.resource_id,
                        metadata=e.event_metadata,
                        timestamp=e.timestamp,
                    )
                    for e in events
                ],
            )
        )

    async def get_resource_utilization(self) -> ResourceUtilization:
        tenants = await self.registry.list_active()

        resources: Dict[str, ResourceTotals] = {
            key.value: ResourceTotals()
            for key in (
                UsageKey.current_projects,
                UsageKey.current_crawls,
                UsageKey.current_workers,
                UsageKey.current_storage_gb,
                UsageKey.monthly_crawls,
            )
        }

        ranked: List[TenantUtilization] = []
        for tenant in tenants:
            for name, totals in resources.items():
                key = UsageKey(name)
                limit = getattr(tenant.limits, USAGE_LIMIT_FIELDS[key])
                if limit < 0:
                    totals.unlimited_tenants += 1
                    continue
                totals.used += tenant.usage.get(key)
                totals.limit += limit

            utilization = utilization_by_key(tenant.usage, tenant.limits)
            if utilization:
                average = round(sum(utilization.values()) / len(utilization), 2)
            else:
                average = 0.0
            ranked.append(
                TenantUtilization(
                    tenant_id=tenant.id,
                    name=tenant.name,
                    tier=tenant.tier,
                    utilization=utilization,
                    average_percent=average,
                )
            )

        for totals in resources.values():
            if totals.limit > 0:
                totals.utilization_percent = round(totals.used / totals.limit * 100, 2)

        ranked.sort(key=lambda t: t.average_percent, reverse=True)
        return ResourceUtilization(resources=resources, top_tenants=ranked[:TOP_TENANTS])

    async def record_metric(
        self,
        metric_type: MetricType,
        metric_name: str,
        metric_value: float,
        tenant_id: Optional[UUID] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        if self.observer is None:
            logger.debug(f"No observer configured; dropping metric {metric_name}")
            return
        await self.observer.metric(metric_type, metric_name, metric_value, tenant_id, metadata)

    async def collect_queue_metrics(self) -> int:
        """Snapshot every queue's depth into system_metrics"""
        recorded = 0
        for stats in self.orchestrator.get_all_queue_stats():
            metadata = {"queue": stats.name, "kind": stats.kind.value}
            await self.record_metric(
                MetricType.queue, "queue_waiting", stats.waiting + stats.delayed, stats.tenant_id, metadata
            )
            await self.record_metric(
                MetricType.queue, "queue_active", stats.active, stats.tenant_id, metadata
            )
            recorded += 2
        return recorded

    async def get_performance_analytics(self, time_range: str = "24h") -> PerformanceAnalytics:
        if time_range not in TIME_RANGES:
            raise ValueError(f"Unknown time range {time_range}; expected one of {list(TIME_RANGES)}")
        since = datetime.now(UTC) - TIME_RANGES[time_range]

        async with self.uow_factory() as uow:
            metrics = await uow.system_metrics.list_since(since, MetricType.performance)
            queue_metrics = await uow.system_metrics.list_since(since, MetricType.queue)
            new_tenants = await uow.tenants.count_created_since(since)

        def to_point(m) -> MetricPoint:
            return MetricPoint(
                metric_type=m.metric_type,
                metric_name=m.metric_name,
                metric_value=m.metric_value,
                tenant_id=m.tenant_id,
                metadata=m.event_metadata,
                timestamp=m.timestamp,
            )

        job_times = [m.metric_value for m in metrics if m.metric_name == "job_processing_time_ms"]
        return PerformanceAnalytics(
            time_range=time_range,
            since=since,
            metrics=[to_point(m) for m in metrics],
            queue_metrics=[to_point(m) for m in queue_metrics],
            new_tenants=new_tenants,
            average_job_time_ms=round(sum(job_times) / len(job_times), 2) if job_times else None,
        )

    # Health

    async def _probe_datastore(self) -> Tuple[bool, str]:
        async with self.uow_factory() as uow:
            count = await uow.tenants.count()
        return True, f"{count} tenants"

    async def _probe_engine(self) -> Tuple[bool, str]:
        if await self.engine.ping():
            return True, "Job queue engine responding"
        return False, "Job queue engine is closed"

    async def _probe_queues(self) -> Tuple[bool, str]:
        count = len(self.orchestrator.get_all_queue_stats())
        return count > 0, f"{count} queues"

    async def _probe_tenants(self) -> Tuple[bool, str]:
        count = len(await self.registry.list_active())
        return count > 0, f"{count} active tenants"

    async def health_check(self) -> HealthReport:
        probes: Dict[str, Callable[[], Awaitable[Tuple[bool, str]]]] = {
            "datastore": self._probe_datastore,
            "job_queue_engine": self._probe_engine,
            "queues": self._probe_queues,
            "tenant_registry": self._probe_tenants,
        }

        checks: Dict[str, ProbeResult] = {}
        for name, probe in probes.items():
            started = time.perf_counter()
            try:
                healthy, message = await probe()
            except Exception as e:
                logger.error(f"Health probe {name} failed: {e}")
                healthy, message = False, str(e)
            checks[name] = ProbeResult(
                healthy=healthy,
                message=message,
                latency_ms=round((time.perf_counter() - started) * 1000, 2),
            )

        return HealthReport(healthy=all(c.healthy for c in checks.values()), checks=checks)

    # Background collection

    async def _collect_loop(self) -> None:
        while True:
            await asyncio.sleep(self.collect_interval_seconds)
            try:
                await self.collect_queue_metrics()
            except Exception as e:
                logger.error(f"Queue metric collection failed: {e}")

    def start(self) -> None:
        if self._collector is None or self._collector.done():
            self._collector = asyncio.create_task(self._collect_loop())

    async def stop(self) -> None:
        if self._collector is None:
            return
        self._collector.cancel()
        try:
            await self._collector
        except asyncio.CancelledError:
            pass
        self._collector = None
