"""
Composition root

Builds every governance component exactly once and wires the references
explicitly. The FastAPI lifespan and the rescale script are the only callers.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional

from crawlgate.adapter.services.asyncio_job_queue import AsyncioJobQueue
from crawlgate.adapter.services.datastore_observer import DatastoreObserver
from crawlgate.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from crawlgate.app.services.admission_limiter import AdmissionLimiter
from crawlgate.app.services.capacity_planner import CapacityPlanner
from crawlgate.app.services.governance_observer import IGovernanceObserver
from crawlgate.app.services.job_queue_engine import IJobQueueEngine
from crawlgate.app.services.queue_orchestrator import QueueOrchestrator, WorkItem
from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.app.services.usage_monitor import UsageMonitor
from crawlgate.domain.entities import BillingCycle, PlanTier, QueueKind, SubscriptionPlan
from crawlgate.domain.errors import ConfigurationError
from crawlgate.domain.values.capacity import ScalingConfig
from crawlgate.domain.values.tenancy import UNLIMITED, PlanLimits

logger = logging.getLogger(__name__)

MAINTENANCE_INTERVAL_SECONDS = 60 * 60

DEFAULT_PLANS = (
    {
        "name": "Free",
        "tier": PlanTier.free,
        "limits": PlanLimits(),
        "features": ["basic_crawling"],
        "price": 0.0,
    },
    {
        "name": "Starter",
        "tier": PlanTier.starter,
        "limits": PlanLimits(
            max_projects=5,
            max_pages_per_project=500,
            max_concurrent_crawls=2,
            max_workers=2,
            rate_limit_per_minute=50,
            storage_gb=10,
            monthly_crawl_limit=100,
        ),
        "features": ["basic_crawling", "image_extraction", "seo_analysis"],
        "price": 29.0,
    },
    {
        "name": "Professional",
        "tier": PlanTier.professional,
        "limits": PlanLimits(
            max_projects=25,
            max_pages_per_project=2000,
            max_concurrent_crawls=5,
            max_workers=5,
            rate_limit_per_minute=100,
            storage_gb=50,
            monthly_crawl_limit=1000,
        ),
        "features": [
            "basic_crawling",
            "image_extraction",
            "seo_analysis",
            "content_analysis",
            "performance_analysis",
        ],
        "price": 99.0,
    },
    {
        "name": "Enterprise",
        "tier": PlanTier.enterprise,
        "limits": PlanLimits(
            max_projects=UNLIMITED,
            max_pages_per_project=10000,
            max_concurrent_crawls=10,
            max_workers=10,
            rate_limit_per_minute=200,
            storage_gb=500,
            monthly_crawl_limit=UNLIMITED,
        ),
        "features": [
            "basic_crawling",
            "image_extraction",
            "seo_analysis",
            "content_analysis",
            "performance_analysis",
            "priority_support",
        ],
        "price": 499.0,
    },
)


def scaling_config_from(config) -> ScalingConfig:
    return ScalingConfig(
        max_users=config.MAX_USERS,
        queue_size_per_user=config.QUEUE_SIZE_PER_USER,
        workers_per_user=config.WORKERS_PER_USER,
        concurrency_per_worker=config.CONCURRENCY_PER_WORKER,
        memory_per_worker_mb=config.MEMORY_PER_WORKER,
        cpu_per_worker=config.CPU_PER_WORKER,
    )


def planner_from_config(config) -> CapacityPlanner:
    """Raises ConfigurationError when the scaling knobs do not validate"""
    return CapacityPlanner(scaling_config_from(config))


def validate_settings(config) -> None:
    """Check the non-scaling knobs; raises ConfigurationError listing every problem"""
    errors: List[str] = []
    if config.RATE_LIMIT_WINDOW_SECONDS <= 0:
        errors.append("RATE_LIMIT_WINDOW_SECONDS must be positive")
    if config.RATE_LIMIT_MAX_REQUESTS < 1:
        errors.append("RATE_LIMIT_MAX_REQUESTS must be at least 1")
    if config.RATE_LIMIT_CLEANUP_INTERVAL <= 0:
        errors.append("RATE_LIMIT_CLEANUP_INTERVAL must be positive")
    if config.TENANT_CACHE_TTL <= 0:
        errors.append("TENANT_CACHE_TTL must be positive")
    if not 1 <= config.USAGE_RESET_DAY <= 28:
        errors.append("USAGE_RESET_DAY must be between 1 and 28")
    if config.METRICS_INTERVAL <= 0:
        errors.append("METRICS_INTERVAL must be positive")
    if errors:
        raise ConfigurationError(errors)


async def seed_default_plans(uow_factory: Callable[[], UnitOfWork]) -> int:
    """Create the four tier plans when the plans table is empty"""
    async with uow_factory() as uow:
        if await uow.plans.list_all():
            return 0
        for plan in DEFAULT_PLANS:
            await uow.plans.create(
                SubscriptionPlan(
                    name=plan["name"],
                    tier=plan["tier"],
                    limits=plan["limits"].model_dump(),
                    features=list(plan["features"]),
                    price=plan["price"],
                    billing_cycle=BillingCycle.monthly,
                )
            )
        await uow.commit()
    logger.info(f"Seeded {len(DEFAULT_PLANS)} default subscription plans")
    return len(DEFAULT_PLANS)


@dataclass
class Governance:
    planner: CapacityPlanner
    registry: TenantRegistry
    limiter: AdmissionLimiter
    engine: IJobQueueEngine
    orchestrator: QueueOrchestrator
    monitor: UsageMonitor
    observer: IGovernanceObserver
    uow_factory: Callable[[], UnitOfWork]
    maintenance_interval_seconds: float = MAINTENANCE_INTERVAL_SECONDS
    _maintenance: Optional[asyncio.Task] = field(default=None, repr=False)

    def use_planner(self, planner: CapacityPlanner) -> None:
        self.planner = planner
        self.registry.use_planner(planner)
        self.orchestrator.use_planner(planner)

    async def run_maintenance(self) -> None:
        await self.registry.reset_due_monthly_usage()
        swept = self.registry.sweep_cache()
        if swept:
            logger.debug(f"Swept {swept} expired tenant cache entries")

    async def _maintenance_loop(self) -> None:
        while True:
            try:
                await self.run_maintenance()
            except Exception as e:
                logger.error(f"Maintenance run failed: {e}")
            await asyncio.sleep(self.maintenance_interval_seconds)

    async def start(self, global_kinds: Optional[List[QueueKind]] = None) -> None:
        kinds = list(QueueKind) if global_kinds is None else global_kinds
        for kind in kinds:
            await self.orchestrator.create_global_queue(kind)
        self.limiter.start()
        self.monitor.start()
        if self._maintenance is None or self._maintenance.done():
            self._maintenance = asyncio.create_task(self._maintenance_loop())
        logger.info("Governance layer started")

    async def stop(self) -> None:
        if self._maintenance is not None:
            self._maintenance.cancel()
            try:
                await self._maintenance
            except asyncio.CancelledError:
                pass
            self._maintenance = None
        await self.limiter.stop()
        await self.monitor.stop()
        await self.orchestrator.close_all()
        await self.engine.close()
        logger.info("Governance layer stopped")


def build_governance(
    config,
    session_factory,
    work_items: Optional[Mapping[QueueKind, WorkItem]] = None,
) -> Governance:
    """Construct the governance layer. Raises ConfigurationError on bad settings."""
    validate_settings(config)
    planner = planner_from_config(config)

    def uow_factory() -> UnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    observer = DatastoreObserver(uow_factory)
    registry = TenantRegistry(
        uow_factory,
        planner,
        cache_ttl_seconds=config.TENANT_CACHE_TTL,
        usage_reset_day=config.USAGE_RESET_DAY,
    )
    limiter = AdmissionLimiter(
        registry,
        observer,
        window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        default_limit=config.RATE_LIMIT_MAX_REQUESTS,
        cleanup_interval_seconds=config.RATE_LIMIT_CLEANUP_INTERVAL,
    )
    engine = AsyncioJobQueue()
    orchestrator = QueueOrchestrator(engine, registry, planner, observer, work_items)
    monitor = UsageMonitor(
        uow_factory,
        registry,
        orchestrator,
        engine,
        observer,
        collect_interval_seconds=config.METRICS_INTERVAL,
    )

    allocation = planner.system_allocation()
    logger.info(
        f"Governance configured for {config.MAX_USERS} users: "
        f"{allocation.total_workers} workers, queue size {allocation.total_queue_size}"
    )
    return Governance(
        planner=planner,
        registry=registry,
        limiter=limiter,
        engine=engine,
        orchestrator=orchestrator,
        monitor=monitor,
        observer=observer,
        uow_factory=uow_factory,
    )
