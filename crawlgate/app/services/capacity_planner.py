"""
Capacity Planner

Derives worker, queue and rate sizing from the global scaling configuration.
Pure and immutable: re-planning means building a new planner with
`with_config()` and handing it to the components that need it.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List

from crawlgate.domain.entities.enums import PlanTier, QueueKind
from crawlgate.domain.errors import ConfigurationError
from crawlgate.domain.values.capacity import (
    QueueConfiguration,
    ScalingConfig,
    SystemResourceAllocation,
    TierResourceLimits,
)

logger = logging.getLogger(__name__)

MAX_MEMORY_MB = 8192
MAX_CPU_CORES = 16
MEMORY_PER_INSTANCE_MB = 2048
CPU_PER_INSTANCE = 2.0
RECOMMENDED_MAX_USERS = 10000
HIGH_MEMORY_MB = 4096
HIGH_CPU_CORES = 8

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 5000
GLOBAL_RETRY_DELAY_MS = 2000
RATE_LIMIT_BASE_PER_MINUTE = 1000


@dataclass(frozen=True)
class KindMultiplier:
    queue_size: float
    workers: float
    concurrency: float
    base_delay_ms: int


@dataclass(frozen=True)
class TierShare:
    workers: float
    queue_size: float
    crawls: float
    rate_limit: float


KIND_MULTIPLIERS: Dict[QueueKind, KindMultiplier] = {
    QueueKind.web_scraping: KindMultiplier(1.0, 1.0, 1.0, 1000),
    QueueKind.image_extraction: KindMultiplier(0.5, 0.8, 0.8, 2000),
    QueueKind.content_analysis: KindMultiplier(0.3, 0.6, 0.6, 3000),
    QueueKind.seo_analysis: KindMultiplier(0.2, 0.5, 0.5, 2000),
    QueueKind.performance_analysis: KindMultiplier(0.1, 0.3, 0.3, 5000),
}

TIER_SHARES: Dict[PlanTier, TierShare] = {
    PlanTier.free: TierShare(0.02, 0.01, 0.01, 0.01),
    PlanTier.starter: TierShare(0.05, 0.02, 0.02, 0.05),
    PlanTier.professional: TierShare(0.1, 0.05, 0.05, 0.1),
    PlanTier.enterprise: TierShare(0.2, 0.1, 0.1, 0.2),
}

# Step function of max_users standing in for a live load signal
LOAD_STEPS = ((100, 0.1), (300, 0.3), (500, 0.5))
LOAD_CEILING = 0.7


def _check_tables() -> None:
    missing_kinds = set(QueueKind) - set(KIND_MULTIPLIERS)
    missing_tiers = set(PlanTier) - set(TIER_SHARES)
    if missing_kinds or missing_tiers:
        raise ConfigurationError(
            [f"No multiplier for queue kind {k.value}" for k in missing_kinds]
            + [f"No resource share for plan tier {t.value}" for t in missing_tiers]
        )
    for field in ("workers", "queue_size", "crawls", "rate_limit"):
        total = sum(getattr(share, field) for share in TIER_SHARES.values())
        if total > 1:
            raise ConfigurationError([f"Tier shares for {field} exceed the system total"])


_check_tables()


def _ceil(value: float) -> int:
    # Absorb float noise so an exact product is not rounded up
    return math.ceil(round(value, 9))


class CapacityPlanner:
    def __init__(self, config: ScalingConfig, validate: bool = True):
        self.config = config
        if validate:
            errors = self.validate()
            if errors:
                raise ConfigurationError(errors)
        if config.max_users > RECOMMENDED_MAX_USERS:
            logger.warning(
                f"MAX_USERS={config.max_users} exceeds {RECOMMENDED_MAX_USERS}; "
                "queue sizing may degrade"
            )

    def with_config(self, **changes) -> "CapacityPlanner":
        """Build a new planner with some scaling knobs replaced"""
        planner = CapacityPlanner(self.config.model_copy(update=changes))
        allocation = planner.system_allocation()
        logger.info(
            f"Scaling configuration updated: max_users={planner.config.max_users} "
            f"total_workers={allocation.total_workers} "
            f"total_queue_size={allocation.total_queue_size}"
        )
        return planner

    def validate(self) -> List[str]:
        errors: List[str] = []
        c = self.config

        if c.max_users <= 0:
            errors.append("MAX_USERS must be at least 1")
        if c.queue_size_per_user < 1:
            errors.append("QUEUE_SIZE_PER_USER must be at least 1")
        if c.workers_per_user <= 0.01:
            errors.append("WORKERS_PER_USER must be greater than 0.01")
        if c.workers_per_user > 1:
            errors.append("WORKERS_PER_USER must not exceed 1")
        if c.concurrency_per_worker < 1:
            errors.append("CONCURRENCY_PER_WORKER must be at least 1")
        if c.concurrency_per_worker > 10:
            errors.append("CONCURRENCY_PER_WORKER must not exceed 10")

        if errors:
            return errors

        allocation = self.system_allocation()
        if allocation.memory_allocation_mb > MAX_MEMORY_MB:
            errors.append(
                f"Total memory allocation {allocation.memory_allocation_mb}MB "
                f"exceeds {MAX_MEMORY_MB}MB limit"
            )
        if allocation.cpu_allocation > MAX_CPU_CORES:
            errors.append(
                f"Total CPU allocation {allocation.cpu_allocation} "
                f"exceeds {MAX_CPU_CORES} cores limit"
            )
        return errors

    def system_allocation(self) -> SystemResourceAllocation:
        c = self.config
        total_workers = _ceil(c.max_users * c.workers_per_user)
        total_queue_size = c.max_users * c.queue_size_per_user
        memory = total_workers * c.memory_per_worker_mb
        cpu = round(total_workers * c.cpu_per_worker, 4)
        recommended = max(
            _ceil(memory / MEMORY_PER_INSTANCE_MB),
            _ceil(cpu / CPU_PER_INSTANCE),
            1,
        )
        return SystemResourceAllocation(
            total_workers=total_workers,
            total_queue_size=total_queue_size,
            memory_allocation_mb=memory,
            cpu_allocation=cpu,
            recommended_instances=recommended,
        )

    def system_load(self) -> float:
        for ceiling, load in LOAD_STEPS:
            if self.config.max_users <= ceiling:
                return load
        return LOAD_CEILING

    def queue_config(self, kind: QueueKind) -> QueueConfiguration:
        c = self.config
        multiplier = KIND_MULTIPLIERS[QueueKind(kind)]

        base_queue_size = max(100, c.max_users * c.queue_size_per_user)
        base_workers = max(2, _ceil(c.max_users * c.workers_per_user))
        base_concurrency = max(1, c.concurrency_per_worker)

        return QueueConfiguration(
            max_workers=_ceil(base_workers * multiplier.workers),
            max_queue_size=_ceil(base_queue_size * multiplier.queue_size),
            concurrency=max(1, _ceil(base_concurrency * multiplier.concurrency)),
            delay_between_jobs_ms=_ceil(multiplier.base_delay_ms * (1 + self.system_load())),
            retry_attempts=DEFAULT_RETRY_ATTEMPTS,
            retry_delay_ms=DEFAULT_RETRY_DELAY_MS,
        )

    def tenant_limits(self, tier: PlanTier) -> TierResourceLimits:
        share = TIER_SHARES[PlanTier(tier)]
        allocation = self.system_allocation()
        return TierResourceLimits(
            max_workers=max(1, _ceil(allocation.total_workers * share.workers)),
            max_queue_size=max(10, _ceil(allocation.total_queue_size * share.queue_size)),
            max_concurrent_crawls=max(1, _ceil(allocation.total_workers * share.crawls)),
            rate_limit_per_minute=max(10, _ceil(RATE_LIMIT_BASE_PER_MINUTE * share.rate_limit)),
        )

    def tenant_queue_config(self, kind: QueueKind, tier: PlanTier) -> QueueConfiguration:
        """Kind sizing clamped to the tier's slice of the system"""
        base = self.queue_config(kind)
        limits = self.tenant_limits(tier)
        return base.model_copy(
            update={
                "max_workers": max(1, min(base.max_workers, limits.max_workers)),
                "max_queue_size": max(1, min(base.max_queue_size, limits.max_queue_size)),
                "concurrency": max(1, min(base.concurrency, limits.max_concurrent_crawls)),
            }
        )

    def global_queue_config(self) -> QueueConfiguration:
        allocation = self.system_allocation()
        return QueueConfiguration(
            max_workers=allocation.total_workers,
            max_queue_size=allocation.total_queue_size,
            concurrency=max(1, min(allocation.total_workers // 10, 10)),
            delay_between_jobs_ms=0,
            retry_attempts=DEFAULT_RETRY_ATTEMPTS,
            retry_delay_ms=GLOBAL_RETRY_DELAY_MS,
        )

    def environment_config(self) -> Dict[str, str]:
        """Environment variables describing this plan, for deployment manifests"""
        c = self.config
        allocation = self.system_allocation()
        return {
            "MAX_USERS": str(c.max_users),
            "QUEUE_SIZE_PER_USER": str(c.queue_size_per_user),
            "WORKERS_PER_USER": str(c.workers_per_user),
            "CONCURRENCY_PER_WORKER": str(c.concurrency_per_worker),
            "MEMORY_PER_WORKER": str(c.memory_per_worker_mb),
            "CPU_PER_WORKER": str(c.cpu_per_worker),
            "TOTAL_WORKERS": str(allocation.total_workers),
            "TOTAL_QUEUE_SIZE": str(allocation.total_queue_size),
            "RECOMMENDED_INSTANCES": str(allocation.recommended_instances),
        }

    def recommendations(self) -> List[str]:
        allocation = self.system_allocation()
        notes = []
        if allocation.recommended_instances > 1:
            notes.append(
                f"Consider deploying {allocation.recommended_instances} instances for optimal performance"
            )
        if allocation.memory_allocation_mb > HIGH_MEMORY_MB:
            notes.append("High memory usage detected, consider optimizing worker memory allocation")
        if allocation.cpu_allocation > HIGH_CPU_CORES:
            notes.append("High CPU usage detected, consider optimizing worker concurrency")
        return notes
