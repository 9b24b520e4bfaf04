"""
Use Case: Apply Scaling

Re-plan capacity for a new user budget (or other scaling knobs) and push the
result into tenant limits. Running queues keep their configuration; the
response lists the ones that drifted from the new plan.
"""

import logging
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from crawlgate.app.services.capacity_planner import CapacityPlanner
from crawlgate.app.services.queue_orchestrator import QueueOrchestrator
from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.domain.errors import ConfigurationError
from crawlgate.domain.values.capacity import ScalingConfig, SystemResourceAllocation
from crawlgate.libs.result import Error, Result, Return

logger = logging.getLogger(__name__)


class ScalingChanges(BaseModel):
    """Knobs to replace; unset fields keep their current value"""

    max_users: Optional[int] = None
    queue_size_per_user: Optional[int] = None
    workers_per_user: Optional[float] = None
    concurrency_per_worker: Optional[int] = None
    memory_per_worker_mb: Optional[int] = None
    cpu_per_worker: Optional[float] = None


class ApplyScalingResponse(BaseModel):
    config: ScalingConfig
    allocation: SystemResourceAllocation
    tenants_updated: int
    errors: List[str] = Field(default_factory=list)
    stale_queues: List[str] = Field(default_factory=list)
    environment: Dict[str, str]
    recommendations: List[str] = Field(default_factory=list)


class ApplyScalingUseCase:
    """
    Business Logic:
    1. Build and validate a planner with the requested changes
    2. Hand it to every component that sizes from the planner
    3. Re-derive the limits of every active tenant
    4. Report queues whose configuration no longer matches
    """

    def __init__(
        self,
        planner: CapacityPlanner,
        registry: TenantRegistry,
        orchestrator: QueueOrchestrator,
        use_planner: Callable[[CapacityPlanner], None],
    ):
        self.planner = planner
        self.registry = registry
        self.orchestrator = orchestrator
        self.use_planner = use_planner

    async def execute(self, changes: ScalingChanges) -> Result[ApplyScalingResponse]:
        # 1. New plan
        try:
            planner = self.planner.with_config(**changes.model_dump(exclude_none=True))
        except ConfigurationError as e:
            return Return.err(
                Error("INVALID_SCALING_CONFIG", str(e), details={"errors": e.errors})
            )

        # 2. Swap
        self.use_planner(planner)

        # 3. Tenant limits
        report = await self.registry.update_all_tenant_limits()

        # 4. Queue drift
        queues = await self.orchestrator.update_queue_configurations()

        logger.info(
            f"Scaling applied: {report.updated} tenants updated, "
            f"{len(queues.stale)} queues stale"
        )
        return Return.ok(
            ApplyScalingResponse(
                config=planner.config,
                allocation=planner.system_allocation(),
                tenants_updated=report.updated,
                errors=report.errors,
                stale_queues=queues.stale,
                environment=planner.environment_config(),
                recommendations=planner.recommendations(),
            )
        )
