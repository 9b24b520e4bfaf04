"""
Queue Orchestrator

One isolated queue and worker pool per (tenant, queue kind) plus shared
global queues for system work. Jobs are admitted only after the tenant
registry confirms quota; usage counters are settled on lifecycle events.

Counter pairing:
- current_crawls and monthly_crawls go up when a job is admitted, before it
  reaches the engine; current_crawls comes back down exactly once when the
  job completes, fails for good or is cancelled
- current_workers goes up when a worker starts the job and down in the
  handler's finally block
"""

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel

from crawlgate.app.services.capacity_planner import CapacityPlanner
from crawlgate.app.services.governance_observer import IGovernanceObserver
from crawlgate.app.services.job_queue_engine import (
    IJobQueueEngine,
    Job,
    JobOptions,
    WorkerLimiter,
)
from crawlgate.app.services.keyed_lock import KeyedLock
from crawlgate.app.services.tenant_registry import TenantRef, TenantRegistry, as_tenant_id
from crawlgate.domain.entities.enums import JobState, MetricType, QueueKind, UsageKey
from crawlgate.domain.errors import (
    QueueFullError,
    QueueNotFoundError,
    TenantLimitExceededError,
    UnrecoverableJobError,
)
from crawlgate.domain.values.capacity import QueueConfiguration
from crawlgate.domain.values.tenancy import LimitCheck
from crawlgate.libs.result import Error, Result, Return

logger = logging.getLogger(__name__)

WorkItem = Callable[[Job], Awaitable[Any]]

LIMITER_WINDOW_SECONDS = 60.0


@dataclass
class QueueHandle:
    name: str
    kind: QueueKind
    config: QueueConfiguration
    tenant_id: Optional[UUID] = None
    has_worker: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class QueueStats(BaseModel):
    name: str
    kind: QueueKind
    tenant_id: Optional[UUID] = None
    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int
    paused: bool
    config: QueueConfiguration


class QueueReconfigurationReport(BaseModel):
    checked: int = 0
    stale: List[str] = []


def tenant_queue_name(tenant_id: UUID, kind: QueueKind) -> str:
    return f"tenant:{tenant_id}:{QueueKind(kind).value}"


def global_queue_name(kind: QueueKind) -> str:
    return f"global:{QueueKind(kind).value}"


def _job_defaults(config: QueueConfiguration) -> JobOptions:
    return JobOptions(
        priority=1,
        attempts=config.retry_attempts,
        backoff_delay=config.retry_delay_ms / 1000,
        delay=config.delay_between_jobs_ms / 1000,
    )


class QueueOrchestrator:
    def __init__(
        self,
        engine: IJobQueueEngine,
        registry: TenantRegistry,
        planner: CapacityPlanner,
        observer: Optional[IGovernanceObserver] = None,
        work_items: Optional[Mapping[QueueKind, WorkItem]] = None,
    ):
        self.engine = engine
        self.registry = registry
        self.planner = planner
        self.observer = observer
        self.work_items: Dict[QueueKind, WorkItem] = dict(work_items or {})
        self._tenant_queues: Dict[str, QueueHandle] = {}
        self._global_queues: Dict[QueueKind, QueueHandle] = {}
        self._locks = KeyedLock()
        # job id -> tenant whose current_crawls still carries the job
        self._counted_jobs: Dict[str, UUID] = {}

    def use_planner(self, planner: CapacityPlanner) -> None:
        """New queues are sized by this planner; existing ones keep their config"""
        self.planner = planner

    # Queue creation

    async def create_tenant_queue(
        self, tenant_id: TenantRef, kind: QueueKind, processor: Optional[WorkItem] = None
    ) -> QueueHandle:
        tid = as_tenant_id(tenant_id)
        if tid is None:
            raise TenantLimitExceededError(
                tenant_id, LimitCheck(allowed=False, reason="Tenant not found")
            )
        kind = QueueKind(kind)
        name = tenant_queue_name(tid, kind)

        async with self._locks.hold(tid):
            existing = self._tenant_queues.get(name)
            if existing is not None:
                return existing

            check = await self.registry.check_limit(tid, UsageKey.current_workers, 1)
            if not check.allowed:
                logger.warning(f"Queue {name} not created: {check.reason}")
                raise TenantLimitExceededError(tid, check)

            tenant = await self.registry.get(tid)
            if tenant is None:
                raise TenantLimitExceededError(
                    tid, LimitCheck(allowed=False, reason="Tenant not found")
                )
            config = self.planner.tenant_queue_config(kind, tenant.tier)

            self.engine.create_queue(name, _job_defaults(config), max_size=config.max_queue_size)
            processor = processor or self.work_items.get(kind)
            if processor is not None:
                self.engine.create_worker(
                    name,
                    self._tenant_handler(tid, processor),
                    concurrency=config.concurrency,
                    limiter=WorkerLimiter(config.max_workers, LIMITER_WINDOW_SECONDS),
                )
            self._listen(name)

            handle = QueueHandle(
                name=name,
                kind=kind,
                config=config,
                tenant_id=tid,
                has_worker=processor is not None,
            )
            self._tenant_queues[name] = handle

        logger.info(f"Created queue {name} with config {config.model_dump()}")
        await self._audit(
            "queue_created",
            "queue",
            tenant_id=tid,
            resource_id=name,
            metadata={"queue_kind": kind.value, "config": config.model_dump()},
        )
        return handle

    async def create_global_queue(
        self, kind: QueueKind, processor: Optional[WorkItem] = None
    ) -> QueueHandle:
        kind = QueueKind(kind)
        existing = self._global_queues.get(kind)
        if existing is not None:
            return existing

        name = global_queue_name(kind)
        config = self.planner.global_queue_config()
        self.engine.create_queue(name, _job_defaults(config), max_size=config.max_queue_size)
        self._listen_global(name)
        processor = processor or self.work_items.get(kind)
        if processor is not None:
            self.engine.create_worker(
                name,
                self._timed_handler(name, processor),
                concurrency=config.concurrency,
                limiter=WorkerLimiter(config.max_workers, LIMITER_WINDOW_SECONDS),
            )
        handle = QueueHandle(name=name, kind=kind, config=config, has_worker=processor is not None)
        self._global_queues[kind] = handle
        logger.info(f"Created global queue {name} with config {config.model_dump()}")
        return handle

    def _listen(self, name: str) -> None:
        self.engine.on(name, "completed", self._on_job_settled)
        self.engine.on(name, "failed", self._on_job_settled)
        self.engine.on(name, "cancelled", self._on_job_settled)
        self.engine.on(name, "stalled", self._on_job_stalled)

    def _listen_global(self, name: str) -> None:
        self.engine.on(name, "failed", self._on_global_job_failed)
        self.engine.on(name, "stalled", self._on_job_stalled)

    # Job execution

    def _tenant_handler(self, tenant_id: UUID, processor: WorkItem) -> WorkItem:
        async def handle(job: Job) -> Any:
            tenant = await self.registry.get(tenant_id)
            if tenant is None or not tenant.is_active:
                raise UnrecoverableJobError(
                    f"Tenant {tenant_id} is not active", reason="tenant_inactive"
                )

            counted = await self.registry.increment_usage(tenant_id, UsageKey.current_workers)
            started = time.perf_counter()
            try:
                logger.info(f"Processing job {job.id} for tenant {tenant_id}")
                return await processor(job)
            except Exception as e:
                logger.error(f"Job {job.id} for tenant {tenant_id} failed: {e}")
                raise
            finally:
                if counted:
                    await self.registry.decrement_usage(tenant_id, UsageKey.current_workers)
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.info(f"Job {job.id} for tenant {tenant_id} finished in {elapsed_ms:.0f}ms")

        return handle

    def _timed_handler(self, name: str, processor: WorkItem) -> WorkItem:
        async def handle(job: Job) -> Any:
            started = time.perf_counter()
            try:
                return await processor(job)
            finally:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.info(f"Job {job.id} on {name} finished in {elapsed_ms:.0f}ms")

        return handle

    async def _on_job_settled(self, job: Job, error: Optional[BaseException]) -> None:
        tenant_id = self._counted_jobs.pop(job.id, None)
        if tenant_id is None:
            return

        if not await self.registry.decrement_usage(tenant_id, UsageKey.current_crawls):
            logger.error(f"Could not release crawl slot of job {job.id} for tenant {tenant_id}")

        if job.state == JobState.completed:
            logger.info(f"Job {job.id} completed for tenant {tenant_id}")
            if self.observer is not None and job.processed_ms is not None:
                await self.observer.metric(
                    MetricType.performance,
                    "job_processing_time_ms",
                    job.processed_ms,
                    tenant_id=tenant_id,
                    metadata={"queue": job.queue_name},
                )
        elif job.state == JobState.failed:
            logger.error(f"Job {job.id} failed for tenant {tenant_id}: {job.failed_reason}")
            await self._audit(
                "job_failed",
                "job",
                tenant_id=tenant_id,
                resource_id=job.id,
                metadata={"queue": job.queue_name, "reason": job.failed_reason},
            )

    async def _on_job_stalled(self, job: Job, error: Optional[BaseException]) -> None:
        logger.warning(f"Job {job.id} on {job.queue_name} stalled")

    async def _on_global_job_failed(self, job: Job, error: Optional[BaseException]) -> None:
        logger.error(f"Global job {job.id} on {job.queue_name} failed: {job.failed_reason}")
        await self._audit(
            "job_failed",
            "job",
            resource_id=job.id,
            metadata={"queue": job.queue_name, "reason": job.failed_reason},
        )

    # Job admission

    async def add_tenant_job(
        self,
        tenant_id: TenantRef,
        kind: QueueKind,
        payload: dict,
        options: Optional[JobOptions] = None,
    ) -> Result[Job]:
        tid = as_tenant_id(tenant_id)
        if tid is None:
            return Return.err(Error("TENANT_NOT_FOUND", "Tenant not found"))
        kind = QueueKind(kind)
        name = tenant_queue_name(tid, kind)
        if name not in self._tenant_queues:
            return Return.err(
                Error("QUEUE_NOT_FOUND", f"No {kind.value} queue for tenant {tid}")
            )

        async with self._locks.hold(tid):
            for key in (UsageKey.current_crawls, UsageKey.monthly_crawls):
                check = await self.registry.check_limit(tid, key, 1)
                if not check.allowed:
                    logger.warning(f"Job rejected for tenant {tid} on {kind.value}: {check.reason}")
                    return Return.err(self._limit_error(check))

            job_id = uuid4().hex
            data = {
                **payload,
                "tenant_id": str(tid),
                "timestamp": datetime.now(UTC).isoformat(),
            }

            counted = await self.registry.adjust_usage(
                tid, {UsageKey.current_crawls: 1, UsageKey.monthly_crawls: 1}
            )
            if not counted:
                return Return.err(Error("USAGE_UPDATE_FAILED", "Could not record tenant usage"))
            self._counted_jobs[job_id] = tid

            try:
                job = await self.engine.enqueue(name, data, replace(options or JobOptions(), job_id=job_id))
            except (QueueFullError, QueueNotFoundError) as e:
                self._counted_jobs.pop(job_id, None)
                await self.registry.adjust_usage(
                    tid, {UsageKey.current_crawls: -1, UsageKey.monthly_crawls: -1}
                )
                code = "QUEUE_FULL" if isinstance(e, QueueFullError) else "QUEUE_NOT_FOUND"
                logger.warning(f"Job rejected for tenant {tid} on {kind.value}: {e}")
                return Return.err(Error(code, str(e)))

        logger.info(f"Job {job.id} added to {name}")
        return Return.ok(job)

    async def add_global_job(
        self, kind: QueueKind, payload: dict, options: Optional[JobOptions] = None
    ) -> Result[Job]:
        kind = QueueKind(kind)
        if kind not in self._global_queues:
            return Return.err(Error("QUEUE_NOT_FOUND", f"No global {kind.value} queue"))

        data = {**payload, "timestamp": datetime.now(UTC).isoformat()}
        try:
            job = await self.engine.enqueue(global_queue_name(kind), data, options)
        except QueueFullError as e:
            return Return.err(Error("QUEUE_FULL", str(e)))
        except QueueNotFoundError as e:
            return Return.err(Error("QUEUE_NOT_FOUND", str(e)))
        return Return.ok(job)

    @staticmethod
    def _limit_error(check: LimitCheck) -> Error:
        return Error("TENANT_LIMIT_EXCEEDED", check.reason, details=check.model_dump())

    async def cancel_tenant_job(self, tenant_id: TenantRef, job_id: str) -> Result[bool]:
        tid = as_tenant_id(tenant_id)
        job = self.engine.get_job(job_id)
        if job is None or tid is None or job.data.get("tenant_id") != str(tid):
            return Return.err(Error("JOB_NOT_FOUND", "Job not found"))
        if job.state.is_terminal:
            return Return.err(Error("JOB_ALREADY_FINISHED", f"Job is already {job.state.value}"))

        if not await self.engine.cancel(job_id):
            return Return.err(
                Error("JOB_ACTIVE", "Job is already running and cannot be cancelled")
            )

        await self._audit("job_cancelled", "job", tenant_id=tid, resource_id=job_id)
        return Return.ok(True)

    # Lookups and stats

    def get_tenant_queue(self, tenant_id: TenantRef, kind: QueueKind) -> Optional[QueueHandle]:
        tid = as_tenant_id(tenant_id)
        if tid is None:
            return None
        return self._tenant_queues.get(tenant_queue_name(tid, kind))

    def get_global_queue(self, kind: QueueKind) -> Optional[QueueHandle]:
        return self._global_queues.get(QueueKind(kind))

    def _stats(self, handle: QueueHandle) -> QueueStats:
        counts = self.engine.get_counts(handle.name)
        return QueueStats(
            name=handle.name,
            kind=handle.kind,
            tenant_id=handle.tenant_id,
            waiting=counts.waiting,
            active=counts.active,
            completed=counts.completed,
            failed=counts.failed,
            delayed=counts.delayed,
            paused=counts.paused,
            config=handle.config,
        )

    def get_tenant_queue_stats(self, tenant_id: TenantRef) -> List[QueueStats]:
        tid = as_tenant_id(tenant_id)
        return [self._stats(h) for h in self._tenant_queues.values() if h.tenant_id == tid]

    def get_all_queue_stats(self) -> List[QueueStats]:
        handles = list(self._tenant_queues.values()) + list(self._global_queues.values())
        return [self._stats(h) for h in handles]

    # Operations

    async def update_queue_configurations(self) -> QueueReconfigurationReport:
        """List queues whose configuration no longer matches the current plan.

        A queue keeps the configuration it was created with; a stale queue
        picks up the new plan only when it is closed and created again.
        """
        report = QueueReconfigurationReport()
        for handle in list(self._tenant_queues.values()):
            report.checked += 1
            tenant = await self.registry.get(handle.tenant_id)
            if tenant is None:
                continue
            if self.planner.tenant_queue_config(handle.kind, tenant.tier) != handle.config:
                report.stale.append(handle.name)

        expected_global = self.planner.global_queue_config()
        for handle in self._global_queues.values():
            report.checked += 1
            if handle.config != expected_global:
                report.stale.append(handle.name)

        if report.stale:
            logger.info(
                f"{len(report.stale)} of {report.checked} queues need recreation "
                "to pick up the new scaling configuration"
            )
        return report

    def _handle_by_name(self, name: str) -> Optional[QueueHandle]:
        if name in self._tenant_queues:
            return self._tenant_queues[name]
        for handle in self._global_queues.values():
            if handle.name == name:
                return handle
        return None

    async def pause_queue(self, name: str) -> bool:
        handle = self._handle_by_name(name)
        if handle is None:
            return False
        self.engine.pause(name)
        await self._audit("queue_paused", "queue", tenant_id=handle.tenant_id, resource_id=name)
        return True

    async def resume_queue(self, name: str) -> bool:
        handle = self._handle_by_name(name)
        if handle is None:
            return False
        self.engine.resume(name)
        await self._audit("queue_resumed", "queue", tenant_id=handle.tenant_id, resource_id=name)
        return True

    async def close_tenant_queue(self, tenant_id: TenantRef, kind: QueueKind) -> bool:
        tid = as_tenant_id(tenant_id)
        name = tenant_queue_name(tid, kind)
        if self._tenant_queues.pop(name, None) is None:
            return False
        await self.engine.close_queue(name)
        return True

    async def close_all(self) -> None:
        for name in list(self._tenant_queues):
            await self.engine.close_queue(name)
        for handle in list(self._global_queues.values()):
            await self.engine.close_queue(handle.name)
        self._tenant_queues.clear()
        self._global_queues.clear()
        logger.info("All queues closed")

    async def _audit(self, action: str, resource: str, **kwargs) -> None:
        if self.observer is not None:
            await self.observer.audit(action=action, resource=resource, **kwargs)
