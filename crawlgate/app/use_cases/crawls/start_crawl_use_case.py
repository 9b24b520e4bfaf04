"""
Use Case: Start Crawl

Admit one unit of crawl or analysis work for a tenant. The tenant's queue
for the kind is created on first use.
"""

from uuid import UUID

from crawlgate.app.services.job_queue_engine import JobOptions
from crawlgate.app.services.queue_orchestrator import QueueOrchestrator
from crawlgate.domain.errors import TenantLimitExceededError
from crawlgate.libs.result import Error, Result, Return

from .dtos import StartCrawlCommand, StartCrawlResponse


class StartCrawlUseCase:
    """
    Business Logic:
    1. Ensure the tenant has an isolated queue for the requested kind
    2. Admit the job (quota check, usage increment, enqueue)
    """

    def __init__(self, orchestrator: QueueOrchestrator):
        self.orchestrator = orchestrator

    async def execute(
        self, tenant_id: UUID, command: StartCrawlCommand
    ) -> Result[StartCrawlResponse]:
        # 1. Queue
        if self.orchestrator.get_tenant_queue(tenant_id, command.kind) is None:
            try:
                await self.orchestrator.create_tenant_queue(tenant_id, command.kind)
            except TenantLimitExceededError as e:
                return Return.err(
                    Error("TENANT_LIMIT_EXCEEDED", e.check.reason, details=e.check.model_dump())
                )

        # 2. Job
        options = JobOptions(priority=command.priority, delay=command.delay_seconds)
        result = await self.orchestrator.add_tenant_job(
            tenant_id, command.kind, command.payload, options
        )
        if result.is_err():
            return result

        job = result.value
        return Return.ok(StartCrawlResponse(job_id=job.id, queue=job.queue_name, state=job.state))
