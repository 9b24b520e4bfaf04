"""
Use Case: Cancel Crawl

Remove a tenant's job that has not started yet. Its crawl slot is released
by the orchestrator when the engine reports the cancellation.
"""

from uuid import UUID

from crawlgate.app.services.queue_orchestrator import QueueOrchestrator
from crawlgate.libs.result import Result, Return

from .dtos import CancelCrawlResponse


class CancelCrawlUseCase:
    def __init__(self, orchestrator: QueueOrchestrator):
        self.orchestrator = orchestrator

    async def execute(self, tenant_id: UUID, job_id: str) -> Result[CancelCrawlResponse]:
        result = await self.orchestrator.cancel_tenant_job(tenant_id, job_id)
        if result.is_err():
            return result
        return Return.ok(CancelCrawlResponse(job_id=job_id, status="cancelled"))
