"""
Use Case: Reset Tenant Usage

Support endpoint that zeroes a tenant's monthly crawl counter outside the
regular monthly reset.
"""

from uuid import UUID

from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.domain.entities import AuditLog
from crawlgate.libs.result import Error, Result, Return

from .dtos import ResetTenantUsageResponse


class ResetTenantUsageUseCase:
    def __init__(self, uow: UnitOfWork, registry: TenantRegistry):
        self.uow = uow
        self.registry = registry

    async def execute(self, tenant_id: UUID) -> Result[ResetTenantUsageResponse]:
        tenant = await self.registry.get(tenant_id)
        if tenant is None:
            return Return.err(Error("TENANT_NOT_FOUND", "Tenant not found"))

        previous = tenant.usage.monthly_crawls
        if not await self.registry.reset_monthly_usage(tenant_id):
            return Return.err(Error("USAGE_RESET_FAILED", "Monthly usage could not be reset"))

        async with self.uow:
            await self.uow.audit_logs.create(
                AuditLog(
                    tenant_id=tenant_id,
                    action="usage_reset",
                    resource="tenant",
                    resource_id=str(tenant_id),
                    event_metadata={"previous_monthly_crawls": previous},
                )
            )
            await self.uow.commit()

        tenant = await self.registry.get(tenant_id)
        return Return.ok(
            ResetTenantUsageResponse(
                tenant_id=str(tenant_id),
                monthly_crawls=tenant.usage.monthly_crawls if tenant else 0,
                last_reset_date=tenant.usage.last_reset_date if tenant else None,
            )
        )
