"""
Use Case: Create Tenant

Operator endpoint provisioning a tenant on one of the subscription tiers.
Limits are derived from the plan and the current capacity plan.
"""

import logging

from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.domain.entities import AuditLog
from crawlgate.domain.values.tenancy import NewTenant
from crawlgate.libs.result import Error, Result, Return

from .dtos import CreateTenantCommand, TenantResponse

logger = logging.getLogger(__name__)


class CreateTenantUseCase:
    """
    Provision a new tenant.

    Business Logic:
    1. Reject a slug that is already taken
    2. Resolve the plan for the requested tier
    3. Create the tenant through the registry (derives limits, caches it)
    4. Record a tenant_created audit event
    """

    def __init__(self, uow: UnitOfWork, registry: TenantRegistry):
        self.uow = uow
        self.registry = registry

    async def execute(self, command: CreateTenantCommand) -> Result[TenantResponse]:
        async with self.uow:
            # 1. Slug must be unique
            if await self.uow.tenants.get_by_slug(command.slug):
                return Return.err(
                    Error("SLUG_TAKEN", f"Tenant slug {command.slug} is already in use")
                )

            # 2. Plan for the tier
            plan = await self.uow.plans.get_by_tier(command.tier)
            if not plan:
                return Return.err(
                    Error("PLAN_NOT_FOUND", f"No {command.tier.value} plan is configured")
                )

        # 3. Registry owns the write so the new tenant lands in its cache
        tenant = await self.registry.create(
            NewTenant(
                name=command.name,
                slug=command.slug,
                plan_id=plan.id,
                settings=command.settings,
            )
        )
        if tenant is None:
            return Return.err(Error("TENANT_CREATE_FAILED", "Tenant could not be created"))

        # 4. Audit
        async with self.uow:
            await self.uow.audit_logs.create(
                AuditLog(
                    tenant_id=tenant.id,
                    action="tenant_created",
                    resource="tenant",
                    resource_id=str(tenant.id),
                    event_metadata={"tier": tenant.tier.value, "slug": tenant.slug},
                )
            )
            await self.uow.commit()

        logger.info(f"Tenant {tenant.slug} provisioned on {tenant.tier.value}")
        return Return.ok(TenantResponse.from_snapshot(tenant))
