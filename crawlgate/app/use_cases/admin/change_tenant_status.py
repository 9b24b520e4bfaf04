"""
Shared status transition for the billing-driven admin use cases.
"""

from datetime import UTC, datetime
from typing import Iterable
from uuid import UUID

from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.domain.entities import AuditLog, TenantStatus
from crawlgate.libs.result import Error, Result, Return

from .dtos import TenantStatusResponse


class ChangeTenantStatus:
    """
    Move a tenant to `target` status.

    Business Logic:
    1. Validate tenant exists
    2. Reject transitions from a status not in `allowed_from`
    3. Update the status and record the audit event in one transaction
    4. Drop the registry's cached copy so admission sees the new status

    Idempotent: a tenant already in `target` succeeds without a write.
    """

    target: TenantStatus
    allowed_from: Iterable[TenantStatus]
    action: str

    def __init__(self, uow: UnitOfWork, registry: TenantRegistry):
        self.uow = uow
        self.registry = registry

    async def execute(self, tenant_id: UUID) -> Result[TenantStatusResponse]:
        async with self.uow:
            # 1. Get tenant
            tenant = await self.uow.tenants.get_by_id(tenant_id)
            if not tenant:
                return Return.err(Error("TENANT_NOT_FOUND", "Tenant not found"))

            previous = TenantStatus(tenant.status)
            if previous == self.target:
                return Return.ok(
                    TenantStatusResponse(
                        tenant_id=str(tenant_id), status=previous, previous_status=previous
                    )
                )

            # 2. Transition check
            if previous not in self.allowed_from:
                return Return.err(
                    Error(
                        "INVALID_STATUS_TRANSITION",
                        f"Cannot move tenant from {previous.value} to {self.target.value}",
                    )
                )

            # 3. Update and audit
            tenant.status = self.target
            await self.uow.tenants.update(tenant)
            await self.uow.audit_logs.create(
                AuditLog(
                    tenant_id=tenant_id,
                    action=self.action,
                    resource="tenant",
                    resource_id=str(tenant_id),
                    event_metadata={
                        "previous_status": previous.value,
                        "changed_at": datetime.now(UTC).isoformat(),
                    },
                )
            )
            await self.uow.commit()

        # 4. Cache
        self.registry.invalidate(tenant_id)

        return Return.ok(
            TenantStatusResponse(
                tenant_id=str(tenant_id), status=self.target, previous_status=previous
            )
        )
