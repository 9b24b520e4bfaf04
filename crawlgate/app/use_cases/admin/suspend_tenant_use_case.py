"""
Use Case: Suspend Tenant

Billing integration endpoint to suspend a tenant for non-payment. A
suspended tenant's new work is rejected; jobs already running may finish.
"""

from crawlgate.domain.entities import TenantStatus

from .change_tenant_status import ChangeTenantStatus


class SuspendTenantUseCase(ChangeTenantStatus):
    target = TenantStatus.suspended
    allowed_from = (TenantStatus.active,)
    action = "tenant_suspended"
