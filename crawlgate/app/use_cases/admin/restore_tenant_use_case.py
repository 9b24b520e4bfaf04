"""
Use Case: Restore Tenant

Billing integration endpoint to restore a suspended tenant after payment.
Cancelled tenants cannot be restored.
"""

from crawlgate.domain.entities import TenantStatus

from .change_tenant_status import ChangeTenantStatus


class RestoreTenantUseCase(ChangeTenantStatus):
    target = TenantStatus.active
    allowed_from = (TenantStatus.suspended,)
    action = "tenant_restored"
