"""
Use Case: Cancel Tenant

Ends a subscription. Terminal: the tenant is never admitted again.
"""

from crawlgate.domain.entities import TenantStatus

from .change_tenant_status import ChangeTenantStatus


class CancelTenantUseCase(ChangeTenantStatus):
    target = TenantStatus.cancelled
    allowed_from = (TenantStatus.active, TenantStatus.suspended)
    action = "tenant_cancelled"
