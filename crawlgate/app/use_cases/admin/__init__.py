"""Admin use cases for system administration operations."""

from .cancel_tenant_use_case import CancelTenantUseCase
from .dtos import ResetTenantUsageResponse, TenantStatusResponse
from .reset_tenant_usage_use_case import ResetTenantUsageUseCase
from .restore_tenant_use_case import RestoreTenantUseCase
from .suspend_tenant_use_case import SuspendTenantUseCase

__all__ = [
    "SuspendTenantUseCase",
    "RestoreTenantUseCase",
    "CancelTenantUseCase",
    "ResetTenantUsageUseCase",
    "TenantStatusResponse",
    "ResetTenantUsageResponse",
]
