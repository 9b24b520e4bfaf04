"""
Tenant Management Use Cases

Provisioning and tenant-owned settings.
"""

from .create_tenant_use_case import CreateTenantUseCase
from .dtos import CreateTenantCommand, TenantResponse, UpdateTenantSettingsResponse
from .update_tenant_settings_use_case import UpdateTenantSettingsUseCase

__all__ = [
    "CreateTenantUseCase",
    "UpdateTenantSettingsUseCase",
    "CreateTenantCommand",
    "TenantResponse",
    "UpdateTenantSettingsResponse",
]
