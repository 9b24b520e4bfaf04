"""
Use Case: Update Tenant Settings

Tenant owner changes timezone, notification, crawl or analysis defaults.
The change is a partial document deep-merged into the current settings.
"""

from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from crawlgate.app.services.tenant_registry import TenantRegistry
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.domain.entities import AuditLog
from crawlgate.domain.values.tenancy import TenantSettings, merge_settings
from crawlgate.libs.result import Error, Result, Return

from .dtos import UpdateTenantSettingsResponse


def _describe(err: dict) -> str:
    return ".".join(str(part) for part in err["loc"]) + f": {err['msg']}"


class UpdateTenantSettingsUseCase:
    """
    Business Logic:
    1. Load the tenant
    2. Validate the merged settings before writing anything
    3. Persist through the registry (invalidates the cached tenant)
    4. Record a settings_updated audit event
    """

    def __init__(self, uow: UnitOfWork, registry: TenantRegistry):
        self.uow = uow
        self.registry = registry

    async def execute(
        self, tenant_id: UUID, changes: dict, user_id: Optional[UUID] = None
    ) -> Result[UpdateTenantSettingsResponse]:
        tenant = await self.registry.get(tenant_id)
        if tenant is None:
            return Return.err(Error("TENANT_NOT_FOUND", "Tenant not found"))

        try:
            settings = TenantSettings.model_validate(
                merge_settings(tenant.settings.model_dump(), changes)
            )
        except ValidationError as e:
            errors = [_describe(err) for err in e.errors()]
            return Return.err(
                Error("INVALID_SETTINGS", "Settings are invalid", details={"errors": errors})
            )

        if not await self.registry.update_settings(tenant_id, changes):
            return Return.err(Error("SETTINGS_UPDATE_FAILED", "Settings could not be saved"))

        async with self.uow:
            await self.uow.audit_logs.create(
                AuditLog(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    action="settings_updated",
                    resource="tenant",
                    resource_id=str(tenant_id),
                    event_metadata={"changed": sorted(changes)},
                )
            )
            await self.uow.commit()

        return Return.ok(UpdateTenantSettingsResponse(settings=settings))
