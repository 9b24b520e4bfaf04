"""
Tenant Use Case DTOs (Data Transfer Objects)

Command and Response classes for the tenant domain.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from crawlgate.domain.entities import PlanTier, TenantStatus
from crawlgate.domain.values.tenancy import (
    TenantLimits,
    TenantSettings,
    TenantSnapshot,
    TenantUsage,
)

SLUG_PATTERN = r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$"


# ============================================================================
# Command DTOs
# ============================================================================


class CreateTenantCommand(BaseModel):
    """Command for provisioning a tenant on a subscription tier"""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., pattern=SLUG_PATTERN)
    tier: PlanTier = PlanTier.free
    settings: Optional[dict] = None


# ============================================================================
# Response DTOs
# ============================================================================


class TenantResponse(BaseModel):
    """Tenant as seen by API clients"""

    id: str
    name: str
    slug: str
    status: TenantStatus
    tier: PlanTier
    plan_name: str
    features: List[str]
    settings: TenantSettings
    limits: TenantLimits
    usage: TenantUsage
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, tenant: TenantSnapshot) -> "TenantResponse":
        return cls(
            id=str(tenant.id),
            name=tenant.name,
            slug=tenant.slug,
            status=tenant.status,
            tier=tenant.tier,
            plan_name=tenant.plan.name,
            features=list(tenant.plan.features),
            settings=tenant.settings,
            limits=tenant.limits,
            usage=tenant.usage,
            created_at=tenant.created_at,
            updated_at=tenant.updated_at,
        )


class UpdateTenantSettingsResponse(BaseModel):
    """Response for update tenant settings use case"""

    settings: TenantSettings
