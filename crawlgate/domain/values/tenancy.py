"""
Tenant value objects

Typed views over the JSON documents stored on the tenants table, plus the
snapshot the tenant registry caches and the uniform quota decision shape.
"""

from datetime import datetime
from typing import List, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from crawlgate.domain.entities.enums import PlanTier, TenantStatus, UsageKey
from crawlgate.domain.errors import ConfigurationError

UNLIMITED = -1


class PlanLimits(BaseModel):
    """Raw limits bundle attached to a subscription plan"""

    max_projects: int = 1
    max_pages_per_project: int = 100
    max_concurrent_crawls: int = 1
    max_workers: int = 1
    rate_limit_per_minute: int = 10
    storage_gb: float = 1
    monthly_crawl_limit: int = 10


class TenantLimits(PlanLimits):
    """Effective limits for a tenant. -1 means unlimited."""

    max_queue_size: int = 10


class TenantUsage(BaseModel):
    current_projects: int = Field(default=0, ge=0)
    current_pages: int = Field(default=0, ge=0)
    current_crawls: int = Field(default=0, ge=0)
    current_workers: int = Field(default=0, ge=0)
    current_storage_gb: float = Field(default=0, ge=0)
    monthly_crawls: int = Field(default=0, ge=0)
    last_reset_date: Optional[datetime] = None

    def get(self, key: UsageKey) -> float:
        return getattr(self, UsageKey(key).value)

    def adjusted(self, key: UsageKey, delta: float) -> "TenantUsage":
        """Return a copy with one counter moved by delta, clamped at zero"""
        field = UsageKey(key).value
        value = max(0, getattr(self, field) + delta)
        return self.model_copy(update={field: value})


class NotificationSettings(BaseModel):
    email: bool = True
    webhook: bool = False
    webhook_url: Optional[str] = None


class CrawlingSettings(BaseModel):
    default_max_pages: int = 100
    default_max_depth: int = 3
    respect_robots_txt: bool = True
    user_agent: str = "CrawlgateBot/1.0"


class AnalysisSettings(BaseModel):
    enabled_types: List[str] = Field(default_factory=lambda: ["seo", "performance"])
    auto_analyze: bool = False


class TenantSettings(BaseModel):
    timezone: str = "UTC"
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    crawling: CrawlingSettings = Field(default_factory=CrawlingSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)


# Usage counter -> the limit field that caps it
USAGE_LIMIT_FIELDS = {
    UsageKey.current_projects: "max_projects",
    UsageKey.current_pages: "max_pages_per_project",
    UsageKey.current_crawls: "max_concurrent_crawls",
    UsageKey.current_workers: "max_workers",
    UsageKey.current_storage_gb: "storage_gb",
    UsageKey.monthly_crawls: "monthly_crawl_limit",
}


def check_usage_limit_fields(table: Mapping[UsageKey, str] = USAGE_LIMIT_FIELDS) -> None:
    missing = set(UsageKey) - set(table)
    unknown = set(table.values()) - set(TenantLimits.model_fields)
    if missing or unknown:
        raise ConfigurationError(
            [f"No limit field for usage key {key.value}" for key in sorted(missing)]
            + [f"Unknown limit field {name}" for name in sorted(unknown)]
        )


check_usage_limit_fields()


class PlanSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    tier: PlanTier
    limits: PlanLimits
    features: List[str] = Field(default_factory=list)


class TenantSnapshot(BaseModel):
    """Immutable view of a tenant as held in the registry cache"""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    slug: str
    status: TenantStatus
    plan: PlanSnapshot
    settings: TenantSettings
    limits: TenantLimits
    usage: TenantUsage
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.active

    @property
    def tier(self) -> PlanTier:
        return self.plan.tier


class LimitCheck(BaseModel):
    """Uniform admission decision for quota checks"""

    allowed: bool
    reason: Optional[str] = None
    current_usage: Union[int, float] = 0
    limit: Union[int, float] = 0


class NewTenant(BaseModel):
    name: str
    slug: str
    plan_id: UUID
    settings: Optional[dict] = None
    status: TenantStatus = TenantStatus.active


class LimitsUpdateReport(BaseModel):
    updated: int = 0
    errors: List[str] = Field(default_factory=list)


def merge_settings(current: dict, changes: dict) -> dict:
    """Deep-merge a partial settings document into the current one"""
    merged = dict(current)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = value
    return merged
