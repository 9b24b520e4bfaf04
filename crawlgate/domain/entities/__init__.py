"""
Crawlgate Domain Entities

All persisted entities, one per file.
"""

# Export all enums
from .enums import (
    PlanTier,
    BillingCycle,
    TenantStatus,
    QueueKind,
    UsageKey,
    JobState,
    MetricType,
)

# Export all entities
from .plan import SubscriptionPlan
from .tenant import Tenant
from .audit_log import AuditLog
from .system_metric import SystemMetric

__all__ = [
    # Enums
    "PlanTier",
    "BillingCycle",
    "TenantStatus",
    "QueueKind",
    "UsageKey",
    "JobState",
    "MetricType",
    # Entities
    "SubscriptionPlan",
    "Tenant",
    "AuditLog",
    "SystemMetric",
]
