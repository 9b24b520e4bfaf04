"""
Crawlgate Domain Enums

All enumeration types used across domain entities and value objects.
"""

from enum import Enum


class PlanTier(str, Enum):
    """Subscription tier, ordered free < starter < professional < enterprise"""

    free = "free"
    starter = "starter"
    professional = "professional"
    enterprise = "enterprise"

    @property
    def rank(self) -> int:
        return list(PlanTier).index(self)

    def __lt__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, PlanTier):
            return NotImplemented
        return self.rank >= other.rank


class BillingCycle(str, Enum):
    """Plan billing cycle"""

    monthly = "monthly"
    yearly = "yearly"


class TenantStatus(str, Enum):
    """Tenant status"""

    active = "active"
    suspended = "suspended"
    cancelled = "cancelled"


class QueueKind(str, Enum):
    """Category of crawl/analysis work, each with its own sizing"""

    web_scraping = "web-scraping"
    image_extraction = "image-extraction"
    content_analysis = "content-analysis"
    seo_analysis = "seo-analysis"
    performance_analysis = "performance-analysis"


class UsageKey(str, Enum):
    """Countable tenant resources tracked in TenantUsage"""

    current_projects = "current_projects"
    current_pages = "current_pages"
    current_crawls = "current_crawls"
    current_workers = "current_workers"
    current_storage_gb = "current_storage_gb"
    monthly_crawls = "monthly_crawls"


class JobState(str, Enum):
    """Job lifecycle state"""

    waiting = "waiting"
    delayed = "delayed"
    active = "active"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.completed, JobState.failed, JobState.cancelled)


class MetricType(str, Enum):
    """Category of a recorded system metric"""

    performance = "performance"
    usage = "usage"
    error = "error"
    queue = "queue"
