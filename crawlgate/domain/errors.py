"""
Domain exceptions

Quota and rate-limit rejections are values (LimitCheck, RateLimitInfo), not
exceptions. These cover the remaining failure classes.
"""

from typing import List, Optional


class ConfigurationError(Exception):
    """Invalid scaling or application configuration. Fatal at startup."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class TenantLimitExceededError(Exception):
    """Raised only where a caller cannot branch on a LimitCheck (queue creation)"""

    def __init__(self, tenant_id, check):
        self.tenant_id = tenant_id
        self.check = check
        super().__init__(f"Tenant {tenant_id} limit exceeded: {check.reason}")


class TenantStoreError(Exception):
    """The tenant datastore could not be read"""


class QueueFullError(Exception):
    """The target queue is at capacity"""


class QueueNotFoundError(Exception):
    """No queue is registered under the given name"""


class UnrecoverableJobError(Exception):
    """A job failure that must not be retried"""

    def __init__(self, message: str, reason: Optional[str] = None):
        self.reason = reason
        super().__init__(message)
