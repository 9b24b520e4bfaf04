"""
Admission Limiter

Fixed-window request counter keyed by tenant, endpoint and optionally user.
It never rejects on its own: callers branch on `RateLimitInfo.blocked`.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from crawlgate.app.services.governance_observer import IGovernanceObserver
from crawlgate.app.services.tenant_registry import TenantRegistry, as_tenant_id
from crawlgate.domain.values.tenancy import UNLIMITED

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_LIMIT = 100
DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60

FAIL_OPEN_LIMIT = 1000
FAIL_OPEN_REMAINING = 999


@dataclass(frozen=True)
class RateLimitRule:
    pattern: str
    limit: int

    @property
    def segments(self) -> List[str]:
        return _segments(self.pattern)


DEFAULT_RULES = (
    RateLimitRule("/api/scrape/start", 10),
    RateLimitRule("/api/audit-projects", 100),
    RateLimitRule("/api/audit-projects/*/analyze", 50),
    RateLimitRule("/api/admin/*", 200),
)


class RateLimitInfo(BaseModel):
    tenant_id: str
    endpoint: str
    limit: int
    remaining: int
    reset_time: float  # epoch seconds
    blocked: bool = False

    def retry_after(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(1, math.ceil(self.reset_time - now))


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float
    blocked: bool = False


def _segments(path: str) -> List[str]:
    return [part for part in path.split("?", 1)[0].split("/") if part]


class AdmissionLimiter:
    def __init__(
        self,
        registry: TenantRegistry,
        observer: Optional[IGovernanceObserver] = None,
        rules: Sequence[RateLimitRule] = DEFAULT_RULES,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        default_limit: int = DEFAULT_LIMIT,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.observer = observer
        self.rules = list(rules)
        self.window_seconds = window_seconds
        self.default_limit = default_limit
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None

    @staticmethod
    def _key(tenant_id: str, endpoint: str, user_id: Optional[str] = None) -> str:
        key = f"{tenant_id}:{endpoint}"
        return f"{key}:{user_id}" if user_id else key

    def match_rule(self, endpoint: str) -> Optional[RateLimitRule]:
        """Longest rule whose segments prefix the endpoint; `*` spans one segment"""
        parts = _segments(endpoint)
        best = None
        best_rank = None
        for rule in self.rules:
            pattern = rule.segments
            if len(pattern) > len(parts):
                continue
            if not all(p == "*" or p == part for p, part in zip(pattern, parts)):
                continue
            rank = (len(pattern), sum(1 for p in pattern if p != "*"))
            if best_rank is None or rank > best_rank:
                best, best_rank = rule, rank
        return best

    def default_limit_for(self, endpoint: str) -> int:
        rule = self.match_rule(endpoint)
        return rule.limit if rule else self.default_limit

    async def resolve_limit(self, tenant_id: str, endpoint: str) -> int:
        """Tenant plan limit first, then the rule table. Raises on store failure."""
        tenant = await self.registry.load(tenant_id)
        if tenant is not None and tenant.limits.rate_limit_per_minute:
            return tenant.limits.rate_limit_per_minute
        return self.default_limit_for(endpoint)

    async def check_rate_limit(
        self,
        tenant_id: str,
        endpoint: str,
        user_id: Optional[str] = None,
        custom_limit: Optional[int] = None,
    ) -> RateLimitInfo:
        tenant_id = str(tenant_id)
        exceeded = None
        try:
            if custom_limit is not None:
                limit = custom_limit
            else:
                limit = await self.resolve_limit(tenant_id, endpoint)

            # No awaits from here on: the read-modify-write below is atomic
            now = self._clock()
            if limit == UNLIMITED:
                return RateLimitInfo(
                    tenant_id=tenant_id,
                    endpoint=endpoint,
                    limit=UNLIMITED,
                    remaining=UNLIMITED,
                    reset_time=now + self.window_seconds,
                )

            key = self._key(tenant_id, endpoint, user_id)
            entry = self._entries.get(key)
            if entry is None or now >= entry.reset_time:
                entry = RateLimitEntry(count=0, reset_time=now + self.window_seconds)
                self._entries[key] = entry

            if entry.blocked:
                info = RateLimitInfo(
                    tenant_id=tenant_id,
                    endpoint=endpoint,
                    limit=limit,
                    remaining=0,
                    reset_time=entry.reset_time,
                    blocked=True,
                )
            else:
                entry.count += 1
                if entry.count > limit:
                    entry.blocked = True
                    exceeded = entry.count
                info = RateLimitInfo(
                    tenant_id=tenant_id,
                    endpoint=endpoint,
                    limit=limit,
                    remaining=max(0, limit - entry.count),
                    reset_time=entry.reset_time,
                    blocked=entry.blocked,
                )
        except Exception as e:
            logger.error(f"Rate limit check error for tenant {tenant_id} on {endpoint}: {e}")
            return RateLimitInfo(
                tenant_id=tenant_id,
                endpoint=endpoint,
                limit=FAIL_OPEN_LIMIT,
                remaining=FAIL_OPEN_REMAINING,
                reset_time=self._clock() + self.window_seconds,
            )

        if exceeded is not None:
            logger.warning(
                f"Rate limit exceeded for tenant {tenant_id} on {endpoint}: {exceeded}/{info.limit}"
            )
            await self._record_violation(tenant_id, endpoint, user_id, exceeded, info.limit)
        return info

    async def _record_violation(
        self, tenant_id: str, endpoint: str, user_id: Optional[str], count: int, limit: int
    ) -> None:
        if self.observer is None:
            return
        # A failed audit write must not turn the rejection into an error
        try:
            await self.observer.audit(
                action="rate_limit_exceeded",
                resource="api",
                tenant_id=as_tenant_id(tenant_id),
                resource_id=endpoint,
                user_id=as_tenant_id(user_id) if user_id else None,
                metadata={"count": count, "limit": limit, "endpoint": endpoint},
            )
        except Exception as e:
            logger.error(f"Could not record rate limit violation for tenant {tenant_id}: {e}")

    async def get_rate_limit_status(
        self, tenant_id: str, endpoint: str, user_id: Optional[str] = None
    ) -> Optional[RateLimitInfo]:
        """Current window without counting a request; None if no live window"""
        tenant_id = str(tenant_id)
        entry = self._entries.get(self._key(tenant_id, endpoint, user_id))
        if entry is None or self._clock() >= entry.reset_time:
            return None

        try:
            limit = await self.resolve_limit(tenant_id, endpoint)
        except Exception as e:
            logger.error(f"Could not resolve rate limit for tenant {tenant_id}: {e}")
            limit = self.default_limit_for(endpoint)

        return RateLimitInfo(
            tenant_id=tenant_id,
            endpoint=endpoint,
            limit=limit,
            remaining=0 if entry.blocked else max(0, limit - entry.count),
            reset_time=entry.reset_time,
            blocked=entry.blocked,
        )

    def reset_rate_limit(self, tenant_id: str, endpoint: str, user_id: Optional[str] = None) -> bool:
        return self._entries.pop(self._key(str(tenant_id), endpoint, user_id), None) is not None

    def clear_all(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Drop entries whose window has expired"""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.reset_time]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit entries")
        return len(expired)

    def get_stats(self) -> Dict[str, int]:
        now = self._clock()
        active = [entry for entry in self._entries.values() if now < entry.reset_time]
        return {
            "total_entries": len(self._entries),
            "blocked_entries": sum(1 for entry in active if entry.blocked),
            "active_entries": len(active),
        }

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.sweep()

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
