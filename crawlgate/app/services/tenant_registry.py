"""
Tenant Registry

Authoritative access to tenant records with a short-lived read cache.

Every mutation reads the tenant fresh from the datastore, writes, commits and
only then invalidates that tenant's cache entry. Mutations of one tenant are
serialized by a per-tenant lock; different tenants never wait on each other.

A read that overlaps a mutation never caches what the mutation replaced, and
quota checks always read usage from the datastore.
"""

import logging
import time
from datetime import UTC, date, datetime
from typing import Callable, List, Mapping, Optional, Union
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from crawlgate.app.services.capacity_planner import CapacityPlanner
from crawlgate.app.services.keyed_lock import KeyedLock
from crawlgate.app.services.ttl_cache import TTLCache
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.domain.entities import SubscriptionPlan, Tenant, TenantStatus, UsageKey
from crawlgate.domain.errors import TenantStoreError
from crawlgate.domain.values.tenancy import (
    UNLIMITED,
    USAGE_LIMIT_FIELDS,
    LimitCheck,
    LimitsUpdateReport,
    NewTenant,
    PlanLimits,
    PlanSnapshot,
    TenantLimits,
    TenantSettings,
    TenantSnapshot,
    TenantUsage,
    merge_settings,
)

logger = logging.getLogger(__name__)

TenantRef = Union[UUID, str]

DEFAULT_CACHE_TTL_SECONDS = 5 * 60


def as_tenant_id(tenant_id: TenantRef) -> Optional[UUID]:
    """Parse a tenant reference, returning None for anything that is not a UUID"""
    if isinstance(tenant_id, UUID):
        return tenant_id
    try:
        return UUID(str(tenant_id))
    except ValueError:
        return None


def _snapshot(tenant: Tenant, plan: SubscriptionPlan) -> TenantSnapshot:
    return TenantSnapshot(
        id=tenant.id,
        name=tenant.name,
        slug=tenant.slug,
        status=tenant.status,
        plan=PlanSnapshot(
            id=plan.id,
            name=plan.name,
            tier=plan.tier,
            limits=PlanLimits.model_validate(plan.limits or {}),
            features=plan.features or [],
        ),
        settings=TenantSettings.model_validate(tenant.settings or {}),
        limits=TenantLimits.model_validate(tenant.limits or {}),
        usage=TenantUsage.model_validate(tenant.usage or {}),
        created_at=tenant.created_at,
        updated_at=tenant.updated_at,
    )


class TenantRegistry:
    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        planner: CapacityPlanner,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        usage_reset_day: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.uow_factory = uow_factory
        self.planner = planner
        self.usage_reset_day = usage_reset_day
        self._cache: TTLCache[TenantSnapshot] = TTLCache(cache_ttl_seconds, clock)
        self._locks = KeyedLock()

    def use_planner(self, planner: CapacityPlanner) -> None:
        self.planner = planner

    # Reads

    async def load(self, tenant_id: TenantRef, fresh: bool = False) -> Optional[TenantSnapshot]:
        """Cached read that raises TenantStoreError when the datastore fails.

        fresh skips the cached entry; the row read still refills the cache.
        """
        tid = as_tenant_id(tenant_id)
        if tid is None:
            return None

        if not fresh:
            cached = self._cache.get(tid)
            if cached is not None:
                return cached

        read_at = self._cache.version()
        try:
            async with self.uow_factory() as uow:
                tenant = await uow.tenants.get_by_id(tid)
                if tenant is None:
                    return None
                snapshot = await self._with_plan(uow, tenant)
        except (SQLAlchemyError, ValidationError) as e:
            raise TenantStoreError(f"Could not load tenant {tid}: {e}") from e

        if snapshot is not None:
            self._cache.set(tid, snapshot, read_at=read_at)
        return snapshot

    async def get(self, tenant_id: TenantRef, fresh: bool = False) -> Optional[TenantSnapshot]:
        try:
            return await self.load(tenant_id, fresh)
        except TenantStoreError as e:
            logger.error(f"Error fetching tenant: {e}")
            return None

    async def get_by_slug(self, slug: str) -> Optional[TenantSnapshot]:
        read_at = self._cache.version()
        try:
            async with self.uow_factory() as uow:
                tenant = await uow.tenants.get_by_slug(slug)
                if tenant is None:
                    return None
                snapshot = await self._with_plan(uow, tenant)
        except (SQLAlchemyError, ValidationError) as e:
            logger.error(f"Error fetching tenant by slug {slug}: {e}")
            return None

        if snapshot is not None:
            self._cache.set(snapshot.id, snapshot, read_at=read_at)
        return snapshot

    async def list_active(self) -> List[TenantSnapshot]:
        """All active tenants, read fresh. Raises TenantStoreError."""
        try:
            async with self.uow_factory() as uow:
                tenants = await uow.tenants.list_by_status(TenantStatus.active)
                plans = {plan.id: plan for plan in await uow.plans.list_all()}
            snapshots = []
            for tenant in tenants:
                plan = plans.get(tenant.plan_id)
                if plan is None:
                    logger.error(f"Tenant {tenant.id} references missing plan {tenant.plan_id}")
                    continue
                snapshots.append(_snapshot(tenant, plan))
            return snapshots
        except (SQLAlchemyError, ValidationError) as e:
            raise TenantStoreError(f"Could not list active tenants: {e}") from e

    async def _with_plan(self, uow: UnitOfWork, tenant: Tenant) -> Optional[TenantSnapshot]:
        plan = await uow.plans.get_by_id(tenant.plan_id)
        if plan is None:
            logger.error(f"Tenant {tenant.id} references missing plan {tenant.plan_id}")
            return None
        return _snapshot(tenant, plan)

    # Quota checks

    async def check_limit(
        self, tenant_id: TenantRef, usage_key: UsageKey, requested: float = 1
    ) -> LimitCheck:
        tenant = await self.get(tenant_id, fresh=True)
        if tenant is None:
            return LimitCheck(allowed=False, reason="Tenant not found", current_usage=0, limit=0)

        if not tenant.is_active:
            return LimitCheck(allowed=False, reason="Tenant is not active", current_usage=0, limit=0)

        key = UsageKey(usage_key)
        current_usage = tenant.usage.get(key)
        limit = getattr(tenant.limits, USAGE_LIMIT_FIELDS[key])

        if limit != UNLIMITED and current_usage + requested > limit:
            return LimitCheck(
                allowed=False,
                reason=f"Exceeds {key.value} limit ({current_usage + requested}/{limit})",
                current_usage=current_usage,
                limit=limit,
            )

        return LimitCheck(allowed=True, current_usage=current_usage, limit=limit)

    # Mutations

    async def _mutate(
        self, tenant_id: TenantRef, mutate: Callable[[Tenant], None], action: str
    ) -> bool:
        tid = as_tenant_id(tenant_id)
        if tid is None:
            logger.warning(f"Cannot {action}: invalid tenant id {tenant_id!r}")
            return False

        async with self._locks.hold(tid):
            try:
                async with self.uow_factory() as uow:
                    tenant = await uow.tenants.get_by_id(tid)
                    if tenant is None:
                        logger.warning(f"Cannot {action}: tenant {tid} not found")
                        return False
                    mutate(tenant)
                    await uow.tenants.update(tenant)
                    await uow.commit()
                    self._cache.invalidate(tid)
            except (SQLAlchemyError, ValidationError) as e:
                logger.error(f"Error trying to {action} for tenant {tid}: {e}")
                return False

        return True

    async def adjust_usage(
        self, tenant_id: TenantRef, deltas: Mapping[UsageKey, float]
    ) -> bool:
        """Move several usage counters in one write; results clamp at zero"""

        def apply(tenant: Tenant) -> None:
            usage = TenantUsage.model_validate(tenant.usage or {})
            for key, delta in deltas.items():
                usage = usage.adjusted(key, delta)
            tenant.usage = usage.model_dump(mode="json")

        return await self._mutate(tenant_id, apply, "adjust usage")

    async def increment_usage(
        self, tenant_id: TenantRef, usage_key: UsageKey, amount: float = 1
    ) -> bool:
        return await self.adjust_usage(tenant_id, {UsageKey(usage_key): amount})

    async def decrement_usage(
        self, tenant_id: TenantRef, usage_key: UsageKey, amount: float = 1
    ) -> bool:
        return await self.adjust_usage(tenant_id, {UsageKey(usage_key): -amount})

    async def update_usage(self, tenant_id: TenantRef, changes: Mapping) -> bool:
        normalized = {
            (key.value if isinstance(key, UsageKey) else key): value
            for key, value in changes.items()
        }

        def apply(tenant: Tenant) -> None:
            usage = TenantUsage.model_validate({**(tenant.usage or {}), **normalized})
            tenant.usage = usage.model_dump(mode="json")

        return await self._mutate(tenant_id, apply, "update usage")

    async def update_settings(self, tenant_id: TenantRef, changes: dict) -> bool:
        def apply(tenant: Tenant) -> None:
            current = TenantSettings.model_validate(tenant.settings or {}).model_dump()
            settings = TenantSettings.model_validate(merge_settings(current, changes))
            tenant.settings = settings.model_dump(mode="json")

        return await self._mutate(tenant_id, apply, "update settings")

    async def update_status(self, tenant_id: TenantRef, status: TenantStatus) -> bool:
        def apply(tenant: Tenant) -> None:
            tenant.status = TenantStatus(status)

        return await self._mutate(tenant_id, apply, "update status")

    async def reset_monthly_usage(self, tenant_id: TenantRef) -> bool:
        def apply(tenant: Tenant) -> None:
            usage = TenantUsage.model_validate(tenant.usage or {})
            usage = usage.model_copy(
                update={"monthly_crawls": 0, "last_reset_date": datetime.now(UTC)}
            )
            tenant.usage = usage.model_dump(mode="json")

        return await self._mutate(tenant_id, apply, "reset monthly usage")

    async def reset_due_monthly_usage(self, today: Optional[date] = None) -> int:
        """Reset monthly counters of tenants not yet reset this month"""
        today = today or datetime.now(UTC).date()
        if today.day < self.usage_reset_day:
            return 0

        reset = 0
        for tenant in await self.list_active():
            last = tenant.usage.last_reset_date
            if last is not None and (last.year, last.month) >= (today.year, today.month):
                continue
            if await self.reset_monthly_usage(tenant.id):
                reset += 1

        if reset:
            logger.info(f"Reset monthly usage for {reset} tenants")
        return reset

    def derive_limits(self, plan: SubscriptionPlan, current: Optional[dict] = None) -> TenantLimits:
        """Plan limits (or the tenant's current ones) overlaid with the tier's slice"""
        base = current if current is not None else (plan.limits or {})
        tier_limits = self.planner.tenant_limits(plan.tier)
        return TenantLimits.model_validate({**base, **tier_limits.model_dump()})

    async def create(self, tenant_data: NewTenant) -> Optional[TenantSnapshot]:
        try:
            async with self.uow_factory() as uow:
                plan = await uow.plans.get_by_id(tenant_data.plan_id)
                if plan is None:
                    logger.warning(f"Cannot create tenant {tenant_data.slug}: plan not found")
                    return None

                limits = self.derive_limits(plan)
                settings = TenantSettings.model_validate(tenant_data.settings or {})
                usage = TenantUsage(last_reset_date=datetime.now(UTC))

                tenant = Tenant(
                    name=tenant_data.name,
                    slug=tenant_data.slug,
                    plan_id=plan.id,
                    status=tenant_data.status,
                    settings=settings.model_dump(mode="json"),
                    limits=limits.model_dump(mode="json"),
                    usage=usage.model_dump(mode="json"),
                )
                tenant = await uow.tenants.create(tenant)
                await uow.commit()
                snapshot = _snapshot(tenant, plan)
        except (SQLAlchemyError, ValidationError) as e:
            logger.error(f"Error creating tenant {tenant_data.slug}: {e}")
            return None

        logger.info(
            f"Tenant {snapshot.id} created on {snapshot.tier.value} plan with limits "
            f"{snapshot.limits.model_dump()}"
        )
        self._cache.set(snapshot.id, snapshot)
        return snapshot

    async def update_all_tenant_limits(self) -> LimitsUpdateReport:
        """Re-derive every active tenant's limits from the current planner.

        Tenants are written one at a time; each cache entry is invalidated as
        soon as its own write commits.
        """
        report = LimitsUpdateReport()
        try:
            async with self.uow_factory() as uow:
                tenants = await uow.tenants.list_by_status(TenantStatus.active)
                plans = {plan.id: plan for plan in await uow.plans.list_all()}
        except SQLAlchemyError as e:
            report.errors.append(f"Failed to list active tenants: {e}")
            return report

        for tenant in tenants:
            plan = plans.get(tenant.plan_id)
            if plan is None:
                report.errors.append(f"Tenant {tenant.id} references missing plan {tenant.plan_id}")
                continue

            def apply(row: Tenant, plan=plan) -> None:
                row.limits = self.derive_limits(plan, current=row.limits or {}).model_dump(mode="json")

            if await self._mutate(tenant.id, apply, "update limits"):
                report.updated += 1
            else:
                report.errors.append(f"Failed to update tenant {tenant.id}")

        logger.info(f"Updated limits for {report.updated} tenants ({len(report.errors)} errors)")
        return report

    # Cache control

    def invalidate(self, tenant_id: TenantRef) -> None:
        tid = as_tenant_id(tenant_id)
        if tid is not None:
            self._cache.invalidate(tid)

    def clear_cache(self) -> None:
        self._cache.clear()

    def sweep_cache(self) -> int:
        return self._cache.sweep()
