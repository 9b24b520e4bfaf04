from typing import List, Optional
from uuid import UUID

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from crawlgate.app.repositories.plan_repository import IPlanRepository
from crawlgate.domain.entities import PlanTier, SubscriptionPlan


class PlanRepository(IPlanRepository):
    """Subscription plan repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, plan_id: UUID) -> Optional[SubscriptionPlan]:
        stmt = select(SubscriptionPlan).where(SubscriptionPlan.id == plan_id)
        result = await self.session.exec(stmt)
        return result.one_or_none()

    async def get_by_tier(self, tier: PlanTier) -> Optional[SubscriptionPlan]:
        stmt = select(SubscriptionPlan).where(SubscriptionPlan.tier == tier).limit(1)
        result = await self.session.exec(stmt)
        return result.first()

    async def list_all(self) -> List[SubscriptionPlan]:
        result = await self.session.exec(select(SubscriptionPlan))
        return list(result.all())

    async def create(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        self.session.add(plan)
        await self.session.flush()
        await self.session.refresh(plan)
        return plan
