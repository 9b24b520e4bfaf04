from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from crawlgate.domain.entities import PlanTier, SubscriptionPlan


class IPlanRepository(ABC):
    """Subscription plan repository interface - application layer"""

    @abstractmethod
    async def get_by_id(self, plan_id: UUID) -> Optional[SubscriptionPlan]:
        pass

    @abstractmethod
    async def get_by_tier(self, tier: PlanTier) -> Optional[SubscriptionPlan]:
        pass

    @abstractmethod
    async def list_all(self) -> List[SubscriptionPlan]:
        pass

    @abstractmethod
    async def create(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        pass
