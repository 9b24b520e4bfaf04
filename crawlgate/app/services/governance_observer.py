from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from crawlgate.domain.entities import MetricType


class IGovernanceObserver(ABC):
    """Sink for audit records and metrics emitted by the core components.

    Implementations must not raise: a failed audit write never changes an
    admission decision.
    """

    @abstractmethod
    async def audit(
        self,
        action: str,
        resource: str,
        tenant_id: Optional[UUID] = None,
        resource_id: Optional[str] = None,
        user_id: Optional[UUID] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        pass

    @abstractmethod
    async def metric(
        self,
        metric_type: MetricType,
        metric_name: str,
        metric_value: float,
        tenant_id: Optional[UUID] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        pass
