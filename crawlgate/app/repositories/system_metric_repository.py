from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from crawlgate.domain.entities import MetricType, SystemMetric


class ISystemMetricRepository(ABC):
    """SystemMetric repository interface - application layer"""

    @abstractmethod
    async def create(self, metric: SystemMetric) -> SystemMetric:
        pass

    @abstractmethod
    async def list_since(
        self, since: datetime, metric_type: Optional[MetricType] = None
    ) -> List[SystemMetric]:
        """Metrics recorded at or after `since`, newest first"""
        pass
