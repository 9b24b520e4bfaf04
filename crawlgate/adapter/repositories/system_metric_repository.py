from datetime import datetime
from typing import List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from crawlgate.app.repositories.system_metric_repository import ISystemMetricRepository
from crawlgate.domain.entities import MetricType, SystemMetric


class SystemMetricRepository(ISystemMetricRepository):
    """SystemMetric repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, metric: SystemMetric) -> SystemMetric:
        self.session.add(metric)
        await self.session.flush()
        await self.session.refresh(metric)
        return metric

    async def list_since(
        self, since: datetime, metric_type: Optional[MetricType] = None
    ) -> List[SystemMetric]:
        stmt = select(SystemMetric).where(SystemMetric.timestamp >= since)
        if metric_type is not None:
            stmt = stmt.where(SystemMetric.metric_type == metric_type)
        stmt = stmt.order_by(SystemMetric.timestamp.desc())
        result = await self.session.exec(stmt)
        return list(result.all())
