import logging
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from crawlgate.app.services.governance_observer import IGovernanceObserver
from crawlgate.app.services.unit_of_work import UnitOfWork
from crawlgate.domain.entities import AuditLog, MetricType, SystemMetric

logger = logging.getLogger(__name__)


class DatastoreObserver(IGovernanceObserver):
    """Writes audit records to audit_logs and metrics to system_metrics"""

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self.uow_factory = uow_factory

    async def audit(
        self,
        action: str,
        resource: str,
        tenant_id: Optional[UUID] = None,
        resource_id: Optional[str] = None,
        user_id: Optional[UUID] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        entry = AuditLog(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            event_metadata=metadata,
        )
        try:
            async with self.uow_factory() as uow:
                await uow.audit_logs.create(entry)
                await uow.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to write audit log {action} for tenant {tenant_id}: {e}")

    async def metric(
        self,
        metric_type: MetricType,
        metric_name: str,
        metric_value: float,
        tenant_id: Optional[UUID] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        entry = SystemMetric(
            metric_type=metric_type,
            metric_name=metric_name,
            metric_value=metric_value,
            tenant_id=tenant_id,
            event_metadata=metadata,
        )
        try:
            async with self.uow_factory() as uow:
                await uow.system_metrics.create(entry)
                await uow.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record metric {metric_name}: {e}")
