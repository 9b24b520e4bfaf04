from abc import ABC, abstractmethod

from crawlgate.app.repositories.audit_log_repository import IAuditLogRepository
from crawlgate.app.repositories.plan_repository import IPlanRepository
from crawlgate.app.repositories.system_metric_repository import ISystemMetricRepository
from crawlgate.app.repositories.tenant_repository import ITenantRepository


class UnitOfWork(ABC):
    """Abstract UnitOfWork - defines repository access and transaction management"""

    # Repository properties (initialized in __aenter__)
    tenants: ITenantRepository
    plans: IPlanRepository
    audit_logs: IAuditLogRepository
    system_metrics: ISystemMetricRepository

    @abstractmethod
    async def __aenter__(self):
        pass

    @abstractmethod
    async def __aexit__(self, *args):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass
