from sqlmodel.ext.asyncio.session import AsyncSession

from crawlgate.adapter.repositories.audit_log_repository import AuditLogRepository
from crawlgate.adapter.repositories.plan_repository import PlanRepository
from crawlgate.adapter.repositories.system_metric_repository import SystemMetricRepository
from crawlgate.adapter.repositories.tenant_repository import TenantRepository
from crawlgate.app.services.unit_of_work import UnitOfWork


class SqlAlchemyUnitOfWork(UnitOfWork):
    """SQLAlchemy implementation of UnitOfWork pattern

    Opens a fresh session from the factory on enter and closes it on exit,
    so one instance covers exactly one transaction.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.session: AsyncSession = None

    async def __aenter__(self):
        self.session = self.session_factory()
        # Initialize all repositories with the session
        self.tenants = TenantRepository(self.session)
        self.plans = PlanRepository(self.session)
        self.audit_logs = AuditLogRepository(self.session)
        self.system_metrics = SystemMetricRepository(self.session)
        return self

    async def __aexit__(self, *args):
        try:
            # Detach first so entities read here stay usable after the rollback
            self.session.expunge_all()
            await self.rollback()
        finally:
            await self.session.close()

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()
