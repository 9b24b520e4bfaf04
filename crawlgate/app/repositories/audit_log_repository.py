from abc import ABC, abstractmethod
from typing import List
from uuid import UUID

from crawlgate.domain.entities import AuditLog


class IAuditLogRepository(ABC):
    """AuditLog repository interface - application layer"""

    @abstractmethod
    async def create(self, audit_log: AuditLog) -> AuditLog:
        """Create a new audit log entry (immutable)"""
        pass

    @abstractmethod
    async def list_recent_by_tenant(self, tenant_id: UUID, limit: int = 10) -> List[AuditLog]:
        """Newest entries first"""
        pass
