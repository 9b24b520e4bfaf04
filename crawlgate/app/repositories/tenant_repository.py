from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from crawlgate.domain.entities import Tenant, TenantStatus


class ITenantRepository(ABC):
    """Tenant repository interface - application layer"""

    @abstractmethod
    async def get_by_id(self, tenant_id: UUID) -> Optional[Tenant]:
        """Get tenant by ID"""
        pass

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Optional[Tenant]:
        """Get tenant by unique slug"""
        pass

    @abstractmethod
    async def list_by_status(self, status: TenantStatus) -> List[Tenant]:
        """List tenants with the given status"""
        pass

    @abstractmethod
    async def count(self, status: Optional[TenantStatus] = None) -> int:
        """Count tenants, optionally restricted to one status"""
        pass

    @abstractmethod
    async def count_created_since(self, since: datetime) -> int:
        """Count tenants created at or after the given time"""
        pass

    @abstractmethod
    async def create(self, tenant: Tenant) -> Tenant:
        """Create a new tenant"""
        pass

    @abstractmethod
    async def update(self, tenant: Tenant) -> Tenant:
        """Update existing tenant"""
        pass
