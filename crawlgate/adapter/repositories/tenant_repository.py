from datetime import UTC, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from crawlgate.app.repositories.tenant_repository import ITenantRepository
from crawlgate.domain.entities import Tenant, TenantStatus


class TenantRepository(ITenantRepository):
    """Tenant repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, tenant_id: UUID) -> Optional[Tenant]:
        """Get tenant by ID"""
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        result = await self.session.exec(stmt)
        return result.one_or_none()

    async def get_by_slug(self, slug: str) -> Optional[Tenant]:
        """Get tenant by slug"""
        stmt = select(Tenant).where(Tenant.slug == slug)
        result = await self.session.exec(stmt)
        return result.one_or_none()

    async def list_by_status(self, status: TenantStatus) -> List[Tenant]:
        stmt = select(Tenant).where(Tenant.status == status).order_by(Tenant.created_at)
        result = await self.session.exec(stmt)
        return list(result.all())

    async def count(self, status: Optional[TenantStatus] = None) -> int:
        stmt = select(func.count()).select_from(Tenant)
        if status is not None:
            stmt = stmt.where(Tenant.status == status)
        result = await self.session.exec(stmt)
        return result.one()

    async def count_created_since(self, since: datetime) -> int:
        stmt = select(func.count()).select_from(Tenant).where(Tenant.created_at >= since)
        result = await self.session.exec(stmt)
        return result.one()

    async def create(self, tenant: Tenant) -> Tenant:
        """Create a new tenant"""
        self.session.add(tenant)
        await self.session.flush()
        await self.session.refresh(tenant)
        return tenant

    async def update(self, tenant: Tenant) -> Tenant:
        """Update existing tenant"""
        tenant.updated_at = datetime.now(UTC)
        self.session.add(tenant)
        await self.session.flush()
        await self.session.refresh(tenant)
        return tenant
