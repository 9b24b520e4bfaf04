"""
Admin Use Case DTOs
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from crawlgate.domain.entities import TenantStatus


class TenantStatusResponse(BaseModel):
    """Response for the suspend / restore / cancel use cases"""

    tenant_id: str
    status: TenantStatus
    previous_status: TenantStatus


class ResetTenantUsageResponse(BaseModel):
    tenant_id: str
    monthly_crawls: int
    last_reset_date: Optional[datetime] = None
