"""
Tenant Entity

Represents an isolated customer account with its own plan, limits and usage.
"""

from datetime import UTC, datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, JSON, SQLModel

from .enums import TenantStatus


class Tenant(SQLModel, table=True):
    """
    Tenant entity - isolated customer account.

    Business Rules:
    - slug is unique and used in public URLs
    - limits is a snapshot that may diverge from the plan's raw limits
      because of dynamic scaling
    - usage counters never go negative
    - a non-active tenant is never admitted to enqueue new work
    """

    __tablename__ = "tenants"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=255)
    slug: str = Field(max_length=100, unique=True, index=True)
    plan_id: UUID = Field(foreign_key="plans.id", index=True)

    status: TenantStatus = Field(default=TenantStatus.active)

    # JSON documents, always replaced as a whole on write
    settings: dict = Field(default_factory=dict, sa_column=Column(JSON))
    limits: dict = Field(default_factory=dict, sa_column=Column(JSON))
    usage: dict = Field(default_factory=dict, sa_column=Column(JSON))

    # Timestamps
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), sa_column=Column(DateTime)
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC), sa_column=Column(DateTime)
    )

    __table_args__ = (
        Index("idx_tenant_status", "status"),
        Index("idx_tenant_created_at", "created_at"),
    )
