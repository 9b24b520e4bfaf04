"""
AuditLog Entity

Immutable log of governance events (admissions, rejections, queue changes).
"""

from datetime import UTC, datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, JSON, SQLModel


class AuditLog(SQLModel, table=True):
    """
    AuditLog entity - immutable log of governance events.

    Business Rules:
    - Immutable (never updated or deleted)
    - tenant_id nullable for system-wide events
    - Metadata stores additional context (counts, limits, job ids)
    """

    __tablename__ = "audit_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    tenant_id: Optional[UUID] = Field(default=None, index=True)
    user_id: Optional[UUID] = Field(default=None, index=True)

    action: str = Field(max_length=100)  # e.g., "rate_limit_exceeded"
    resource: str = Field(max_length=100)  # e.g., "queue", "tenant"
    resource_id: Optional[str] = Field(default=None, max_length=255)
    event_metadata: Optional[dict] = Field(
        default=None, sa_column=Column("metadata", JSON)
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), sa_column=Column(DateTime)
    )

    __table_args__ = (
        Index("idx_audit_timestamp", "timestamp"),
        Index("idx_audit_tenant_action", "tenant_id", "action"),
    )
