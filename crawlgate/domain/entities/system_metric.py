"""
SystemMetric Entity

Point-in-time measurement recorded by the usage monitor.
"""

from datetime import UTC, datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, JSON, SQLModel

from .enums import MetricType


class SystemMetric(SQLModel, table=True):
    __tablename__ = "system_metrics"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    metric_type: MetricType
    metric_name: str = Field(max_length=100)
    metric_value: float

    tenant_id: Optional[UUID] = Field(default=None, index=True)
    event_metadata: Optional[dict] = Field(
        default=None, sa_column=Column("metadata", JSON)
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), sa_column=Column(DateTime)
    )

    __table_args__ = (
        Index("idx_metric_type_timestamp", "metric_type", "timestamp"),
    )
