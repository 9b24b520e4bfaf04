"""
SubscriptionPlan Entity

Immutable once referenced by a tenant, except via an explicit plan change.
"""

from uuid import UUID, uuid4

from sqlmodel import Column, Field, JSON, SQLModel

from .enums import BillingCycle, PlanTier


class SubscriptionPlan(SQLModel, table=True):
    __tablename__ = "plans"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=100)
    tier: PlanTier = Field(index=True)

    limits: dict = Field(default_factory=dict, sa_column=Column(JSON))
    features: list = Field(default_factory=list, sa_column=Column(JSON))

    price: float = Field(default=0.0)
    billing_cycle: BillingCycle = Field(default=BillingCycle.monthly)
