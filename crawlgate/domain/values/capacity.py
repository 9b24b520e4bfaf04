"""
Capacity planning value objects
"""

from pydantic import BaseModel, ConfigDict


class ScalingConfig(BaseModel):
    """Global scaling knobs. Re-planning builds a new instance."""

    model_config = ConfigDict(frozen=True)

    max_users: int = 500
    queue_size_per_user: int = 2
    workers_per_user: float = 0.1
    concurrency_per_worker: int = 3
    memory_per_worker_mb: int = 128
    cpu_per_worker: float = 0.1


class SystemResourceAllocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_workers: int
    total_queue_size: int
    memory_allocation_mb: int
    cpu_allocation: float
    recommended_instances: int


class TierResourceLimits(BaseModel):
    """A plan tier's slice of the system allocation"""

    model_config = ConfigDict(frozen=True)

    max_workers: int
    max_queue_size: int
    max_concurrent_crawls: int
    rate_limit_per_minute: int


class QueueConfiguration(BaseModel):
    """Derived queue sizing; never persisted"""

    model_config = ConfigDict(frozen=True)

    max_workers: int
    max_queue_size: int
    concurrency: int
    delay_between_jobs_ms: int
    retry_attempts: int
    retry_delay_ms: int
