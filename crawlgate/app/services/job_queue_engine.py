"""
Job-queue engine port

The queue orchestrator talks to the engine only through this interface; the
engine owns job storage, ordering, retries and worker execution.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from typing import Any, Awaitable, Callable, Optional

from crawlgate.domain.entities.enums import JobState

# Lifecycle events a listener can subscribe to
JOB_EVENTS = ("completed", "failed", "cancelled", "stalled")


@dataclass
class JobOptions:
    """Per-job options. Unset fields fall back to the queue defaults."""

    priority: Optional[int] = None  # lower runs first
    attempts: Optional[int] = None
    backoff_delay: Optional[float] = None  # seconds, doubled on each retry
    delay: Optional[float] = None  # seconds before the first run
    job_id: Optional[str] = None

    def merged(self, defaults: "JobOptions") -> "JobOptions":
        values = {}
        for f in fields(self):
            value = getattr(self, f.name)
            values[f.name] = value if value is not None else getattr(defaults, f.name)
        return JobOptions(**values)


DEFAULT_JOB_OPTIONS = JobOptions(priority=1, attempts=3, backoff_delay=5.0, delay=0.0)


@dataclass
class Job:
    id: str
    queue_name: str
    data: dict
    options: JobOptions
    state: JobState = JobState.waiting
    attempts_made: int = 0
    result: Any = None
    failed_reason: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def processed_ms(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at) * 1000


@dataclass(frozen=True)
class WorkerLimiter:
    """At most `max_jobs` job starts per rolling `duration_seconds` window"""

    max_jobs: int
    duration_seconds: float = 60.0


@dataclass(frozen=True)
class QueueCounts:
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    paused: bool = False


JobHandler = Callable[[Job], Awaitable[Any]]
# Called with the job and the error that ended it, if any
JobListener = Callable[[Job, Optional[BaseException]], Awaitable[None]]


class IJobQueueEngine(ABC):
    @abstractmethod
    def create_queue(
        self, name: str, defaults: Optional[JobOptions] = None, max_size: Optional[int] = None
    ) -> None:
        """Register a queue; a second call with the same name is a no-op"""
        pass

    @abstractmethod
    def has_queue(self, name: str) -> bool:
        pass

    @abstractmethod
    def create_worker(
        self,
        name: str,
        handler: JobHandler,
        concurrency: int = 1,
        limiter: Optional[WorkerLimiter] = None,
    ) -> None:
        pass

    @abstractmethod
    async def enqueue(self, name: str, data: dict, options: Optional[JobOptions] = None) -> Job:
        """Raises QueueNotFoundError or QueueFullError"""
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Remove a job that has not started yet. Running jobs are not touched."""
        pass

    @abstractmethod
    def get_counts(self, name: str) -> QueueCounts:
        pass

    @abstractmethod
    def pause(self, name: str) -> None:
        pass

    @abstractmethod
    def resume(self, name: str) -> None:
        pass

    @abstractmethod
    def on(self, name: str, event: str, listener: JobListener) -> None:
        pass

    @abstractmethod
    async def close_queue(self, name: str) -> None:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
