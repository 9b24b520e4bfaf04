"""
In-process job-queue engine built on asyncio.

Features:
- Priority ordering (lower number first), FIFO within a priority
- Delayed jobs and exponential-backoff retries
- Bounded queue size with rejection
- Per-queue worker tasks with a rolling-window start limiter
- completed / failed / cancelled / stalled lifecycle events
"""

import asyncio
import heapq
import itertools
import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple
from uuid import uuid4

from crawlgate.app.services.job_queue_engine import (
    DEFAULT_JOB_OPTIONS,
    JOB_EVENTS,
    IJobQueueEngine,
    Job,
    JobHandler,
    JobListener,
    JobOptions,
    QueueCounts,
    WorkerLimiter,
)
from crawlgate.domain.entities.enums import JobState
from crawlgate.domain.errors import QueueFullError, QueueNotFoundError, UnrecoverableJobError

logger = logging.getLogger(__name__)

KEEP_COMPLETED_JOBS = 100
KEEP_FAILED_JOBS = 50


class _Queue:
    def __init__(self, name: str, defaults: JobOptions, max_size: Optional[int]):
        self.name = name
        self.defaults = defaults
        self.max_size = max_size
        self.heap: List[Tuple[int, int, str]] = []
        self.waiting: Dict[str, Job] = {}
        self.delayed: Dict[str, Job] = {}
        self.active: Dict[str, Job] = {}
        self.timers: Dict[str, asyncio.TimerHandle] = {}
        self.completed_ids: Deque[str] = deque()
        self.failed_ids: Deque[str] = deque()
        self.completed_total = 0
        self.failed_total = 0
        self.listeners: Dict[str, List[JobListener]] = defaultdict(list)
        self.ready = asyncio.Event()
        self.paused = False
        self.workers: List[asyncio.Task] = []
        self.starts: Deque[float] = deque()

    @property
    def pending(self) -> int:
        return len(self.waiting) + len(self.delayed)


class AsyncioJobQueue(IJobQueueEngine):
    def __init__(self, keep_completed: int = KEEP_COMPLETED_JOBS, keep_failed: int = KEEP_FAILED_JOBS):
        self._queues: Dict[str, _Queue] = {}
        self._jobs: Dict[str, Job] = {}
        self._seq = itertools.count()
        self._keep_completed = keep_completed
        self._keep_failed = keep_failed
        self._closed = False

    def _queue(self, name: str) -> _Queue:
        queue = self._queues.get(name)
        if queue is None:
            raise QueueNotFoundError(f"Queue {name} does not exist")
        return queue

    def create_queue(
        self, name: str, defaults: Optional[JobOptions] = None, max_size: Optional[int] = None
    ) -> None:
        if name in self._queues:
            return
        merged = (defaults or JobOptions()).merged(DEFAULT_JOB_OPTIONS)
        self._queues[name] = _Queue(name, merged, max_size)
        logger.info(f"Queue {name} created (max_size={max_size})")

    def has_queue(self, name: str) -> bool:
        return name in self._queues

    def create_worker(
        self,
        name: str,
        handler: JobHandler,
        concurrency: int = 1,
        limiter: Optional[WorkerLimiter] = None,
    ) -> None:
        queue = self._queue(name)
        if queue.workers:
            logger.warning(f"Queue {name} already has workers")
            return
        queue.workers = [
            asyncio.create_task(self._work(queue, handler, limiter), name=f"{name}:worker:{i}")
            for i in range(max(1, concurrency))
        ]
        logger.info(f"Started {len(queue.workers)} workers for {name}")

    async def enqueue(self, name: str, data: dict, options: Optional[JobOptions] = None) -> Job:
        if self._closed:
            raise QueueNotFoundError("Job queue engine is closed")
        queue = self._queue(name)
        if queue.max_size is not None and queue.pending >= queue.max_size:
            raise QueueFullError(f"Queue {name} is full ({queue.max_size} jobs)")

        opts = (options or JobOptions()).merged(queue.defaults)
        job_id = opts.job_id or uuid4().hex
        existing = self._jobs.get(job_id)
        if existing is not None and not existing.state.is_terminal:
            raise ValueError(f"Job {job_id} already exists")

        job = Job(id=job_id, queue_name=name, data=dict(data), options=opts)
        self._jobs[job_id] = job
        if opts.delay and opts.delay > 0:
            self._schedule(queue, job, opts.delay)
        else:
            self._push(queue, job)

        logger.debug(f"Enqueued job {job_id} on {name} (waiting: {len(queue.waiting)})")
        return job

    def _push(self, queue: _Queue, job: Job) -> None:
        job.state = JobState.waiting
        queue.waiting[job.id] = job
        heapq.heappush(queue.heap, (job.options.priority, next(self._seq), job.id))
        queue.ready.set()

    def _schedule(self, queue: _Queue, job: Job, delay: float) -> None:
        job.state = JobState.delayed
        queue.delayed[job.id] = job
        loop = asyncio.get_running_loop()
        queue.timers[job.id] = loop.call_later(delay, self._promote, queue, job.id)

    def _promote(self, queue: _Queue, job_id: str) -> None:
        queue.timers.pop(job_id, None)
        job = queue.delayed.pop(job_id, None)
        if job is not None:
            self._push(queue, job)

    def _take(self, queue: _Queue) -> Optional[Job]:
        while queue.heap:
            _, _, job_id = heapq.heappop(queue.heap)
            # Cancelled jobs leave stale heap entries behind
            job = queue.waiting.pop(job_id, None)
            if job is not None:
                return job
        return None

    @staticmethod
    def _limiter_wait(queue: _Queue, limiter: Optional[WorkerLimiter]) -> float:
        if limiter is None:
            return 0
        now = time.monotonic()
        while queue.starts and now - queue.starts[0] >= limiter.duration_seconds:
            queue.starts.popleft()
        if len(queue.starts) < limiter.max_jobs:
            return 0
        return limiter.duration_seconds - (now - queue.starts[0])

    async def _work(self, queue: _Queue, handler: JobHandler, limiter: Optional[WorkerLimiter]) -> None:
        while True:
            if queue.paused or not queue.waiting:
                queue.ready.clear()
                await queue.ready.wait()
                continue

            wait = self._limiter_wait(queue, limiter)
            if wait > 0:
                await asyncio.sleep(wait)
                continue

            job = self._take(queue)
            if job is None:
                continue
            if limiter is not None:
                queue.starts.append(time.monotonic())
            await self._run(queue, job, handler)

    async def _run(self, queue: _Queue, job: Job, handler: JobHandler) -> None:
        job.state = JobState.active
        job.started_at = time.time()
        job.attempts_made += 1
        queue.active[job.id] = job

        error = None
        try:
            job.result = await handler(job)
        except asyncio.CancelledError:
            await self._stall(queue, job)
            raise
        except Exception as e:
            error = e

        queue.active.pop(job.id, None)
        job.finished_at = time.time()

        if error is None:
            job.state = JobState.completed
            queue.completed_total += 1
            self._retain(queue.completed_ids, job.id, self._keep_completed)
            await self._emit(queue, "completed", job, None)
            return

        retryable = (
            not isinstance(error, UnrecoverableJobError)
            and job.attempts_made < job.options.attempts
        )
        if retryable:
            delay = job.options.backoff_delay * (2 ** (job.attempts_made - 1))
            logger.warning(
                f"Job {job.id} on {queue.name} failed attempt "
                f"{job.attempts_made}/{job.options.attempts}, retrying in {delay:.1f}s: {error}"
            )
            self._schedule(queue, job, delay)
            return

        job.state = JobState.failed
        job.failed_reason = str(error) or type(error).__name__
        queue.failed_total += 1
        self._retain(queue.failed_ids, job.id, self._keep_failed)
        logger.error(f"Job {job.id} on {queue.name} failed after {job.attempts_made} attempts: {error}")
        await self._emit(queue, "failed", job, error)

    async def _stall(self, queue: _Queue, job: Job) -> None:
        """A worker was stopped mid-job: report it stalled, then failed"""
        queue.active.pop(job.id, None)
        job.finished_at = time.time()
        job.state = JobState.failed
        job.failed_reason = "Worker stopped while the job was running"
        queue.failed_total += 1
        self._retain(queue.failed_ids, job.id, self._keep_failed)
        logger.warning(f"Job {job.id} on {queue.name} stalled")
        await self._emit(queue, "stalled", job, None)
        await self._emit(queue, "failed", job, None)

    def _retain(self, ids: Deque[str], job_id: str, keep: int) -> None:
        ids.append(job_id)
        while len(ids) > keep:
            old = self._jobs.get(ids.popleft())
            if old is not None and old.state.is_terminal:
                del self._jobs[old.id]

    async def _emit(self, queue: _Queue, event: str, job: Job, error: Optional[BaseException]) -> None:
        for listener in list(queue.listeners[event]):
            try:
                await listener(job, error)
            except Exception:
                logger.exception(f"{event} listener on {queue.name} raised for job {job.id}")

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    async def cancel(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            return False
        queue = self._queues.get(job.queue_name)
        if queue is None:
            return False

        if queue.waiting.pop(job_id, None) is None:
            if queue.delayed.pop(job_id, None) is None:
                return False
            timer = queue.timers.pop(job_id, None)
            if timer is not None:
                timer.cancel()

        job.state = JobState.cancelled
        job.finished_at = time.time()
        self._retain(queue.failed_ids, job_id, self._keep_failed)
        logger.info(f"Job {job_id} on {queue.name} cancelled")
        await self._emit(queue, "cancelled", job, None)
        return True

    def get_counts(self, name: str) -> QueueCounts:
        queue = self._queue(name)
        return QueueCounts(
            waiting=len(queue.waiting),
            active=len(queue.active),
            completed=queue.completed_total,
            failed=queue.failed_total,
            delayed=len(queue.delayed),
            paused=queue.paused,
        )

    def pause(self, name: str) -> None:
        self._queue(name).paused = True
        logger.info(f"Queue {name} paused")

    def resume(self, name: str) -> None:
        queue = self._queue(name)
        queue.paused = False
        queue.ready.set()
        logger.info(f"Queue {name} resumed")

    def on(self, name: str, event: str, listener: JobListener) -> None:
        if event not in JOB_EVENTS:
            raise ValueError(f"Unknown job event {event}")
        self._queue(name).listeners[event].append(listener)

    async def close_queue(self, name: str) -> None:
        queue = self._queues.get(name)
        if queue is None:
            return

        # Pending jobs are dropped; listeners see them as cancelled
        for job_id in list(queue.waiting) + list(queue.delayed):
            await self.cancel(job_id)

        for worker in queue.workers:
            worker.cancel()
        await asyncio.gather(*queue.workers, return_exceptions=True)
        queue.workers.clear()
        del self._queues[name]
        logger.info(f"Queue {name} closed")

    async def ping(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        for name in list(self._queues):
            await self.close_queue(name)
        self._closed = True
