"""Per-controller bounded worker pool for interface statistics jobs."""

from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Iterable, Optional

from acipoll.fetcher.barrier import CompletionBarrier
from acipoll.models.data_models import QueueStats, StatJob
from acipoll.models.errors import NetworkError
from acipoll.monitoring.logger import StructuredLogger

JobHandler = Callable[[StatJob], Awaitable[Optional[NetworkError]]]


class BoundedJobQueue:
    """
    Drains StatJobs with at most K requests in flight per controller.

    Each controller gets its own queue and its own set of exactly K workers.
    A worker pops a job, awaits the handler, then pops the next one whatever
    the outcome; popping an empty queue ends the worker. Every job is
    therefore attempted exactly once and never re-enqueued.

    The handler returns None on success or the NetworkError that made the
    job contribute nothing. Unexpected exceptions are logged and counted as
    failures so the worker keeps draining.
    """

    def __init__(self, concurrency: int = 10, logger: Optional[StructuredLogger] = None):
        """
        Initialize queue.

        Args:
            concurrency: Workers (and therefore in-flight requests) per controller
            logger: Optional structured logger
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got: {concurrency}")
        self.concurrency = concurrency
        self.logger = logger
        self._queues: Dict[str, Deque[StatJob]] = {}
        self._stats: Dict[str, QueueStats] = {}
        self._in_flight: Dict[str, int] = {}

    def add(self, job: StatJob) -> None:
        """Enqueue one job on its controller's queue."""
        if job.controller not in self._queues:
            self._queues[job.controller] = deque()
            self._stats[job.controller] = QueueStats(controller=job.controller)
            self._in_flight[job.controller] = 0
        self._queues[job.controller].append(job)
        self._stats[job.controller].scheduled += 1

    def extend(self, jobs: Iterable[StatJob]) -> None:
        for job in jobs:
            self.add(job)

    def pending(self, controller: str) -> int:
        """Jobs not yet popped for a controller."""
        return len(self._queues.get(controller, ()))

    def in_flight(self, controller: str) -> int:
        return self._in_flight.get(controller, 0)

    async def drain(self, handler: JobHandler) -> Dict[str, QueueStats]:
        """
        Run K workers per controller until every queue is empty.

        Args:
            handler: Coroutine function processing one job

        Returns:
            Per-controller queue statistics
        """
        barrier = CompletionBarrier("stat-jobs", logger=self.logger)

        for controller in self._queues:
            for worker_id in range(self.concurrency):
                barrier.spawn(
                    self._worker(controller, handler),
                    label=f"{controller}/worker-{worker_id}"
                )

        await barrier.wait()

        if self.logger:
            for stats in self._stats.values():
                self.logger.queue_drained(
                    controller=stats.controller,
                    attempted=stats.attempted,
                    failed=stats.failed,
                    max_in_flight=stats.max_in_flight
                )

        return dict(self._stats)

    async def _worker(self, controller: str, handler: JobHandler) -> None:
        queue = self._queues[controller]
        stats = self._stats[controller]

        while queue:
            job = queue.popleft()
            stats.attempted += 1
            self._in_flight[controller] += 1
            stats.max_in_flight = max(stats.max_in_flight, self._in_flight[controller])
            try:
                error = await handler(job)
            except Exception as e:
                error = NetworkError(f"unexpected {e.__class__.__name__}: {e}")
            finally:
                self._in_flight[controller] -= 1

            if error is not None:
                stats.failed += 1
                if self.logger:
                    self.logger.job_failed(
                        controller=job.controller,
                        node=job.node_id,
                        interface=job.interface_id,
                        direction=job.direction.value,
                        error=str(error)
                    )
