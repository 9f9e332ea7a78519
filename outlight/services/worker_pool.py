"""Worker pool draining a prompt batch with bounded concurrency."""

import asyncio
import itertools
import logging
from typing import Callable, Optional, Sequence

from outlight.config import settings
from outlight.schemas.job import JobOutcome, JobRequest
from outlight.services.job_client import JobClient

logger = logging.getLogger(__name__)

JobFactory = Callable[[str], JobRequest]
OutcomeHandler = Callable[[int, str, JobOutcome], None]


def clamp_concurrency(requested: int, ceiling: Optional[int] = None) -> int:
    """Number of workers to spawn: at least 1, at most the ceiling."""
    ceiling = settings.MAX_CONCURRENCY if ceiling is None else ceiling
    return min(max(requested, 1), ceiling)


class WorkerPool:
    """Runs one batch with up to N workers pulling from a shared cursor.

    A pool instance serves a single ``execute`` call; its cursor is never
    reset or shared with another batch.
    """

    def __init__(self, job_client: JobClient, max_concurrency: Optional[int] = None):
        """Initialize the pool."""
        self.job_client = job_client
        self.max_concurrency = settings.MAX_CONCURRENCY if max_concurrency is None else max_concurrency
        self._cursor = itertools.count()
        self._stop = asyncio.Event()
        self._used = False

    def _claim(self, total: int) -> Optional[int]:
        # next() on itertools.count is atomic; no await between claim and use
        index = next(self._cursor)
        return index if index < total else None

    async def execute(
        self,
        batch: Sequence[str],
        concurrency: int,
        job_factory: JobFactory,
        on_outcome: OutcomeHandler,
        cancel_event: asyncio.Event,
    ) -> None:
        """
        Drain the batch.

        Args:
            batch: Prompts in submission order
            concurrency: Requested worker count (clamped to 1..max)
            job_factory: Builds the JobRequest for a prompt
            on_outcome: Called with (index, prompt, outcome) in arrival order
            cancel_event: Run cancellation signal, checked before every claim

        Raises:
            Exception: The first fatal error a worker hit (transport failure or
                cancellation of an in-flight call), after all workers exited
        """
        if self._used:
            raise RuntimeError("WorkerPool instances run a single batch")
        self._used = True

        total = len(batch)
        workers = clamp_concurrency(concurrency, self.max_concurrency)

        async def worker(worker_id: int) -> None:
            while not cancel_event.is_set() and not self._stop.is_set():
                index = self._claim(total)
                if index is None:
                    return

                prompt = batch[index]
                logger.info(f"Worker {worker_id} processing prompt {index + 1}/{total}")
                try:
                    outcome = await self.job_client.run(job_factory(prompt), cancel_event)
                except Exception as e:
                    logger.error(f"Worker {worker_id} stopped on prompt {index + 1}: {e}")
                    self._stop.set()
                    raise

                on_outcome(index, prompt, outcome)

        results = await asyncio.gather(
            *(worker(i) for i in range(workers)),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException):
                raise result
