"""Run registry: the bounded set of live and recent runs."""

import asyncio
import itertools
import logging
import re
import uuid
from typing import Any, Dict, Iterable, List, Optional

from outlight.config import settings
from outlight.schemas.job import JobRequest
from outlight.services.errors import PreconditionError, RunNotFound
from outlight.services.job_client import JobClient
from outlight.services.runs import Run
from outlight.services.worker_pool import WorkerPool

logger = logging.getLogger(__name__)

_ORDINAL = re.compile(r"\d+")


def normalize_batch(prompts: Iterable[str]) -> List[str]:
    """Strip prompts and drop blank ones, keeping order and duplicates."""
    return [p.strip() for p in prompts if p and p.strip()]


class RunRegistry:
    """Holds at most ``max_runs`` runs, evicting the oldest to admit a new one."""

    def __init__(self, job_client: Optional[JobClient] = None, max_runs: Optional[int] = None):
        """
        Initialize the registry.

        Args:
            job_client: Client shared by every run's worker pool
            max_runs: Capacity (defaults to settings.MAX_RUNS)
        """
        self.job_client = job_client or JobClient()
        self.max_runs = settings.MAX_RUNS if max_runs is None else max_runs
        self.active_run_id: Optional[uuid.UUID] = None
        self._runs: Dict[uuid.UUID, Run] = {}
        self._tasks: Dict[uuid.UUID, asyncio.Task] = {}
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._runs)

    def __contains__(self, run_id: uuid.UUID) -> bool:
        return run_id in self._runs

    def _next_name(self) -> str:
        ordinals = [
            int(m.group()) for m in (_ORDINAL.search(r.name) for r in self._runs.values()) if m
        ]
        return f"Run #{max(ordinals, default=0) + 1}"

    def _check_provider(self, provider: str, reference_url: Optional[str], prompt: str) -> None:
        handler = self.job_client.providers.get(provider)
        if handler is None:
            raise PreconditionError(f"Unknown provider: {provider}")
        probe = JobRequest(provider=provider, reference_url=reference_url, prompt=prompt)
        if handler.needs_reference(probe) and not (reference_url or "").strip():
            raise PreconditionError("Reference image URL required")

    def _evict_oldest(self) -> Run:
        oldest = min(self._runs.values(), key=lambda r: (r.created_at, r.sequence))
        oldest.cancel()
        del self._runs[oldest.run_id]
        if self.active_run_id == oldest.run_id:
            self.active_run_id = None
        logger.info(f"Evicted {oldest.name} ({oldest.run_id}) to admit a new run")
        return oldest

    def submit(
        self,
        prompts: Iterable[str],
        provider: str,
        reference_url: Optional[str],
        options: Optional[Dict[str, Any]] = None,
        concurrency: int = 1,
    ) -> Run:
        """
        Create a run and start it in the background.

        Must be called from a running event loop.

        Raises:
            PreconditionError: Empty batch, unknown provider or missing reference
        """
        batch = normalize_batch(prompts)
        if not batch:
            raise PreconditionError("At least one prompt is required")
        self._check_provider(provider, reference_url, batch[0])

        loop = asyncio.get_running_loop()

        while len(self._runs) >= self.max_runs:
            self._evict_oldest()

        run = Run(
            batch,
            provider,
            reference_url.strip() if reference_url else None,
            options=options,
            concurrency=concurrency,
            name=self._next_name(),
            sequence=next(self._sequence),
        )
        self._runs[run.run_id] = run
        self.active_run_id = run.run_id

        pool = WorkerPool(self.job_client)
        task = loop.create_task(run.execute(pool), name=f"run-{run.run_id}")
        self._tasks[run.run_id] = task
        task.add_done_callback(lambda _t, run_id=run.run_id: self._tasks.pop(run_id, None))

        logger.info(f"Created {run.name} ({run.run_id}) with {run.total} prompts via {provider}")
        return run

    def get(self, run_id: uuid.UUID) -> Run:
        """Raises RunNotFound for unknown ids."""
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFound(str(run_id))
        return run

    def list_runs(self) -> List[Run]:
        """Runs in creation order."""
        return list(self._runs.values())

    def cancel(self, run_id: uuid.UUID) -> Run:
        """Cancel a run; a no-op when it already finished."""
        run = self.get(run_id)
        if run.cancel():
            logger.info(f"Cancelled {run.name} ({run.run_id})")
        return run

    def delete(self, run_id: uuid.UUID) -> None:
        """Remove a run, cancelling it first if still running."""
        run = self.get(run_id)
        run.cancel()
        del self._runs[run_id]
        if self.active_run_id == run_id:
            self.active_run_id = next(iter(self._runs), None)
        logger.info(f"Deleted {run.name} ({run_id})")

    def activate(self, run_id: uuid.UUID) -> Run:
        """Select a run for display."""
        run = self.get(run_id)
        self.active_run_id = run_id
        return run

    async def wait(self, run_id: uuid.UUID) -> None:
        """Wait for a run's worker pool to drain, registered or not."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every run and wait for the worker pools to exit."""
        for run in self._runs.values():
            run.cancel()
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Run registry stopped ({len(tasks)} pools drained)")
