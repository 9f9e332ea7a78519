"""Run: one batch execution and its state machine.

A run starts ``running`` and ends in exactly one of ``done``, ``cancelled``
or ``error``. Terminal states latch: whichever transition happens first wins
and later ones are ignored.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from outlight.schemas.job import Failure, JobOutcome, JobRequest
from outlight.schemas.run import OutcomeRecord, Progress, RunDetail, RunSummary
from outlight.services.errors import JobCancelled
from outlight.services.worker_pool import WorkerPool, clamp_concurrency

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Run lifecycle states."""

    RUNNING = "running"
    DONE = "done"
    CANCELLED = "cancelled"
    ERROR = "error"


TERMINAL = frozenset({RunStatus.DONE, RunStatus.CANCELLED, RunStatus.ERROR})


class Run:
    """A prompt batch, its cancellation signal and the outcomes so far."""

    def __init__(
        self,
        prompts: Sequence[str],
        provider: str,
        reference_url: Optional[str],
        options: Optional[Dict[str, Any]] = None,
        concurrency: int = 1,
        name: str = "",
        sequence: int = 0,
    ):
        self.run_id = uuid.uuid4()
        self.name = name or f"Run {self.run_id.hex[:8]}"
        self.sequence = sequence
        self.created_at = datetime.utcnow()

        self.prompts: Tuple[str, ...] = tuple(prompts)
        self.provider = provider
        self.reference_url = reference_url
        self.options = dict(options or {})
        self.concurrency = clamp_concurrency(concurrency)

        self.cancel_event = asyncio.Event()
        self.status = RunStatus.RUNNING
        self.outcomes: List[OutcomeRecord] = []
        self.completed = 0
        self.total = len(self.prompts)
        self.error: Optional[str] = None
        self.diagnostic: Optional[Any] = None

    @property
    def progress(self) -> Tuple[int, int]:
        return self.completed, self.total

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def _transition(self, status: RunStatus) -> bool:
        if self.is_terminal:
            return False
        self.status = status
        logger.info(f"{self.name} ({self.run_id}) -> {status.value}")
        return True

    def job_request(self, prompt: str) -> JobRequest:
        """Build the request for one prompt of this run."""
        return JobRequest(
            provider=self.provider,
            reference_url=self.reference_url,
            prompt=prompt,
            options=self.options,
        )

    def record(self, index: int, prompt: str, outcome: JobOutcome) -> None:
        """Append an outcome and advance progress; failures don't stop the run."""
        self.outcomes.append(OutcomeRecord(index=index, prompt=prompt, outcome=outcome))
        self.completed = min(self.completed + 1, self.total)
        if isinstance(outcome, Failure):
            self.error = outcome.message
            self.diagnostic = outcome.diagnostic

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True if the run moved to cancelled, False if it was already terminal
        """
        if not self._transition(RunStatus.CANCELLED):
            return False
        self.cancel_event.set()
        return True

    async def execute(self, pool: WorkerPool) -> None:
        """Drive the batch through the pool and settle the final status."""
        logger.info(f"{self.name} started: {self.total} prompts, {self.concurrency} workers")
        try:
            await pool.execute(
                self.prompts,
                self.concurrency,
                self.job_request,
                self.record,
                self.cancel_event,
            )
        except asyncio.CancelledError:
            self.cancel()
            raise
        except JobCancelled as e:
            if self._transition(RunStatus.ERROR):
                self.error = str(e)
                self.diagnostic = None
        except Exception as e:
            logger.error(f"{self.name} failed: {e}", exc_info=True)
            if self._transition(RunStatus.ERROR):
                self.error = str(e) or e.__class__.__name__
                self.diagnostic = None
        else:
            self._transition(RunStatus.DONE)

    def summary(self) -> RunSummary:
        return RunSummary(
            run_id=self.run_id,
            name=self.name,
            provider=self.provider,
            status=self.status.value,
            progress=Progress(completed=self.completed, total=self.total),
            created_at=self.created_at,
        )

    def snapshot(self) -> RunDetail:
        """Point-in-time copy of the run state for observers."""
        return RunDetail(
            **self.summary().model_dump(),
            reference_url=self.reference_url,
            concurrency=self.concurrency,
            outcomes=list(self.outcomes),
            error=self.error,
            diagnostic=self.diagnostic,
        )
