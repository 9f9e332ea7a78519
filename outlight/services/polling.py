"""Polling engine for create/poll style providers.

A provider creates a task and then exposes its status by id. The engine
fetches that status at a fixed cadence until the provider reports a terminal
state, the deadline passes, the run is cancelled, or a fetch fails. Each task
gets its own ``poll`` call; nothing is shared between calls.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

import httpx

from outlight.schemas.job import Failure, JobOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pending:
    """Non-terminal classification; ``state`` is the provider's raw label."""

    state: str = "waiting"


Resolution = Union[JobOutcome, Pending]

StatusFetch = Callable[[], Awaitable[Any]]
Resolver = Callable[[Any], Resolution]


async def poll(
    status_fetch: StatusFetch,
    resolve: Resolver,
    deadline: float,
    interval: float,
    cancel_event: asyncio.Event,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> JobOutcome:
    """
    Wait for an asynchronous task to reach a terminal state.

    Args:
        status_fetch: Coroutine function returning the raw task status
        resolve: Classifies a raw status as Pending, Success or Failure
        deadline: Seconds allowed before giving up
        interval: Seconds to sleep between fetches
        cancel_event: Run cancellation signal
        clock: Monotonic time source (injectable for tests)
        sleep: Sleep coroutine (injectable for tests)

    Returns:
        Success with the artifact, or Failure for cancellation, timeout,
        fetch error or a provider-reported failure
    """
    started = clock()
    last_state = "waiting"

    while True:
        if cancel_event.is_set():
            return Failure(message="cancelled")

        if clock() - started >= deadline:
            logger.warning(f"Polling timed out after {deadline}s (last state: {last_state})")
            return Failure(message=f"timed out, last state: {last_state}")

        await sleep(interval)

        if cancel_event.is_set():
            return Failure(message="cancelled")

        try:
            raw = await status_fetch()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Status fetch failed: {e}")
            return Failure(message=str(e) or e.__class__.__name__)

        result = resolve(raw)
        if isinstance(result, Pending):
            if result.state != last_state:
                logger.info(f"Task state: {result.state}")
            last_state = result.state
            continue

        return result
