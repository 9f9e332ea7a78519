"""Job client: one provider call (or task) for one prompt.

Single attempt per call; retrying a prompt is up to the caller.
"""

import asyncio
import contextlib
import logging
from typing import Awaitable, Dict, Optional, TypeVar

import httpx

from outlight.config import settings
from outlight.providers.base import AsyncProvider, BaseProvider, SyncProvider
from outlight.providers.gemini import GeminiImageProvider
from outlight.providers.kie import IMAGE_TO_VIDEO, TEXT_TO_VIDEO, KlingProvider, SeedreamProvider
from outlight.schemas.job import Failure, JobOutcome, JobRequest
from outlight.services.errors import JobCancelled, ProviderTransportError
from outlight.services.polling import poll

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_providers() -> Dict[str, BaseProvider]:
    """Provider registry keyed by the model id the caller submits."""
    return {
        "nanobanana-v1": GeminiImageProvider(),
        "seedream-v4-edit": SeedreamProvider(),
        "kling-v2-5-image-to-video": KlingProvider(mode=IMAGE_TO_VIDEO),
        "kling-v2-5-text-to-video": KlingProvider(mode=TEXT_TO_VIDEO),
    }


async def until_cancelled(call: Awaitable[T], cancel_event: asyncio.Event) -> T:
    """
    Await a call, abandoning it if the cancel event fires first.

    Raises:
        JobCancelled: When the event fired before the call finished
    """
    task = asyncio.ensure_future(call)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    if task.cancelled():
        raise JobCancelled("Run cancelled")
    return task.result()


class JobClient:
    """Runs a JobRequest against the provider it names."""

    def __init__(
        self,
        providers: Optional[Dict[str, BaseProvider]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval: Optional[float] = None,
        poller=poll,
    ):
        """
        Initialize the job client.

        Args:
            providers: Provider registry (defaults to the configured providers)
            transport: Optional httpx transport (tests use MockTransport)
            poll_interval: Seconds between status fetches
            poller: Polling function, replaceable for tests
        """
        self.providers = default_providers() if providers is None else providers
        self.transport = transport
        self.poll_interval = settings.POLL_INTERVAL if poll_interval is None else poll_interval
        self.poller = poller

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, transport=self.transport)

    async def run(self, request: JobRequest, cancel_event: asyncio.Event) -> JobOutcome:
        """
        Produce one artifact for one prompt.

        Args:
            request: The job to run
            cancel_event: Run cancellation signal

        Returns:
            Success or Failure

        Raises:
            ProviderTransportError: The network layer failed on the outbound call
            JobCancelled: The run was cancelled while the call was in flight
        """
        provider = self.providers.get(request.provider)
        if provider is None:
            return Failure(message=f"Unknown provider: {request.provider}")
        if provider.needs_reference(request) and not (request.reference_url or "").strip():
            return Failure(message="Reference image URL required")
        if not provider.is_configured():
            return Failure(message=f"{provider.label} API key missing")

        async with self._client() as client:
            try:
                if isinstance(provider, SyncProvider):
                    return await until_cancelled(provider.generate(client, request), cancel_event)
                if isinstance(provider, AsyncProvider):
                    return await self._run_task(provider, client, request, cancel_event)
            except httpx.TransportError as e:
                logger.error(f"{provider.label} transport error: {e}")
                raise ProviderTransportError(str(e) or e.__class__.__name__) from e
            except (httpx.HTTPError, ValueError) as e:
                return Failure(message=str(e) or e.__class__.__name__)
            except (JobCancelled, ProviderTransportError):
                raise
            except Exception as e:
                logger.warning(f"{provider.label} returned an unusable response: {e!r}")
                return Failure(
                    message=f"Malformed {provider.label} response",
                    diagnostic={"error": e.__class__.__name__, "detail": str(e)},
                )

        return Failure(message=f"Unsupported provider type: {provider.__class__.__name__}")

    async def _run_task(
        self,
        provider: AsyncProvider,
        client: httpx.AsyncClient,
        request: JobRequest,
        cancel_event: asyncio.Event,
    ) -> JobOutcome:
        created = await until_cancelled(provider.create(client, request), cancel_event)
        if isinstance(created, Failure):
            return created

        outcome = await self.poller(
            created.fetch,
            provider.resolve,
            provider.deadline,
            self.poll_interval,
            cancel_event,
        )
        logger.info(f"{provider.label} task {created.task_id} finished: {outcome.kind}")
        return outcome
