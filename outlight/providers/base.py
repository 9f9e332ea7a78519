"""Base classes for generation providers.

Providers come in two shapes. A synchronous provider answers one call with
the artifact. An asynchronous provider creates a task and is then polled by
id until the task reaches a terminal state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Union

import httpx

from outlight.schemas.job import Failure, JobOutcome, JobRequest
from outlight.services.polling import Resolution, StatusFetch


class StatusFetchError(ValueError):
    """A status query came back with an error envelope."""


@dataclass(frozen=True)
class TaskHandle:
    """Provider-issued task id with its bound status fetch."""

    task_id: str
    fetch: StatusFetch


def response_json(response: httpx.Response) -> Dict[str, Any]:
    """Parse a JSON object body, or return an empty dict."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class BaseProvider(ABC):
    """Common attributes of every provider."""

    #: Human-readable name used in messages
    label: str = "provider"

    def needs_reference(self, request: JobRequest) -> bool:
        """Whether the request must carry a reference asset URL."""
        return True

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are present."""


class SyncProvider(BaseProvider):
    """Provider answering a single call with the artifact."""

    @abstractmethod
    async def generate(self, client: httpx.AsyncClient, request: JobRequest) -> JobOutcome:
        """Make the call and extract the artifact."""


class AsyncProvider(BaseProvider):
    """Provider exposing create-task then poll-by-id."""

    #: Seconds allowed for a task to reach a terminal state
    deadline: float = 180.0

    @abstractmethod
    async def create(
        self, client: httpx.AsyncClient, request: JobRequest
    ) -> Union[TaskHandle, Failure]:
        """Create the task; a Failure when the provider rejects it."""

    @abstractmethod
    def resolve(self, raw: Any) -> Resolution:
        """Classify a raw status as pending, success or failure."""
