"""KIE task providers (create a task, then poll recordInfo).

Seedream image edits and Kling video generation share the same task API:

- ``POST /api/v1/jobs/createTask`` answers ``{"code": 200, "data": {"taskId": ...}}``
- ``GET /api/v1/jobs/recordInfo?taskId=...`` answers ``data.state`` with
  ``success`` or ``fail`` as the only terminal values, plus ``resultJson``
  (a JSON string holding ``resultUrls``) and ``failMsg``.
"""

import json
import logging
from functools import partial
from typing import Any, Dict, Optional, Union

import httpx

from outlight.config import settings
from outlight.providers.base import AsyncProvider, StatusFetchError, TaskHandle, response_json
from outlight.schemas.job import Failure, JobRequest, Success
from outlight.services.polling import Pending, Resolution

logger = logging.getLogger(__name__)

KIE_SUCCESS = "success"
KIE_FAIL = "fail"

IMAGE_TO_VIDEO = "image-to-video"
TEXT_TO_VIDEO = "text-to-video"


def _envelope_message(body: Dict[str, Any], default: str) -> str:
    return body.get("message") or body.get("msg") or default


class KieTaskProvider(AsyncProvider):
    """Shared create/poll plumbing for KIE-hosted models."""

    label = "KIE"
    model = ""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None):
        self.base_url = (base_url or settings.KIE_API_BASE).rstrip("/")
        self.api_key = settings.KIE_API_KEY if api_key is None else api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_input(self, request: JobRequest) -> Dict[str, Any]:
        """Model-specific ``input`` block of the createTask payload."""
        raise NotImplementedError

    def model_name(self, request: JobRequest) -> str:
        return request.options.get("model") or self.model

    async def create(
        self, client: httpx.AsyncClient, request: JobRequest
    ) -> Union[TaskHandle, Failure]:
        payload = {
            "model": self.model_name(request),
            "callBackUrl": "",
            "input": self.build_input(request),
        }
        response = await client.post(
            f"{self.base_url}/api/v1/jobs/createTask",
            headers=self._headers(),
            json=payload,
        )
        body = response_json(response)

        if not response.is_success or body.get("code") != 200:
            message = _envelope_message(body, f"{self.label} createTask failed ({response.status_code})")
            logger.warning(f"{self.label} createTask rejected: {message}")
            return Failure(message=message, diagnostic=body or None)

        data = body.get("data")
        task_id = data.get("taskId") if isinstance(data, dict) else None
        if not task_id:
            return Failure(message=f"{self.label} taskId missing", diagnostic=body)

        logger.info(f"{self.label} task {task_id} created ({payload['model']})")
        return TaskHandle(task_id=task_id, fetch=partial(self.fetch_status, client, task_id))

    async def fetch_status(self, client: httpx.AsyncClient, task_id: str) -> Dict[str, Any]:
        """
        Query recordInfo for a task.

        Raises:
            httpx.HTTPError: On transport failure
            ValueError: On a non-JSON body or an error envelope
        """
        response = await client.get(
            f"{self.base_url}/api/v1/jobs/recordInfo",
            params={"taskId": task_id},
            headers=self._headers(),
        )
        body = response.json()
        if not isinstance(body, dict):
            raise StatusFetchError(f"{self.label} query returned a malformed body")
        if not response.is_success or body.get("code") != 200:
            raise StatusFetchError(_envelope_message(body, f"{self.label} query failed"))
        return body.get("data") or {}

    def resolve(self, raw: Any) -> Resolution:
        if not isinstance(raw, dict):
            return Failure(message=f"Malformed {self.label} status", diagnostic=raw)
        state = raw.get("state") or "unknown"

        if state == KIE_SUCCESS:
            result = raw.get("resultJson") or "{}"
            try:
                parsed = json.loads(result) if isinstance(result, str) else result
            except ValueError:
                return Failure(message=f"Malformed {self.label} resultJson", diagnostic=raw)

            urls = parsed.get("resultUrls") if isinstance(parsed, dict) else None
            if not isinstance(urls, list) or not urls:
                return Failure(message=f"{self.label} returned no result URLs", diagnostic=raw)
            return Success(artifact_url=urls[0])

        if state == KIE_FAIL:
            return Failure(message=raw.get("failMsg") or f"{self.label} reported failure")

        return Pending(state=state)


class SeedreamProvider(KieTaskProvider):
    """Seedream v4 image edit."""

    label = "Seedream"
    model = "bytedance/seedream-v4-edit"

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None):
        super().__init__(base_url, api_key)
        self.deadline = settings.SEEDREAM_DEADLINE

    def build_input(self, request: JobRequest) -> Dict[str, Any]:
        options = request.options
        return {
            "prompt": request.prompt,
            "image_urls": [request.reference_url],
            "image_size": options.get("image_size") or "square",
            "image_resolution": options.get("image_resolution") or "1K",
            "max_images": options.get("max_images") or 1,
            "seed": options.get("seed"),
        }


class KlingProvider(KieTaskProvider):
    """Kling v2.5 turbo video, image-to-video or text-to-video."""

    label = "Kling"

    MODELS = {
        IMAGE_TO_VIDEO: "kling/v2-5-turbo-image-to-video-pro",
        TEXT_TO_VIDEO: "kling/v2-5-turbo-text-to-video-pro",
    }

    def __init__(
        self,
        mode: str = IMAGE_TO_VIDEO,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        if mode not in self.MODELS:
            raise ValueError(f"Unknown Kling mode: {mode}")
        super().__init__(base_url, api_key)
        self.mode = mode
        self.model = self.MODELS[mode]
        self.deadline = settings.KLING_DEADLINE

    def needs_reference(self, request: JobRequest) -> bool:
        return self.mode == IMAGE_TO_VIDEO

    def build_input(self, request: JobRequest) -> Dict[str, Any]:
        options = request.options
        data: Dict[str, Any] = {
            "prompt": request.prompt,
            "duration": str(options.get("duration") or "5"),
        }
        if self.mode == IMAGE_TO_VIDEO:
            data["image_url"] = request.reference_url
        elif options.get("aspect_ratio"):
            data["aspect_ratio"] = options["aspect_ratio"]

        if options.get("negative_prompt"):
            data["negative_prompt"] = options["negative_prompt"]
        cfg_scale = options.get("cfg_scale")
        if isinstance(cfg_scale, (int, float)) and not isinstance(cfg_scale, bool):
            data["cfg_scale"] = cfg_scale
        return data
