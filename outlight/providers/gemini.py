"""Gemini image edit provider (synchronous)."""

import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from outlight.config import settings
from outlight.providers.base import SyncProvider, response_json
from outlight.schemas.job import Failure, JobOutcome, JobRequest, Success
from outlight.services.extraction import Extractor, dig, first_match

logger = logging.getLogger(__name__)

IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"

EXTENSION_MIME = [
    (re.compile(r"\.png(\?|$)", re.I), "image/png"),
    (re.compile(r"\.jpe?g(\?|$)", re.I), "image/jpeg"),
    (re.compile(r"\.webp(\?|$)", re.I), "image/webp"),
]


def guess_mime(url: str, content_type: Optional[str]) -> str:
    """Trust an image content type, otherwise guess from the URL extension."""
    if content_type and content_type.startswith("image/"):
        return content_type.split(";")[0].strip()
    for pattern, mime in EXTENSION_MIME:
        if pattern.search(url):
            return mime
    return "image/png"


class RetryableFetchError(httpx.HTTPStatusError):
    """Server-side error while fetching the reference image."""


@retry(
    stop=stop_after_attempt(settings.REFERENCE_FETCH_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type((httpx.TransportError, RetryableFetchError)),
    reraise=True,
)
async def fetch_image_as_base64(client: httpx.AsyncClient, url: str) -> Tuple[str, str]:
    """
    Download the reference image and inline it.

    Returns:
        (mime type, base64 payload)

    Raises:
        httpx.HTTPStatusError: On a non-success response
    """
    response = await client.get(
        url,
        follow_redirects=True,
        headers={"User-Agent": "Outlight/1.0 (+image-fetch)", "Accept": IMAGE_ACCEPT},
    )
    if response.status_code >= 500:
        raise RetryableFetchError(
            f"Failed to fetch image: {response.status_code}",
            request=response.request,
            response=response,
        )
    if not response.is_success:
        raise httpx.HTTPStatusError(
            f"Failed to fetch image: {response.status_code} {response.text[:200]}",
            request=response.request,
            response=response,
        )

    mime = guess_mime(url, response.headers.get("content-type"))
    return mime, base64.b64encode(response.content).decode("ascii")


def _parts_find(finder):
    def find(parts: List[Dict[str, Any]]) -> Optional[str]:
        for part in parts:
            if isinstance(part, dict):
                found = finder(part)
                if found:
                    return found
        return None

    return find


def _inline_data(part: Dict[str, Any]) -> Optional[str]:
    data = dig(part, ("inline_data", "data"), ("inlineData", "data"))
    if not data:
        return None
    mime = dig(
        part,
        ("inline_data", "mime_type"),
        ("inlineData", "mime_type"),
        ("inlineData", "mimeType"),
    ) or "image/png"
    return f"data:{mime};base64,{data}"


def _file_uri(part: Dict[str, Any]) -> Optional[str]:
    return dig(part, ("file_data", "file_uri"), ("fileData", "file_uri"), ("fileData", "fileUri"))


def _media(part: Dict[str, Any]) -> Optional[str]:
    media = part.get("media")
    if not isinstance(media, list):
        return None
    for item in media:
        if not isinstance(item, dict):
            continue
        mime = item.get("mimeType") or ""
        if item.get("data") and mime.startswith("image/"):
            return f"data:{mime};base64,{item['data']}"
        if item.get("url"):
            return item["url"]
    return None


def _data_uri(part: Dict[str, Any]) -> Optional[str]:
    uri = part.get("data_uri") or part.get("dataUri")
    if isinstance(uri, str) and uri.startswith("data:image/"):
        return uri
    return None


# Priority order matters: first match wins
GEMINI_EXTRACTORS = [
    Extractor("inline_data", _parts_find(_inline_data)),
    Extractor("file_uri", _parts_find(_file_uri)),
    Extractor("media", _parts_find(_media)),
    Extractor("data_uri", _parts_find(_data_uri)),
]


def extract_gemini_image(body: Dict[str, Any]) -> JobOutcome:
    """Locate the image in a generateContent response."""
    candidates = body.get("candidates")
    if not isinstance(candidates, list):
        candidates = []
    first = candidates[0] if candidates and isinstance(candidates[0], dict) else {}
    finish_reason = first.get("finishReason") or dig(body, ("promptFeedback", "blockReason")) or "n/a"

    if not candidates:
        return Failure(message=f"No candidates (finishReason={finish_reason})")

    parts = dig(first, ("content", "parts")) or []
    match = first_match(GEMINI_EXTRACTORS, parts)
    if match:
        name, artifact = match
        logger.info(f"Gemini image found via {name}")
        return Success(artifact_url=artifact)

    safety = dig(body, ("promptFeedback", "safetyRatings")) or []
    texts = [p.get("text") for p in parts if isinstance(p, dict) and p.get("text")]
    reason = f"No image parts found. finishReason={finish_reason}"
    if safety:
        reason += f" safety={json.dumps(safety)}"
    if texts:
        reason += f' text="{texts[0][:140]}..."'

    return Failure(
        message=reason,
        diagnostic={
            "parts": parts,
            "finishReason": first.get("finishReason"),
            "promptFeedback": body.get("promptFeedback"),
        },
    )


class GeminiImageProvider(SyncProvider):
    """Single-turn image edit: image part first, then the instruction text."""

    label = "Nano Banana"

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None):
        self.api_url = api_url or settings.NANO_BANANA_API_URL
        self.api_key = settings.NANO_BANANA_API_KEY if api_key is None else api_key
        self.auth_header = settings.NANO_BANANA_AUTH_HEADER

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_payload(self, mime: str, data: str, prompt: str, temperature: float) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inline_data": {"mime_type": mime, "data": data}},
                        {
                            "text": (
                                "Edit ONLY the attached image using these instructions.\n"
                                f"Return an IMAGE (not text). Instructions:\n{prompt}"
                            )
                        },
                    ],
                }
            ],
            "generationConfig": {"temperature": temperature},
        }

    async def generate(self, client: httpx.AsyncClient, request: JobRequest) -> JobOutcome:
        try:
            mime, data = await fetch_image_as_base64(client, request.reference_url)
        except httpx.HTTPStatusError as e:
            return Failure(message=str(e))

        payload = self._build_payload(
            mime, data, request.prompt, request_temperature(request.options.get("temperature"))
        )

        response = await client.post(
            self.api_url,
            headers={"Content-Type": "application/json", self.auth_header: self.api_key},
            json=payload,
        )
        body = response_json(response)

        if not response.is_success:
            message = dig(body, ("error", "message")) or f"Gemini request failed ({response.status_code})"
            logger.warning(f"Gemini error {response.status_code}: {message}")
            return Failure(message=message, diagnostic=body or None)

        return extract_gemini_image(body)


def request_temperature(value: Any) -> float:
    """Sampling temperature, 0.6 unless a numeric override is given."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.6
