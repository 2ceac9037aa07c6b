from __future__ import annotations

import base64
import logging
import os
from typing import Any

import httpx

from app.adapters.base import AnalysisRequest, AnalysisUnavailableError

VISION_API_BASE_URL = os.getenv("VISION_API_BASE_URL", "https://api.anthropic.com")
VISION_API_KEY = os.getenv("VISION_API_KEY", "")
VISION_API_VERSION = os.getenv("VISION_API_VERSION", "2023-06-01")
VISION_MODEL = os.getenv("VISION_MODEL", "claude-3-5-sonnet-latest")
VISION_TIMEOUT_SECONDS = float(os.getenv("VISION_TIMEOUT_SECONDS", "60"))
VISION_MAX_TOKENS = int(os.getenv("VISION_MAX_TOKENS", "1024"))

DOCUMENT_MIME_TYPES = {"application/pdf"}

logger = logging.getLogger(__name__)


class HttpVisionAdapter:
    """Messages-style multimodal API client.

    Images are sent as image blocks and PDFs as document blocks, followed by
    the prompt text. Only the concatenated text blocks of the reply are
    returned; interpreting them is the caller's job.
    """

    def __init__(
        self,
        *,
        base_url: str = VISION_API_BASE_URL,
        api_key: str = VISION_API_KEY,
        model: str = VISION_MODEL,
        timeout_seconds: float = VISION_TIMEOUT_SECONDS,
        max_tokens: int = VISION_MAX_TOKENS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout_seconds = timeout_seconds
        self._max_tokens = max_tokens
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {
                "anthropic-version": VISION_API_VERSION,
                "content-type": "application/json",
            }
            if self._api_key:
                headers["x-api-key"] = self._api_key
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_seconds,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def _build_body(self, request: AnalysisRequest) -> dict[str, Any]:
        media_type = request.mime_type.split(";")[0].strip().lower()
        block_type = "document" if media_type in DOCUMENT_MIME_TYPES else "image"
        return {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": block_type,
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": base64.b64encode(request.content).decode("ascii"),
                            },
                        },
                        {"type": "text", "text": request.prompt},
                    ],
                }
            ],
        }

    async def analyze(self, request: AnalysisRequest) -> str:
        try:
            response = await self._get_client().post("/v1/messages", json=self._build_body(request))
        except httpx.HTTPError as exc:
            raise AnalysisUnavailableError(f"vision request failed: {exc}") from exc

        if response.status_code // 100 != 2:
            logger.warning("vision api returned %s: %s", response.status_code, response.text[:200])
            raise AnalysisUnavailableError(f"vision api returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise AnalysisUnavailableError("vision api returned a non-JSON body") from exc

        blocks = payload.get("content") if isinstance(payload, dict) else None
        if not isinstance(blocks, list):
            raise AnalysisUnavailableError("vision api response has no content")
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text.strip():
            raise AnalysisUnavailableError("vision api returned empty text")
        return text
