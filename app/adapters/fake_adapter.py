from __future__ import annotations

import asyncio
import json
from collections import deque
from dataclasses import dataclass, field

from app.adapters.base import AnalysisRequest, AnalysisUnavailableError


@dataclass
class FakeVisionCall:
    mime_type: str
    prompt: str
    size_bytes: int


@dataclass
class FakeVisionAdapter:
    """Scripted stand-in for the vision API.

    Queued responses are returned in order; once the queue is empty the
    default response is used. ``fail`` makes every call unavailable and
    ``delay_seconds`` keeps a call in flight long enough to race it.
    """

    default_response: str = json.dumps({"analysis": "No visible defects.", "verdict": "ok"})
    delay_seconds: float = 0.0
    fail: bool = False
    calls: list[FakeVisionCall] = field(default_factory=list)
    _queued: deque[str] = field(default_factory=deque)

    def queue_response(self, text: str) -> None:
        self._queued.append(text)

    async def analyze(self, request: AnalysisRequest) -> str:
        self.calls.append(
            FakeVisionCall(mime_type=request.mime_type, prompt=request.prompt, size_bytes=len(request.content))
        )
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail:
            raise AnalysisUnavailableError("fake vision adapter configured to fail")
        if self._queued:
            return self._queued.popleft()
        return self.default_response

    async def close(self) -> None:
        return None
