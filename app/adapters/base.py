from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class AnalysisUnavailableError(Exception):
    """The analysis capability could not produce a response."""


@dataclass(frozen=True)
class AnalysisRequest:
    content: bytes
    mime_type: str
    prompt: str


class VisionAdapter(Protocol):
    async def analyze(self, request: AnalysisRequest) -> str: ...

    async def close(self) -> None: ...
