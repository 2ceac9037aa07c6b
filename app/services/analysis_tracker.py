from __future__ import annotations

import os
import threading
from typing import ClassVar, Protocol

from app.infra.redis_state import RedisAnalysisTracker

PHOTO_KIND = "photo"
REPORT_KIND = "report"


class AnalysisTracker(Protocol):
    def start(self, kind: str, attachment_id: str) -> None: ...

    def finish(self, kind: str, attachment_id: str) -> None: ...

    def is_pending(self, kind: str, attachment_id: str) -> bool: ...


class InMemoryAnalysisTracker:
    """Process-local in-flight markers keyed by attachment identity."""

    _pending: ClassVar[set[tuple[str, str]]] = set()
    _lock: ClassVar[threading.RLock] = threading.RLock()

    def start(self, kind: str, attachment_id: str) -> None:
        with self._lock:
            self._pending.add((kind, attachment_id))

    def finish(self, kind: str, attachment_id: str) -> None:
        with self._lock:
            self._pending.discard((kind, attachment_id))

    def is_pending(self, kind: str, attachment_id: str) -> bool:
        with self._lock:
            return (kind, attachment_id) in self._pending

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._pending.clear()


def get_analysis_tracker() -> AnalysisTracker:
    backend = os.getenv("ANALYSIS_TRACKER_BACKEND", "memory").strip().lower()
    if backend == "redis":
        return RedisAnalysisTracker()
    return InMemoryAnalysisTracker()
