from __future__ import annotations

import logging
import os
from functools import lru_cache

from redis import Redis, RedisError

REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
ANALYSIS_PENDING_TTL_SECONDS = int(os.getenv("ANALYSIS_PENDING_TTL_SECONDS", "300"))

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    return Redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=2)


def check_redis_ready() -> bool:
    try:
        return bool(get_redis().ping())
    except Exception:
        return False


class RedisAnalysisTracker:
    """In-flight analysis markers shared by every worker process.

    Each marker expires on its own so a crashed worker cannot leave an
    attachment reported as pending forever.
    """

    def __init__(self, client: Redis | None = None, ttl_seconds: int = ANALYSIS_PENDING_TTL_SECONDS) -> None:
        self._client = client or get_redis()
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def _key(kind: str, attachment_id: str) -> str:
        return f"analysis:pending:{kind}:{attachment_id}"

    def start(self, kind: str, attachment_id: str) -> None:
        try:
            self._client.set(self._key(kind, attachment_id), "1", ex=self._ttl_seconds)
        except RedisError as exc:
            logger.warning("pending mark for %s %s not stored: %s", kind, attachment_id, exc)

    def finish(self, kind: str, attachment_id: str) -> None:
        try:
            self._client.delete(self._key(kind, attachment_id))
        except RedisError as exc:
            logger.warning("pending mark for %s %s not cleared: %s", kind, attachment_id, exc)

    def is_pending(self, kind: str, attachment_id: str) -> bool:
        # An unreachable redis reads as "nothing pending".
        try:
            return bool(self._client.exists(self._key(kind, attachment_id)))
        except RedisError as exc:
            logger.warning("pending mark for %s %s unreadable: %s", kind, attachment_id, exc)
            return False
