from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from sqlmodel import Session, col, select

from app.domain.models import EventEnvelope, EventRecord
from app.infra.db import engine

EventHandler = Callable[[EventEnvelope], None]

logger = logging.getLogger(__name__)


def topic_matches(pattern: str, event_type: str) -> bool:
    """``*`` matches everything, ``inspection.*`` matches every inspection event."""
    if pattern == "*":
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return pattern == event_type


class EventBus:
    """Persists inspection lifecycle events and fans them out to in-process handlers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._subscribers[pattern].append(handler)

    def unsubscribe(self, pattern: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(pattern)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def _handlers_for(self, event_type: str) -> list[EventHandler]:
        matched: list[EventHandler] = []
        for pattern, handlers in self._subscribers.items():
            if topic_matches(pattern, event_type):
                matched.extend(handlers)
        return matched

    def publish(self, event: EventEnvelope, session: Session | None = None) -> None:
        record = EventRecord.model_validate(event.model_dump())
        if session is not None:
            session.add(record)
        else:
            with Session(engine) as owned:
                owned.add(record)
                owned.commit()

        logger.debug("event %s published for tenant %s", event.event_type, event.tenant_id)
        for handler in self._handlers_for(event.event_type):
            handler(event)

    def publish_dict(
        self,
        event_type: str,
        tenant_id: str,
        payload: dict[str, Any],
        *,
        actor_id: str | None = None,
        correlation_id: str | None = None,
    ) -> EventEnvelope:
        event = EventEnvelope(
            event_type=event_type,
            tenant_id=tenant_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            payload=payload,
        )
        self.publish(event)
        return event

    def history(self, tenant_id: str, pattern: str = "*", limit: int = 100) -> list[EventRecord]:
        """Return the newest stored events of a category, filtered by topic pattern."""
        with Session(engine) as session:
            statement = (
                select(EventRecord)
                .where(EventRecord.tenant_id == tenant_id)
                .order_by(col(EventRecord.ts).desc())
            )
            rows = list(session.exec(statement).all())
        return [row for row in rows if topic_matches(pattern, row.event_type)][:limit]


event_bus = EventBus()
