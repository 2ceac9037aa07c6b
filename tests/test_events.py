from __future__ import annotations

from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from app.domain.models import EventEnvelope, EventRecord
from app.infra import events
from app.infra.events import EventBus, topic_matches


def test_event_bus_publish_and_subscribe() -> None:
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)

    bus = EventBus()
    seen: list[str] = []
    everything: list[str] = []

    def handler(event: EventEnvelope) -> None:
        seen.append(event.event_id)

    bus.subscribe("attachment.photo.analyzed", handler)
    bus.subscribe("*", lambda event: everything.append(event.event_type))
    event = EventEnvelope(
        event_type="attachment.photo.analyzed",
        tenant_id="category-auto",
        payload={"photo_id": "photo-1", "verdict": "warning"},
    )

    with Session(engine) as session:
        bus.publish(event, session=session)
        session.commit()

    with Session(engine) as session:
        stored = session.exec(select(EventRecord)).all()

    assert len(stored) == 1
    assert stored[0].event_id == event.event_id
    assert stored[0].payload == {"photo_id": "photo-1", "verdict": "warning"}
    assert seen == [event.event_id]
    assert everything == ["attachment.photo.analyzed"]


def test_unsubscribed_handler_is_not_called() -> None:
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)

    bus = EventBus()
    seen: list[str] = []

    def handler(event: EventEnvelope) -> None:
        seen.append(event.event_type)

    bus.subscribe("inspection.completed", handler)
    bus.unsubscribe("inspection.completed", handler)
    bus.unsubscribe("inspection.never-subscribed", handler)

    with Session(engine) as session:
        bus.publish(
            EventEnvelope(event_type="inspection.completed", tenant_id="category-auto", payload={}),
            session=session,
        )
        session.commit()

    assert seen == []


@pytest.mark.parametrize(
    ("pattern", "event_type", "expected"),
    [
        ("*", "inspection.created", True),
        ("inspection.*", "inspection.step.saved", True),
        ("inspection.*", "attachment.photo.attached", False),
        ("inspection.created", "inspection.created", True),
        ("inspection.created", "inspection.completed", False),
    ],
)
def test_topic_matching(pattern: str, event_type: str, expected: bool) -> None:
    assert topic_matches(pattern, event_type) is expected


def test_history_is_scoped_to_tenant_and_pattern(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'events.db'}")
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(events, "engine", engine)

    bus = EventBus()
    inspection_events: list[str] = []
    bus.subscribe("inspection.*", lambda event: inspection_events.append(event.event_type))

    bus.publish_dict("inspection.created", "category-auto", {"inspection_id": "i1"}, actor_id="inspector-1")
    bus.publish_dict("attachment.photo.attached", "category-auto", {"inspection_id": "i1"})
    bus.publish_dict("inspection.created", "category-home", {"inspection_id": "i2"})

    assert inspection_events == ["inspection.created", "inspection.created"]
    history = bus.history("category-auto", "inspection.*")
    assert [row.payload for row in history] == [{"inspection_id": "i1"}]
    assert history[0].actor_id == "inspector-1"
    assert len(bus.history("category-auto")) == 2
