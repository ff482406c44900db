from datetime import date, time
from decimal import Decimal
import logging

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from kyoture.core.errors import PersistenceConflictError
from kyoture.db.base import Base
from kyoture.db.models.event import Event
from kyoture.db.models.event_link import EventLink
from kyoture.db.models.price import Price
from kyoture.db.models.schedule import Schedule
from kyoture.db.models.venue import Venue
from kyoture.services.ingest.sources import get_source
from kyoture.services.normalize.normalizer import normalize_record
from kyoture.services.persist.children import attach_featured_image, upsert_image
from kyoture.services.persist.events import persist_canonical_event

TODAY = date(2025, 3, 10)


def _make_session():
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, future=True)()


def _canonical(**overrides):
    record = {
        "title": "Jazz Night",
        "date_start": "2025-03-01",
        "date_end": "2025-03-01",
        "venue": "Venue : Blue Note",
        "prices": [{"price_tier": "General", "amount": "3000"}],
    }
    record.update(overrides)
    return normalize_record(record, get_source("kyoto_gattaca")).events[0]


def test_jazz_night_persists_event_venue_and_price() -> None:
    session = _make_session()

    persisted = persist_canonical_event(session, _canonical(), TODAY)
    session.commit()

    event = session.get(Event, persisted.event_id)
    assert persisted.created is True
    assert event.title == "Jazz Night"
    assert event.venue.name == "Blue Note"
    prices = session.scalars(select(Price)).all()
    assert [(p.price_tier, p.amount, p.currency) for p in prices] == [("General", Decimal("3000.00"), "JPY")]


def test_reingest_updates_price_instead_of_inserting() -> None:
    session = _make_session()
    first = persist_canonical_event(session, _canonical(), TODAY)
    session.commit()

    second = persist_canonical_event(
        session,
        _canonical(prices=[{"price_tier": "General", "amount": "3500"}]),
        TODAY,
    )
    session.commit()

    assert second.event_id == first.event_id
    assert second.created is False
    assert len(session.scalars(select(Event)).all()) == 1
    assert len(session.scalars(select(Venue)).all()) == 1
    prices = session.scalars(select(Price)).all()
    assert len(prices) == 1
    assert prices[0].amount == Decimal("3500.00")


def test_upsert_is_idempotent_for_all_children() -> None:
    session = _make_session()
    canonical = _canonical(
        schedule=[{"date": "2025-03-01", "time_start": "19:00"}],
        event_link="https://example.com/jazz",
        categories=["Music"],
        tags=["Jazz"],
    )

    for _ in range(3):
        persisted = persist_canonical_event(session, canonical, TODAY)
        upsert_image(session, persisted.event_id, "/images/events/kyoto_gattaca/abc.jpg", is_featured=True)
        session.commit()

    event = session.get(Event, persisted.event_id)
    assert len(session.scalars(select(Schedule)).all()) == 1
    assert len(session.scalars(select(EventLink)).all()) == 1
    assert len(event.images) == 1
    assert [c.name for c in event.categories] == ["Music"]
    assert event.links[0].link_type == "primary"


def test_schedule_status_and_time_end_left_empty() -> None:
    session = _make_session()
    canonical = _canonical(
        date_end="2025-03-20",
        schedule=[
            {"date": "2025-03-01", "time_start": "19:00"},
            {"date": "2025-03-20", "time_start": "18:00", "time_end": "21:00"},
        ],
    )

    persist_canonical_event(session, canonical, TODAY)
    session.commit()

    rows = {row.date: row for row in session.scalars(select(Schedule))}
    assert rows[date(2025, 3, 1)].status == "ended"
    assert rows[date(2025, 3, 1)].time_end is None
    assert rows[date(2025, 3, 20)].status == "upcoming"
    assert rows[date(2025, 3, 20)].time_end == time(21, 0)


def test_duplicate_match_refreshes_descriptive_fields() -> None:
    session = _make_session()
    persist_canonical_event(session, _canonical(description="Old copy"), TODAY)
    session.commit()

    refreshed = persist_canonical_event(session, _canonical(description="New copy", date_end="2025-03-02"), TODAY)
    session.commit()

    event = session.get(Event, refreshed.event_id)
    assert event.description == "New copy"
    assert event.date_end == date(2025, 3, 2)
    assert "description" in refreshed.updated_fields


def test_constraint_violation_becomes_persistence_conflict(monkeypatch, caplog) -> None:
    caplog.set_level(logging.ERROR)
    session = _make_session()
    persist_canonical_event(session, _canonical(), TODAY)
    session.commit()

    # Force a second insert of the same natural key.
    monkeypatch.setattr("kyoture.services.persist.events.find_event", lambda *args, **kwargs: None)
    with pytest.raises(PersistenceConflictError) as exc_info:
        persist_canonical_event(session, _canonical(), TODAY)

    assert exc_info.value.context["title"] == "Jazz Night"
    assert any("Constraint violation" in rec.message for rec in caplog.records)


def test_attach_featured_image_keeps_a_single_featured_row() -> None:
    session = _make_session()
    persisted = persist_canonical_event(session, _canonical(), TODAY)
    attach_featured_image(session, persisted.event_id, "/images/events/kyoto_gattaca/placeholder_abc.jpg")
    attach_featured_image(session, persisted.event_id, "/images/events/kyoto_gattaca/old.jpg")
    attach_featured_image(session, persisted.event_id, "/images/events/kyoto_gattaca/new.jpg", alt_text="Jazz Night")
    session.commit()

    rows = {row.image_url.rsplit("/", 1)[-1]: row.is_featured for row in session.get(Event, persisted.event_id).images}
    assert rows == {"old.jpg": False, "new.jpg": True}
