from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kyoture.core.errors import PersistenceConflictError
from kyoture.db.models.event import Event
from kyoture.domain.schemas.event import CanonicalEvent
from kyoture.services.persist.associations import sync_categories, sync_tags
from kyoture.services.persist.children import upsert_event_link, upsert_prices, upsert_schedules
from kyoture.services.persist.venues import resolve_venue

logger = logging.getLogger(__name__)

# Refreshed on a duplicate match; title, date_start and venue_id form the key and never change.
MUTABLE_FIELDS = ("organization", "description", "date_end", "address", "external_id")


@dataclass(frozen=True)
class PersistedEvent:
    event_id: UUID
    venue_id: UUID | None
    created: bool
    updated_fields: tuple[str, ...] = ()


def find_event(session: Session, title: str, date_start: date, venue_id: UUID | None) -> Event | None:
    stmt = select(Event).where(Event.title == title, Event.date_start == date_start)
    if venue_id is None:
        stmt = stmt.where(Event.venue_id.is_(None))
    else:
        stmt = stmt.where(Event.venue_id == venue_id)
    return session.scalar(stmt)


def upsert_event(session: Session, canonical: CanonicalEvent, venue_id: UUID | None) -> tuple[Event, bool, tuple[str, ...]]:
    existing = find_event(session, canonical.title, canonical.date_start, venue_id)
    if existing is not None:
        changed = _apply_updates(existing, canonical)
        session.flush()
        return existing, False, changed

    event = Event(
        title=canonical.title,
        organization=canonical.organization,
        description=canonical.description,
        date_start=canonical.date_start,
        date_end=canonical.date_end,
        address=canonical.address,
        external_id=canonical.external_id,
        venue_id=venue_id,
    )
    session.add(event)
    session.flush()
    return event, True, ()


def persist_canonical_event(
    session: Session,
    canonical: CanonicalEvent,
    today: date,
    log: logging.Logger | None = None,
) -> PersistedEvent:
    """Write one canonical event and its child rows; caller owns commit/rollback.

    Schedules, prices, links and associations are refreshed on every call,
    including when the event itself already existed.
    """
    log = log or logger
    try:
        venue_id = resolve_venue(session, canonical.venue, log=log)
        event, created, changed = upsert_event(session, canonical, venue_id)
        upsert_schedules(session, event.id, canonical.schedule, today)
        upsert_prices(session, event.id, canonical.prices)
        upsert_event_link(session, event.id, canonical.event_link)
        sync_categories(session, event, canonical.categories)
        sync_tags(session, event, canonical.tags)
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        context = canonical.log_context()
        log.error(
            "Constraint violation while persisting event context=%s error=%s",
            context,
            exc.orig if exc.orig is not None else exc,
        )
        raise PersistenceConflictError("constraint violation while persisting event", context=context) from exc

    if created:
        log.info("Created event id=%s title=%r", event.id, event.title)
    elif changed:
        log.info("Refreshed event id=%s fields=%s", event.id, ",".join(changed))
    return PersistedEvent(event_id=event.id, venue_id=venue_id, created=created, updated_fields=changed)


def _apply_updates(existing: Event, canonical: CanonicalEvent) -> tuple[str, ...]:
    changed: list[str] = []
    for field in MUTABLE_FIELDS:
        new_val = getattr(canonical, field)
        if new_val in (None, ""):
            continue
        if getattr(existing, field) != new_val:
            setattr(existing, field, new_val)
            changed.append(field)
    return tuple(changed)
