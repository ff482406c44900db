from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from kyoture.db.models.event_link import EventLink
from kyoture.db.models.image import Image
from kyoture.db.models.price import Price
from kyoture.db.models.schedule import Schedule
from kyoture.domain.schemas.event import PriceEntry, ScheduleEntry
from kyoture.services.images.image_cache import is_placeholder_url


def schedule_status(entry: ScheduleEntry, today: date) -> str:
    if entry.status:
        return entry.status
    return "ended" if entry.date < today else "upcoming"


def upsert_schedules(session: Session, event_id: UUID, entries: list[ScheduleEntry], today: date) -> int:
    written = 0
    for entry in entries:
        row = session.scalar(
            select(Schedule).where(Schedule.event_id == event_id, Schedule.date == entry.date)
        )
        if row is None:
            row = Schedule(event_id=event_id, date=entry.date)
            session.add(row)
        row.time_start = entry.time_start
        row.time_end = entry.time_end
        row.special_notes = entry.special_notes
        row.status = schedule_status(entry, today)
        session.flush()
        written += 1
    return written


def upsert_prices(session: Session, event_id: UUID, entries: list[PriceEntry]) -> int:
    written = 0
    for entry in entries:
        tier = entry.price_tier or "General"
        row = session.scalar(select(Price).where(Price.event_id == event_id, Price.price_tier == tier))
        if row is None:
            row = Price(event_id=event_id, price_tier=tier)
            session.add(row)
        row.amount = entry.amount
        row.currency = entry.currency or "JPY"
        row.discount_info = entry.discount_info
        session.flush()
        written += 1
    return written


def upsert_event_link(session: Session, event_id: UUID, url: str | None, link_type: str = "primary") -> None:
    if not url:
        return
    row = session.scalar(select(EventLink).where(EventLink.event_id == event_id, EventLink.url == url))
    if row is None:
        row = EventLink(event_id=event_id, url=url)
        session.add(row)
    row.link_type = link_type
    session.flush()


def upsert_image(
    session: Session,
    event_id: UUID,
    image_url: str,
    alt_text: str | None = None,
    is_featured: bool = False,
) -> Image:
    row = session.scalar(select(Image).where(Image.event_id == event_id, Image.image_url == image_url))
    if row is None:
        row = Image(event_id=event_id, image_url=image_url)
        session.add(row)
    row.alt_text = alt_text
    row.is_featured = is_featured
    session.flush()
    return row


def attach_featured_image(session: Session, event_id: UUID, image_url: str, alt_text: str | None = None) -> Image:
    """Make `image_url` the event's only featured image.

    A real image replaces any placeholder rows left by earlier failed downloads.
    A placeholder never displaces a real image the event already has.
    """
    rows = session.scalars(select(Image).where(Image.event_id == event_id)).all()
    if is_placeholder_url(image_url):
        real_rows = [row for row in rows if not is_placeholder_url(row.image_url)]
        if real_rows:
            featured = next((row for row in real_rows if row.is_featured), real_rows[0])
            featured.is_featured = True
            session.flush()
            return featured

    for row in rows:
        if row.image_url == image_url:
            continue
        if is_placeholder_url(row.image_url):
            session.delete(row)
        elif row.is_featured:
            row.is_featured = False
    session.flush()
    return upsert_image(session, event_id, image_url, alt_text=alt_text, is_featured=True)
