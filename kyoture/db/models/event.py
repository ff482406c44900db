from __future__ import annotations

from datetime import date, datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kyoture.db.base import Base
from kyoture.db.models.associations import event_categories, event_tags

if TYPE_CHECKING:
    from kyoture.db.models.category import Category
    from kyoture.db.models.event_link import EventLink
    from kyoture.db.models.image import Image
    from kyoture.db.models.price import Price
    from kyoture.db.models.schedule import Schedule
    from kyoture.db.models.tag import Tag
    from kyoture.db.models.venue import Venue


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        UniqueConstraint("title", "date_start", "venue_id", name="uq_events_title_date_venue"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(255))
    organization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date_start: Mapped[date] = mapped_column(Date)
    date_end: Mapped[date] = mapped_column(Date)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    venue_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("venues.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(tz=timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(tz=timezone.utc),
        onupdate=lambda: datetime.now(tz=timezone.utc),
    )

    venue: Mapped[Venue | None] = relationship(back_populates="events")
    schedules: Mapped[list[Schedule]] = relationship(back_populates="event", cascade="all, delete-orphan")
    prices: Mapped[list[Price]] = relationship(back_populates="event", cascade="all, delete-orphan")
    images: Mapped[list[Image]] = relationship(back_populates="event", cascade="all, delete-orphan")
    links: Mapped[list[EventLink]] = relationship(back_populates="event", cascade="all, delete-orphan")
    categories: Mapped[list[Category]] = relationship(secondary=event_categories)
    tags: Mapped[list[Tag]] = relationship(secondary=event_tags)
