from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Date, ForeignKey, String, Text, Time, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kyoture.db.base import Base

if TYPE_CHECKING:
    from kyoture.db.models.event import Event


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (UniqueConstraint("event_id", "date", name="uq_schedules_event_date"),)

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    event_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
    )
    date: Mapped[dt.date] = mapped_column(Date)
    time_start: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    time_end: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    special_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="upcoming")

    event: Mapped[Event] = relationship(back_populates="schedules")
