from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kyoture.db.base import Base

if TYPE_CHECKING:
    from kyoture.db.models.event import Event


class EventLink(Base):
    __tablename__ = "event_links"
    __table_args__ = (UniqueConstraint("event_id", "url", name="uq_event_links_event_url"),)

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    event_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
    )
    url: Mapped[str] = mapped_column(String(500))
    link_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    event: Mapped[Event] = relationship(back_populates="links")
