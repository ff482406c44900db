from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kyoture.db.base import Base

if TYPE_CHECKING:
    from kyoture.db.models.event import Event


class Price(Base):
    __tablename__ = "prices"
    __table_args__ = (UniqueConstraint("event_id", "price_tier", name="uq_prices_event_tier"),)

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    event_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
    )
    price_tier: Mapped[str] = mapped_column(String(100), default="General")
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default="JPY")
    discount_info: Mapped[str | None] = mapped_column(String(255), nullable=True)

    event: Mapped[Event] = relationship(back_populates="prices")
