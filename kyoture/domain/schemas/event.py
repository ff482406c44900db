from datetime import date, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class ScheduleEntry(BaseModel):
    date: date
    time_start: time | None = None
    time_end: time | None = None
    special_notes: str | None = None
    status: str | None = None


class PriceEntry(BaseModel):
    price_tier: str = "General"
    amount: Decimal
    currency: str = "JPY"
    discount_info: str | None = None


class VenueInput(BaseModel):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    country: str | None = None


class CanonicalEvent(BaseModel):
    """Validated, source-independent event consumed by the persistence steps."""

    site: str
    title: str
    date_start: date
    date_end: date
    organization: str | None = None
    description: str | None = None
    address: str | None = None
    external_id: str | None = None
    venue: VenueInput = Field(default_factory=VenueInput)
    schedule: list[ScheduleEntry] = Field(default_factory=list)
    prices: list[PriceEntry] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    event_link: str | None = None
    image_url: str | None = None
    extra_image_urls: list[str] = Field(default_factory=list)

    def log_context(self) -> dict[str, Any]:
        return {
            "site": self.site,
            "title": self.title,
            "date_start": self.date_start.isoformat(),
            "venue": self.venue.name,
        }
