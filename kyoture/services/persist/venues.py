from __future__ import annotations

import logging
import re
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from kyoture.db.models.venue import Venue
from kyoture.domain.schemas.event import VenueInput

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^\s*(?:venue|place|location|会場|場所)\s*[:：]\s*", re.IGNORECASE)
_SPACE_RE = re.compile(r"\s+")


def clean_venue_name(raw: str | None) -> str:
    """Strip a source label such as "Venue : " and collapse whitespace."""
    if not raw:
        return ""
    without_prefix = _PREFIX_RE.sub("", raw)
    return _SPACE_RE.sub(" ", without_prefix).strip()


def normalize_venue_name(raw: str | None) -> str:
    return clean_venue_name(raw).casefold()


def resolve_venue(
    session: Session,
    venue: VenueInput,
    log: logging.Logger | None = None,
) -> UUID | None:
    """Find or create a venue by exact normalized name; None when no name was given."""
    log = log or logger
    display_name = clean_venue_name(venue.name)
    if not display_name:
        return None
    normalized = display_name.casefold()

    existing = session.scalar(select(Venue).where(Venue.normalized_name == normalized))
    if existing is not None:
        return existing.id

    created = Venue(
        name=display_name,
        normalized_name=normalized,
        address=venue.address,
        city=venue.city,
        postal_code=venue.postal_code,
        country=venue.country,
    )
    session.add(created)
    session.flush()
    log.info("Created venue name=%r id=%s", display_name, created.id)
    return created.id
