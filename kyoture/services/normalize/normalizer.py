from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import logging
from typing import Any

from kyoture.core.errors import ValidationError
from kyoture.domain.schemas.event import CanonicalEvent, PriceEntry, ScheduleEntry, VenueInput
from kyoture.services.ingest.sources import SourceProfile
from kyoture.services.normalize.raw_fields import (
    as_str,
    null_if_empty,
    parse_amount,
    parse_date,
    parse_time,
)
from kyoture.services.normalize.source_adapters import (
    TextAnalyzer,
    adapt_direct,
    adapt_free_text,
    detect_shape,
)

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER_MARKERS = {"no image available"}


@dataclass
class NormalizedRecord:
    shape: str
    events: list[CanonicalEvent] = field(default_factory=list)
    rejected: list[ValidationError] = field(default_factory=list)


def normalize_record(
    record: dict[str, Any],
    profile: SourceProfile,
    analyzer: TextAnalyzer | None = None,
    log: logging.Logger | None = None,
) -> NormalizedRecord:
    """Map one raw record to canonical events.

    Raises ValidationError when no candidate passes validation, and lets
    MalformedResponseError / TransientIOError from the analysis service through.
    """
    log = log or logger
    if not isinstance(record, dict):
        raise ValidationError(["record"], "raw event is not a mapping")

    shape = detect_shape(record)
    if shape == "free_text":
        candidates = adapt_free_text(record, profile, analyzer=analyzer, log=log)
    else:
        candidates = adapt_direct(record, profile)

    result = NormalizedRecord(shape=shape)
    for candidate in candidates:
        try:
            result.events.append(build_canonical(candidate, profile))
        except ValidationError as exc:
            log.warning(
                "Rejected event candidate site=%s fields=%s title=%r",
                profile.key,
                exc.fields,
                candidate.get("title"),
            )
            result.rejected.append(exc)

    if not result.events and result.rejected:
        raise result.rejected[0]
    return result


def build_canonical(item: dict[str, Any], profile: SourceProfile) -> CanonicalEvent:
    title = as_str(item.get("title"))
    date_start = parse_date(item.get("date_start"))
    date_end = parse_date(item.get("date_end"))

    failing: list[str] = []
    if not title:
        failing.append("title")
    if date_start is None:
        failing.append("date_start")
    if date_end is None:
        failing.append("date_end")
    if failing:
        raise ValidationError(failing)
    if date_end < date_start:
        raise ValidationError(["date_start", "date_end"], "date_end is before date_start")

    venue = _venue_input(item, profile)
    return CanonicalEvent(
        site=profile.key,
        title=title,
        date_start=date_start,
        date_end=date_end,
        organization=as_str(item.get("organization")) or profile.organization,
        description=as_str(item.get("description")) or None,
        address=as_str(item.get("address")) or venue.address,
        external_id=_external_id(item, title, date_start.isoformat(), venue.name),
        venue=venue,
        schedule=_schedule_entries(item, date_start),
        prices=_price_entries(item.get("prices")),
        categories=_names(item.get("categories")),
        tags=_names(item.get("tags")),
        event_link=as_str(item.get("event_link") or item.get("detail_url") or item.get("url")) or None,
        image_url=_image_url(item.get("image_url")),
        extra_image_urls=_extra_images(item.get("images")),
    )


def _venue_input(item: dict[str, Any], profile: SourceProfile) -> VenueInput:
    name = as_str(item.get("venue")) or as_str(item.get("venue_name")) or as_str(item.get("name"))
    return VenueInput(
        name=name or profile.venue_name,
        address=as_str(item.get("venue_address")) or as_str(item.get("address")) or None,
        city=as_str(item.get("city")) or profile.city,
        postal_code=as_str(item.get("postal_code")) or None,
        country=as_str(item.get("country")) or profile.country,
    )


def _external_id(item: dict[str, Any], title: str, date_start: str, venue_name: str | None) -> str:
    provided = item.get("external_id")
    if isinstance(provided, (str, int)) and str(provided).strip():
        return str(provided).strip()
    raw = f"{title.lower()}|{date_start}|{(venue_name or '').strip().lower()}"
    return hashlib.md5(raw.encode()).hexdigest()


def _schedule_entries(item: dict[str, Any], date_start) -> list[ScheduleEntry]:
    raw_schedule = item.get("schedule")
    if not isinstance(raw_schedule, list) or not raw_schedule:
        if item.get("time_start"):
            raw_schedule = [
                {"date": date_start, "time_start": item.get("time_start"), "time_end": item.get("time_end")}
            ]
        else:
            return []

    entries: list[ScheduleEntry] = []
    for raw in raw_schedule:
        if not isinstance(raw, dict):
            continue
        entry_date = parse_date(raw.get("date"))
        if entry_date is None:
            continue
        entries.append(
            ScheduleEntry(
                date=entry_date,
                time_start=parse_time(raw.get("time_start")),
                time_end=parse_time(raw.get("time_end")),
                special_notes=null_if_empty(raw.get("special_notes")),
                status=as_str(raw.get("status")) or as_str(item.get("status")) or None,
            )
        )
    return entries


def _price_entries(raw_prices: Any) -> list[PriceEntry]:
    if not isinstance(raw_prices, list):
        return []
    entries: list[PriceEntry] = []
    for raw in raw_prices:
        if not isinstance(raw, dict):
            continue
        amount = parse_amount(raw.get("amount"))
        if amount is None:
            continue
        entries.append(
            PriceEntry(
                price_tier=as_str(raw.get("price_tier")) or "General",
                amount=amount,
                currency=(as_str(raw.get("currency")) or "JPY").upper(),
                discount_info=null_if_empty(raw.get("discount_info")),
            )
        )
    return entries


def _names(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return []
    return [value.strip() for value in raw if isinstance(value, str) and value.strip()]


def _image_url(raw: Any) -> str | None:
    url = as_str(raw)
    if not url or url.lower() in IMAGE_PLACEHOLDER_MARKERS:
        return None
    return url


def _extra_images(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    urls: list[str] = []
    for entry in raw:
        url = _image_url(entry.get("image_url") if isinstance(entry, dict) else entry)
        if url:
            urls.append(url)
    return urls
