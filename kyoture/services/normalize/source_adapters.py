"""
Per-shape adapters from raw scraped records to candidate event mappings.

Scrapers deliver one of two shapes. `direct` records already carry
`date_start`/`date_end` and structured lists. `free_text` records only carry
text such as `raw_date`, `raw_schedule` and `raw_price_text`; those go to the
text-analysis service when one is configured, or through the local parsers
otherwise. Every adapter returns plain mappings that `normalizer` validates
into `CanonicalEvent`.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Protocol

from kyoture.core.errors import TransientIOError
from kyoture.services.ingest.sources import SourceProfile
from kyoture.services.normalize.raw_fields import as_str, parse_date, parse_date_range, parse_price_text

logger = logging.getLogger(__name__)

FREE_TEXT_FIELDS = ("raw_date", "raw_schedule", "raw_price_text")

# Fields the analysis service does not produce; the scraped record stays authoritative.
RECORD_OWNED_FIELDS = ("description", "event_link", "detail_url", "image_url", "images", "external_id")

_CLOCK_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")


class TextAnalyzer(Protocol):
    def analyze(self, event_data: dict[str, Any], profile: SourceProfile) -> list[dict[str, Any]]:
        ...


def detect_shape(record: dict[str, Any]) -> str:
    has_direct_dates = parse_date(record.get("date_start")) is not None
    has_free_text = any(as_str(record.get(name)) for name in FREE_TEXT_FIELDS)
    if has_free_text and not has_direct_dates:
        return "free_text"
    return "direct"


def adapt_direct(record: dict[str, Any], profile: SourceProfile) -> list[dict[str, Any]]:
    return [dict(record)]


def adapt_free_text(
    record: dict[str, Any],
    profile: SourceProfile,
    analyzer: TextAnalyzer | None = None,
    log: logging.Logger | None = None,
) -> list[dict[str, Any]]:
    log = log or logger
    if analyzer is None:
        log.info("No text analysis configured; parsing free text locally site=%s", profile.key)
        return [_parse_free_text_locally(record)]

    local = _parse_free_text_locally(record)
    try:
        analyzed = analyzer.analyze(record, profile)
    except TransientIOError as exc:
        log.warning(
            "Text analysis unavailable site=%s title=%r error=%s; parsing free text locally",
            profile.key,
            record.get("title"),
            exc,
        )
        return [local]

    merged: list[dict[str, Any]] = []
    for item in analyzed:
        candidate = {key: value for key, value in record.items() if key not in FREE_TEXT_FIELDS}
        candidate.update({key: value for key, value in item.items() if value not in (None, "", [])})
        for key in RECORD_OWNED_FIELDS:
            if record.get(key) not in (None, "", []):
                candidate[key] = record[key]
        # Dates the service could not read fall back to the local range parser.
        for key in ("date_start", "date_end"):
            if parse_date(candidate.get(key)) is None and local.get(key):
                candidate[key] = local[key]
        merged.append(candidate)
    return merged


def _parse_free_text_locally(record: dict[str, Any]) -> dict[str, Any]:
    candidate = {key: value for key, value in record.items() if key not in FREE_TEXT_FIELDS}

    parsed_range = parse_date_range(record.get("raw_date"))
    if parsed_range is not None:
        start, end = parsed_range
        candidate["date_start"] = start.isoformat()
        candidate["date_end"] = end.isoformat()

    if not candidate.get("schedule") and parsed_range is not None:
        schedule_text = " ".join(as_str(record.get(name)) for name in ("raw_schedule", "raw_date"))
        clocks = [f"{hour.zfill(2)}:{minute}" for hour, minute in _CLOCK_RE.findall(schedule_text)]
        if clocks:
            candidate["schedule"] = [
                {
                    "date": parsed_range[0].isoformat(),
                    "time_start": clocks[0],
                    "time_end": clocks[1] if len(clocks) > 1 else None,
                    "special_notes": as_str(record.get("raw_schedule")) or None,
                }
            ]

    if not candidate.get("prices"):
        prices = parse_price_text(record.get("raw_price_text"))
        if prices:
            candidate["prices"] = prices

    return candidate
