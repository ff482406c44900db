from __future__ import annotations

import re
from datetime import date, time
from decimal import Decimal, InvalidOperation
from typing import Any

NULL_MARKERS = {"", "tba", "tbd", "null", "none", "n/a", "未定"}

_DATE_RE = re.compile(r"(\d{4})\s*[./\-年]\s*(\d{1,2})\s*[./\-月]\s*(\d{1,2})")
_RANGE_RE = re.compile(
    r"(?P<y>\d{4})\s*[./\-年]\s*(?P<m1>\d{1,2})\s*[./\-月]\s*(?P<d1>\d{1,2})\s*日?"
    r"(?:\s*[（(][^)）]*[)）])?"
    r"\s*[–—\-~〜～]\s*"
    r"(?:(?P<y2>\d{4})\s*[./\-年]\s*)?(?P<m2>\d{1,2})\s*[./\-月]\s*(?P<d2>\d{1,2})"
)
_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
_AMOUNT_RE = re.compile(r"[￥¥]?\s*(\d[\d,]*(?:\.\d+)?)")
_NEGATIVE_AMOUNT_RE = re.compile(r"^[-−－]\s*[￥¥]?\s*\d")


def as_str(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def null_if_empty(value: Any) -> str | None:
    text = as_str(value)
    if text.lower() in NULL_MARKERS:
        return None
    return text


def parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    text = as_str(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    match = _DATE_RE.search(text)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def parse_date_range(raw: Any) -> tuple[date, date] | None:
    """Parse `YYYY.MM.DD (DAY) – MM.DD (DAY)` or a single date into (start, end).

    The end date borrows the start year unless it spells out its own.
    """
    text = as_str(raw)
    if not text:
        return None
    match = _RANGE_RE.search(text)
    if match:
        year = int(match.group("y"))
        end_year = int(match.group("y2")) if match.group("y2") else year
        try:
            start = date(year, int(match.group("m1")), int(match.group("d1")))
            end = date(end_year, int(match.group("m2")), int(match.group("d2")))
        except ValueError:
            return None
        return start, end
    single = parse_date(text)
    if single is None:
        return None
    return single, single


def parse_time(value: Any) -> time | None:
    if isinstance(value, time):
        return value
    text = null_if_empty(value)
    if text is None:
        return None
    match = _TIME_RE.match(text.replace("\u00a0", " ").strip())
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)), int(match.group(3) or 0))


def parse_amount(value: Any) -> Decimal | None:
    """Non-negative finite amount, or None. A leading minus sign marks a negative amount."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    else:
        text = null_if_empty(value)
        if text is None:
            return None
        if _NEGATIVE_AMOUNT_RE.match(text):
            return None
        match = _AMOUNT_RE.search(text)
        if not match:
            return None
        try:
            amount = Decimal(match.group(1).replace(",", ""))
        except InvalidOperation:
            return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def parse_price_text(raw: Any) -> list[dict[str, Any]]:
    """Best-effort price extraction for `raw_price_text` when no text analysis is available.

    Lines shaped like `ADV ¥2,400` become one tier each; a bare amount becomes `General`.
    """
    text = as_str(raw)
    if not text:
        return []
    prices: list[dict[str, Any]] = []
    seen_tiers: set[str] = set()
    for line in re.split(r"[\n/／|]", text):
        line = line.strip()
        match = _AMOUNT_RE.search(line)
        if not match:
            continue
        tier = line[: match.start()].strip(" :：-") or "General"
        if tier in seen_tiers:
            continue
        seen_tiers.add(tier)
        prices.append({"price_tier": tier, "amount": match.group(1).replace(",", ""), "currency": "JPY"})
    if not prices and ("free" in text.lower() or "無料" in text):
        prices.append({"price_tier": "Free", "amount": "0", "currency": "JPY"})
    return prices
