from datetime import date, time
from decimal import Decimal

from kyoture.services.normalize.raw_fields import (
    null_if_empty,
    parse_amount,
    parse_date,
    parse_date_range,
    parse_price_text,
    parse_time,
)


def test_parse_date_range_borrows_start_year() -> None:
    assert parse_date_range("2024.11.20 (WED) - 12.05 (THU)") == (date(2024, 11, 20), date(2024, 12, 5))
    assert parse_date_range("2025.03.01 (SAT) – 03.02 (SUN)") == (date(2025, 3, 1), date(2025, 3, 2))


def test_parse_date_range_accepts_explicit_end_year_and_single_date() -> None:
    assert parse_date_range("2024.12.30 - 2025.01.02") == (date(2024, 12, 30), date(2025, 1, 2))
    assert parse_date_range("2025年3月1日(土)") == (date(2025, 3, 1), date(2025, 3, 1))
    assert parse_date_range("coming soon") is None


def test_parse_date_formats() -> None:
    assert parse_date("2025-03-01") == date(2025, 3, 1)
    assert parse_date("2025/3/1") == date(2025, 3, 1)
    assert parse_date("2025.02.30") is None
    assert parse_date(None) is None


def test_parse_time_handles_markers() -> None:
    assert parse_time("19:00") == time(19, 0)
    assert parse_time("7:30:15") == time(7, 30, 15)
    assert parse_time("TBA") is None
    assert parse_time("evening") is None


def test_parse_amount_drops_non_numeric() -> None:
    assert parse_amount("¥2,400") == Decimal("2400")
    assert parse_amount(3000) == Decimal("3000")
    assert parse_amount("TBA") is None
    assert parse_amount(True) is None
    assert parse_amount(-1) is None


def test_parse_price_text_splits_tiers() -> None:
    prices = parse_price_text("ADV ¥2,400 / DOOR ¥2,900")
    assert prices == [
        {"price_tier": "ADV", "amount": "2400", "currency": "JPY"},
        {"price_tier": "DOOR", "amount": "2900", "currency": "JPY"},
    ]
    assert parse_price_text("入場無料") == [{"price_tier": "Free", "amount": "0", "currency": "JPY"}]


def test_null_if_empty() -> None:
    assert null_if_empty("  tbd ") is None
    assert null_if_empty(" Sold out ") == "Sold out"


def test_parse_amount_drops_negative_strings() -> None:
    assert parse_amount("-500") is None
    assert parse_amount("−¥1,000") is None
    assert parse_amount(" - 300") is None


def test_parse_amount_drops_non_finite_numbers() -> None:
    assert parse_amount(float("nan")) is None
    assert parse_amount(float("inf")) is None
    assert parse_amount(Decimal("NaN")) is None
