from datetime import date
import logging
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from kyoture.core.errors import MalformedResponseError, PersistenceConflictError, UnsupportedSourceError
from kyoture.db.base import Base
from kyoture.db.models.event import Event
from kyoture.db.models.image import Image
from kyoture.services.images.image_cache import ImageCache, hash_key
from kyoture.services.ingest import orchestrator as orchestrator_module
from kyoture.services.ingest.orchestrator import IngestionOrchestrator


def _make_session():
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, future=True)()


class _FakeHttpClient:
    def __init__(self) -> None:
        self.get_calls: list[str] = []

    def head(self, url, timeout=None):
        return httpx.Response(200, headers={"content-type": "image/jpeg"}, request=httpx.Request("HEAD", url))

    def get(self, url, timeout=None):
        self.get_calls.append(url)
        return httpx.Response(200, content=b"jpeg", request=httpx.Request("GET", url))


class _FailingAnalyzer:
    def __init__(self, error: Exception) -> None:
        self.error = error

    def analyze(self, event_data, profile):
        raise self.error


def _make_orchestrator(session, tmp_path: Path, client=None, analyzer=None) -> IngestionOrchestrator:
    cache = ImageCache(
        images_root=tmp_path / "events",
        client=client or _FakeHttpClient(),
        retry_delay_s=0,
        placeholder_source=tmp_path / "missing-placeholder.jpg",
    )
    return IngestionOrchestrator(session, analyzer=analyzer, image_cache=cache, today_fn=lambda: date(2025, 3, 1))


def _record(index: int, **overrides):
    record = {
        "title": f"Live #{index}",
        "date_start": f"2025-03-{index:02d}",
        "date_end": f"2025-03-{index:02d}",
        "prices": [{"price_tier": "General", "amount": "2000"}],
    }
    record.update(overrides)
    return record


def test_one_bad_record_does_not_abort_batch(tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.WARNING)
    session = _make_session()
    records = [_record(i) for i in range(1, 6)]
    del records[2]["title"]

    result = _make_orchestrator(session, tmp_path).run("kyoto_gattaca", records)

    assert result.success is True
    assert result.processed == 4
    assert [outcome.status for outcome in result.outcomes] == ["processed", "processed", "skipped", "processed", "processed"]
    assert len(session.scalars(select(Event)).all()) == 4
    assert any("Skipping record index=2" in rec.message for rec in caplog.records)
    assert "Processed 4 of 5" in result.message


def test_zero_processed_is_batch_failure(tmp_path: Path) -> None:
    session = _make_session()

    result = _make_orchestrator(session, tmp_path).run("kyoto_gattaca", [{"title": "No dates"}, "not a record"])

    assert result.success is False
    assert result.processed == 0
    assert [outcome.status for outcome in result.outcomes] == ["skipped", "skipped"]


def test_unsupported_single_site_raises(tmp_path: Path) -> None:
    session = _make_session()
    with pytest.raises(UnsupportedSourceError):
        _make_orchestrator(session, tmp_path).run("bogus", [_record(1)])


def test_multi_source_records_use_their_own_tags(tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.WARNING)
    session = _make_session()
    records = [
        _record(1, site="kyoto_fanj"),
        _record(2, site="bogus"),
        _record(3),
    ]

    result = _make_orchestrator(session, tmp_path).run("growly,unknown_site", records)

    assert [(o.site, o.status) for o in result.outcomes] == [
        ("kyoto_fanj", "processed"),
        ("bogus", "skipped"),
        ("growly", "processed"),
    ]
    venues = {event.title: event.venue.name for event in session.scalars(select(Event))}
    assert venues == {"Live #1": "Kyoto FANJ", "Live #3": "GROWLY"}
    assert any("unsupported site in request site=unknown_site" in rec.message for rec in caplog.records)


def test_unexpected_error_marks_record_failed(tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.ERROR)
    session = _make_session()
    records = [{"title": "Free text", "raw_date": "2025.03.05"}, _record(6)]

    result = _make_orchestrator(session, tmp_path, analyzer=_FailingAnalyzer(RuntimeError("kaboom"))).run(
        "kyoto_gattaca", records
    )

    assert [outcome.status for outcome in result.outcomes] == ["failed", "processed"]
    assert any("Record failed index=0" in rec.message for rec in caplog.records)


def test_malformed_analysis_logs_raw_response(tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.ERROR)
    session = _make_session()
    analyzer = _FailingAnalyzer(MalformedResponseError("no JSON", raw_response="Sorry, nothing here"))

    result = _make_orchestrator(session, tmp_path, analyzer=analyzer).run(
        "kyoto_gattaca", [{"title": "Free text", "raw_date": "2025.03.05"}]
    )

    assert result.outcomes[0].status == "skipped"
    assert any("Sorry, nothing here" in rec.message for rec in caplog.records)


def test_images_are_downloaded_once_and_attached(tmp_path: Path) -> None:
    session = _make_session()
    client = _FakeHttpClient()
    records = [
        _record(1, image_url="/uploads/flyer.jpg?ver=1"),
        _record(2, image_url="/uploads/flyer.jpg?ver=2"),
        _record(3),
    ]

    result = _make_orchestrator(session, tmp_path, client=client).run("kyoto_gattaca", records)

    assert result.stats.images_attached == 3
    assert client.get_calls == ["http://kyoto-gattaca.jp/uploads/flyer.jpg?ver=1"]
    images = {image.event.title: image for image in session.scalars(select(Image))}
    cached = f"/images/events/kyoto_gattaca/{hash_key('http://kyoto-gattaca.jp/uploads/flyer.jpg')}.jpg"
    assert images["Live #1"].image_url == cached
    assert images["Live #2"].image_url == cached
    assert images["Live #1"].is_featured is True
    assert images["Live #1"].alt_text == "Live #1"
    assert images["Live #3"].image_url.startswith("/images/events/kyoto_gattaca/placeholder_")


class _BrokenHttpClient(_FakeHttpClient):
    def get(self, url, timeout=None):
        self.get_calls.append(url)
        raise httpx.ConnectError("unreachable")


def test_successful_download_replaces_earlier_placeholder(tmp_path: Path) -> None:
    session = _make_session()
    records = [_record(1, image_url="/uploads/poster.jpg")]

    _make_orchestrator(session, tmp_path, client=_BrokenHttpClient()).run("kyoto_gattaca", records)
    first = session.scalars(select(Image)).all()
    assert len(first) == 1
    assert "placeholder_" in first[0].image_url

    _make_orchestrator(session, tmp_path).run("kyoto_gattaca", records)

    images = session.scalars(select(Image)).all()
    expected = f"/images/events/kyoto_gattaca/{hash_key('http://kyoto-gattaca.jp/uploads/poster.jpg')}.jpg"
    assert [(image.image_url, image.is_featured) for image in images] == [(expected, True)]


def test_failed_download_keeps_existing_real_image(tmp_path: Path) -> None:
    session = _make_session()
    first_run = [_record(1, image_url="/uploads/poster.jpg")]
    _make_orchestrator(session, tmp_path).run("kyoto_gattaca", first_run)

    second_run = [_record(1, image_url="/uploads/poster-v2.jpg")]
    _make_orchestrator(session, tmp_path, client=_BrokenHttpClient()).run("kyoto_gattaca", second_run)

    images = session.scalars(select(Image)).all()
    expected = f"/images/events/kyoto_gattaca/{hash_key('http://kyoto-gattaca.jp/uploads/poster.jpg')}.jpg"
    assert [(image.image_url, image.is_featured) for image in images] == [(expected, True)]


class _SplittingAnalyzer:
    def analyze(self, event_data, profile):
        return [
            {"title": "Festival Day 1", "date_start": "2025-03-01", "date_end": "2025-03-01"},
            {"title": "Festival Day 2", "date_start": "2025-03-02", "date_end": "2025-03-02"},
        ]


def test_record_with_some_committed_events_counts_as_processed(tmp_path: Path, monkeypatch, caplog) -> None:
    caplog.set_level(logging.WARNING)
    session = _make_session()
    real_persist = orchestrator_module.persist_canonical_event
    calls = []

    def flaky_persist(session, canonical, today, log=None):
        calls.append(canonical.title)
        if len(calls) == 2:
            raise PersistenceConflictError("constraint violation", context=canonical.log_context())
        return real_persist(session, canonical, today, log=log)

    monkeypatch.setattr(orchestrator_module, "persist_canonical_event", flaky_persist)

    result = _make_orchestrator(session, tmp_path, analyzer=_SplittingAnalyzer()).run(
        "kyoto_gattaca", [{"title": "Festival", "raw_date": "2025.03.01 - 03.02"}]
    )

    outcome = result.outcomes[0]
    assert outcome.status == "processed"
    assert len(outcome.event_ids) == 1
    assert outcome.reason == "constraint violation"
    assert result.success is True
    assert result.stats.images_attached == 1
    assert [event.title for event in session.scalars(select(Event))] == ["Festival Day 1"]
    assert any("Record partially persisted" in rec.message for rec in caplog.records)
