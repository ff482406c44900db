from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import date, datetime
import logging
from typing import Any, Callable
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from kyoture.core.errors import IngestionError, MalformedResponseError, UnsupportedSourceError
from kyoture.domain.schemas.event import CanonicalEvent
from kyoture.services.images.image_cache import ImageCache, is_placeholder_url
from kyoture.services.ingest.sources import SourceProfile, get_source, is_supported, split_sites
from kyoture.services.llm.text_analysis import TextAnalysisClient
from kyoture.services.normalize.normalizer import normalize_record
from kyoture.services.normalize.source_adapters import TextAnalyzer
from kyoture.services.persist.children import attach_featured_image, upsert_image
from kyoture.services.persist.events import persist_canonical_event
from kyoture.utils.timing import BatchStats, Timer

logger = logging.getLogger(__name__)

SOURCE_TZ = ZoneInfo("Asia/Tokyo")


def today_in_source_tz() -> date:
    return datetime.now(tz=SOURCE_TZ).date()


@dataclass
class RecordOutcome:
    index: int
    site: str | None
    status: str  # processed | skipped | failed
    reason: str | None = None
    event_ids: list[UUID] = field(default_factory=list)


@dataclass
class BatchResult:
    outcomes: list[RecordOutcome] = field(default_factory=list)
    stats: BatchStats = field(default_factory=BatchStats)

    @property
    def processed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "processed")

    @property
    def success(self) -> bool:
        return self.processed > 0

    @property
    def message(self) -> str:
        if self.success:
            return f"Processed {self.processed} of {len(self.outcomes)} events"
        return f"No events processed ({len(self.outcomes)} received)"


@dataclass
class _PendingImages:
    event_id: UUID
    title: str
    featured: Future[str]
    extras: list[Future[str]] = field(default_factory=list)


class IngestionOrchestrator:
    """Runs one batch of raw records through normalize, persist and image steps.

    Every record is committed on its own. A record that raises is rolled back,
    logged with its context and reported as skipped or failed; the batch keeps
    going. Images are fetched on the cache's pool while records persist, and
    their rows are written once the loop is done.
    """

    def __init__(
        self,
        session: Session,
        analyzer: TextAnalyzer | None = None,
        image_cache: ImageCache | None = None,
        today_fn: Callable[[], date] = today_in_source_tz,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.analyzer = analyzer
        self.image_cache = image_cache
        self.today_fn = today_fn
        self.log = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, session: Session, logger: logging.Logger | None = None) -> IngestionOrchestrator:
        return cls(session, analyzer=TextAnalysisClient.from_settings(logger=logger), logger=logger)

    def run(self, site_field: str, records: list[Any]) -> BatchResult:
        sites = split_sites(site_field)
        if len(sites) == 1 and not is_supported(sites[0]):
            raise UnsupportedSourceError(sites[0])
        for site in sites:
            if not is_supported(site):
                self.log.warning("Skipping unsupported site in request site=%s", site)
        default_site = next((site for site in sites if is_supported(site)), None)

        owns_cache = self.image_cache is None
        cache = self.image_cache or ImageCache(logger=self.log)
        result = BatchResult(stats=BatchStats(site=",".join(sites), records_total=len(records)))
        pending: list[_PendingImages] = []
        today = self.today_fn()

        try:
            with Timer() as timer:
                for index, record in enumerate(records):
                    outcome = self._run_record(index, record, default_site, today, cache, pending, result.stats)
                    result.outcomes.append(outcome)
                self._attach_images(pending, result.stats)
        finally:
            if owns_cache:
                cache.close()

        stats = result.stats
        stats.processed = result.processed
        stats.skipped = sum(1 for outcome in result.outcomes if outcome.status == "skipped")
        stats.failed = sum(1 for outcome in result.outcomes if outcome.status == "failed")
        stats.elapsed_s = timer.elapsed
        stats.log_status(self.log)
        if not result.success:
            self.log.warning("Batch produced no events site=%s records=%s", stats.site, len(records))
        return result

    def _run_record(
        self,
        index: int,
        record: Any,
        default_site: str | None,
        today: date,
        cache: ImageCache,
        pending: list[_PendingImages],
        stats: BatchStats,
    ) -> RecordOutcome:
        tagged = record.get("site") if isinstance(record, dict) else None
        site = (tagged.strip().lower() if isinstance(tagged, str) and tagged.strip() else None) or default_site
        outcome = RecordOutcome(index=index, site=site, status="processed")
        title = record.get("title") if isinstance(record, dict) else None

        if site is None or not is_supported(site):
            self.log.warning("Skipping record with unsupported site index=%s site=%s title=%r", index, site, title)
            outcome.status = "skipped"
            outcome.reason = f"unsupported site: {site}"
            return outcome

        profile = get_source(site)
        try:
            normalized = normalize_record(record, profile, analyzer=self.analyzer, log=self.log)
            for canonical in normalized.events:
                persisted = persist_canonical_event(self.session, canonical, today, log=self.log)
                self.session.commit()
                outcome.event_ids.append(persisted.event_id)
                if persisted.created:
                    stats.events_created += 1
                elif persisted.updated_fields:
                    stats.events_refreshed += 1
                pending.append(self._submit_images(cache, profile, canonical, persisted.event_id))
        except MalformedResponseError as exc:
            self.session.rollback()
            self.log.error(
                "Skipping record index=%s site=%s title=%r error=%s raw_response=%r",
                index,
                site,
                title,
                exc,
                exc.raw_response,
            )
            outcome.status = "skipped"
            outcome.reason = str(exc)
        except IngestionError as exc:
            self.session.rollback()
            self.log.warning(
                "Skipping record index=%s site=%s title=%r error_type=%s error=%s",
                index,
                site,
                title,
                type(exc).__name__,
                exc,
            )
            outcome.status = "skipped"
            outcome.reason = str(exc)
        except Exception as exc:  # noqa: BLE001
            self.session.rollback()
            self.log.error(
                "Record failed index=%s site=%s title=%r error=%s",
                index,
                site,
                title,
                exc,
                exc_info=True,
            )
            outcome.status = "failed"
            outcome.reason = str(exc)
        else:
            if not outcome.event_ids:
                self.log.warning("Record yielded no events index=%s site=%s title=%r", index, site, title)
                outcome.status = "skipped"
                outcome.reason = "no events"
        if outcome.status != "processed" and outcome.event_ids:
            # Events committed before the error stay written; their images are still attached.
            self.log.warning(
                "Record partially persisted index=%s site=%s events=%s error=%s",
                index,
                site,
                len(outcome.event_ids),
                outcome.reason,
            )
            outcome.status = "processed"
        return outcome

    @staticmethod
    def _submit_images(
        cache: ImageCache,
        profile: SourceProfile,
        canonical: CanonicalEvent,
        event_id: UUID,
    ) -> _PendingImages:
        fallback_key = f"{profile.key}|{canonical.title}|{canonical.date_start.isoformat()}"
        featured = cache.submit(canonical.image_url, profile.key, base_url=profile.base_url, fallback_key=fallback_key)
        extras = [
            cache.submit(url, profile.key, base_url=profile.base_url, fallback_key=f"{fallback_key}|{url}")
            for url in canonical.extra_image_urls
            if url != canonical.image_url
        ]
        return _PendingImages(event_id=event_id, title=canonical.title, featured=featured, extras=extras)

    def _attach_images(self, pending: list[_PendingImages], stats: BatchStats) -> None:
        for item in pending:
            try:
                featured_url = item.featured.result()
                attach_featured_image(self.session, item.event_id, featured_url, alt_text=item.title)
                attached = 1
                for future in item.extras:
                    extra_url = future.result()
                    if extra_url == featured_url or is_placeholder_url(extra_url):
                        continue
                    upsert_image(self.session, item.event_id, extra_url, alt_text=item.title)
                    attached += 1
                self.session.commit()
                stats.images_attached += attached
            except Exception as exc:  # noqa: BLE001
                self.session.rollback()
                self.log.error("Image attach failed event_id=%s title=%r error=%s", item.event_id, item.title, exc)
