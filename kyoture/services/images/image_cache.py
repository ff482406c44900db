from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
import hashlib
import logging
import os
from pathlib import Path, PurePosixPath
import shutil
import tempfile
import threading
import time
from typing import Any, Callable
from urllib.parse import urljoin, urlsplit

import httpx

from kyoture.config import settings

logger = logging.getLogger(__name__)

KNOWN_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp")
CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpeg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/webp": ".webp",
}
DEFAULT_EXTENSION = ".jpg"
PLACEHOLDER_PREFIX = "placeholder_"
USER_AGENT = "Kyoture/0.1"


def hash_key(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def is_placeholder_url(url: str) -> bool:
    return PurePosixPath(urlsplit(url).path).name.startswith(PLACEHOLDER_PREFIX)


def absolutize_url(url: str, base_url: str | None = None) -> str | None:
    cleaned = (url or "").strip()
    if not cleaned:
        return None
    if not cleaned.startswith(("http://", "https://")):
        if not base_url:
            return None
        cleaned = urljoin(base_url.rstrip("/") + "/", cleaned)
    parsed = urlsplit(cleaned)
    if not parsed.scheme or not parsed.netloc:
        return None
    return cleaned


def normalize_image_url(url: str) -> str:
    """Drop query string and fragment so cache-busting parameters share one cache entry."""
    parsed = urlsplit(url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ImageCache:
    """Content-addressed store of event images under `<root>/<site>/<sha256><ext>`.

    A single instance is meant to live for one ingestion batch: downloads go
    through a bounded thread pool and submissions for the same normalized URL
    share one future, so a batch downloads each distinct image at most once.
    """

    def __init__(
        self,
        images_root: str | Path | None = None,
        url_prefix: str | None = None,
        client: Any | None = None,
        timeout: float | None = None,
        probe_timeout: float | None = None,
        attempts: int | None = None,
        retry_delay_s: float | None = None,
        max_workers: int | None = None,
        placeholder_source: str | Path | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.images_root = Path(images_root or settings.IMAGES_ROOT)
        self.url_prefix = (url_prefix or settings.IMAGES_URL_PREFIX).rstrip("/")
        self.timeout = timeout or settings.IMAGE_DOWNLOAD_TIMEOUT_S
        self.probe_timeout = probe_timeout or settings.IMAGE_PROBE_TIMEOUT_S
        self.attempts = max(1, attempts or settings.IMAGE_DOWNLOAD_ATTEMPTS)
        self.retry_delay_s = settings.IMAGE_RETRY_DELAY_S if retry_delay_s is None else retry_delay_s
        self.max_workers = max_workers or settings.IMAGE_CONCURRENCY
        self.placeholder_source = Path(placeholder_source or settings.PLACEHOLDER_IMAGE_PATH)
        self.sleep_fn = sleep_fn
        self.log = logger or logging.getLogger(__name__)

        self._client = client
        self._owns_client = client is None
        self._executor: ThreadPoolExecutor | None = None
        self._inflight: dict[tuple[str, str], Future[str]] = {}
        self._lock = threading.Lock()
        self._client_lock = threading.Lock()

    def __enter__(self) -> ImageCache:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def client(self) -> Any:
        if self._client is None:
            with self._client_lock:
                # Pool workers race here on the first download.
                if self._client is None:
                    self._client = httpx.Client(
                        headers={"User-Agent": USER_AGENT},
                        timeout=self.timeout,
                        follow_redirects=True,
                    )
        return self._client

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def submit(
        self,
        url: str | None,
        site: str,
        base_url: str | None = None,
        fallback_key: str | None = None,
    ) -> Future[str]:
        absolute = absolutize_url(url or "", base_url)
        dedup_key = normalize_image_url(absolute) if absolute else f"placeholder:{fallback_key or site}"
        with self._lock:
            future = self._inflight.get((site, dedup_key))
            if future is None:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(
                        max_workers=self.max_workers,
                        thread_name_prefix="image-cache",
                    )
                future = self._executor.submit(self.resolve, url, site, base_url, fallback_key)
                self._inflight[(site, dedup_key)] = future
        return future

    def resolve(
        self,
        url: str | None,
        site: str,
        base_url: str | None = None,
        fallback_key: str | None = None,
    ) -> str:
        absolute = absolutize_url(url or "", base_url)
        if absolute is None:
            if url:
                self.log.warning("Unusable image url=%r site=%s; using placeholder", url, site)
            return self.placeholder(site, fallback_key or url or site)

        normalized = normalize_image_url(absolute)
        key = hash_key(normalized)
        site_dir = self.images_root / site
        site_dir.mkdir(parents=True, exist_ok=True)

        existing = self._find_cached(site_dir, key)
        if existing is not None:
            self.log.debug("Image cache hit url=%s file=%s", normalized, existing.name)
            return self.public_url(site, existing.name)

        extension = self._resolve_extension(absolute)
        filename = f"{key}{extension}"
        target = site_dir / filename
        if target.exists():
            return self.public_url(site, filename)

        if self._download(absolute, target):
            return self.public_url(site, filename)
        return self.placeholder(site, normalized)

    def placeholder(self, site: str, fallback_key: str) -> str:
        filename = f"{PLACEHOLDER_PREFIX}{hash_key(fallback_key)}{DEFAULT_EXTENSION}"
        site_dir = self.images_root / site
        site_dir.mkdir(parents=True, exist_ok=True)
        target = site_dir / filename
        if not target.exists():
            if self.placeholder_source.is_file():
                shutil.copyfile(self.placeholder_source, target)
            else:
                self.log.warning("Placeholder source missing path=%s", self.placeholder_source)
        return self.public_url(site, filename)

    def public_url(self, site: str, filename: str) -> str:
        return f"{self.url_prefix}/{site}/{filename}"

    @staticmethod
    def _find_cached(site_dir: Path, key: str) -> Path | None:
        for extension in KNOWN_EXTENSIONS:
            candidate = site_dir / f"{key}{extension}"
            if candidate.exists():
                return candidate
        return None

    def _resolve_extension(self, url: str) -> str:
        suffix = PurePosixPath(urlsplit(url).path).suffix.lower()
        if suffix in KNOWN_EXTENSIONS:
            return suffix
        try:
            response = self.client.head(url, timeout=self.probe_timeout)
        except httpx.HTTPError as exc:
            self.log.info("Image probe failed url=%s error=%s", url, exc)
            return DEFAULT_EXTENSION
        content_type = (response.headers.get("content-type") or "").split(";")[0].strip().lower()
        return CONTENT_TYPE_EXTENSIONS.get(content_type, DEFAULT_EXTENSION)

    def _download(self, url: str, target: Path) -> bool:
        for attempt in range(1, self.attempts + 1):
            try:
                response = self.client.get(url, timeout=self.timeout)
                response.raise_for_status()
                self._write_atomic(target, response.content)
                self.log.info("Image downloaded url=%s file=%s", url, target.name)
                return True
            except (httpx.HTTPError, OSError) as exc:
                if attempt < self.attempts:
                    self.log.warning(
                        "Image download failed url=%s attempt=%s/%s error=%s; retrying",
                        url,
                        attempt,
                        self.attempts,
                        exc,
                    )
                    self.sleep_fn(self.retry_delay_s)
                    continue
                self.log.error("Image download gave up url=%s attempts=%s error=%s", url, attempt, exc)
        return False

    @staticmethod
    def _write_atomic(target: Path, content: bytes) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=".download-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            os.replace(tmp_path, target)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
