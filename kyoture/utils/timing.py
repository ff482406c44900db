from __future__ import annotations

from dataclasses import dataclass
from time import monotonic


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes or hours:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return "".join(parts)


class Timer:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self.start = 0.0
        self.elapsed = 0.0

    def __enter__(self) -> "Timer":
        self.start = monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed = monotonic() - self.start


@dataclass
class BatchStats:
    site: str = ""
    records_total: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    events_created: int = 0
    events_refreshed: int = 0
    images_attached: int = 0
    elapsed_s: float = 0.0

    def status_line(self) -> str:
        return (
            f"site={self.site} records={self.records_total} "
            f"processed={self.processed} skipped={self.skipped} failed={self.failed} | "
            f"events new={self.events_created} refreshed={self.events_refreshed} "
            f"images={self.images_attached} | total={format_duration(self.elapsed_s)}"
        )

    def log_status(self, logger) -> None:
        logger.info(self.status_line())
