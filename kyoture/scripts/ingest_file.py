from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from kyoture.core.env import load_env
from kyoture.db.session import get_session, init_db
from kyoture.logging import configure_logging
from kyoture.services.images.image_cache import ImageCache
from kyoture.services.ingest.orchestrator import IngestionOrchestrator
from kyoture.services.llm.text_analysis import TextAnalysisClient
from kyoture.services.normalize.source_adapters import TextAnalyzer


def load_records(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("events", [])
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of events in {path}")
    return payload


def ingest_file(
    session: Session,
    site: str,
    path: Path,
    analyzer: TextAnalyzer | None = None,
    image_cache: ImageCache | None = None,
) -> dict[str, Any]:
    records = load_records(path)
    orchestrator = IngestionOrchestrator(session, analyzer=analyzer, image_cache=image_cache)
    result = orchestrator.run(site, records)
    summary = {
        "site": site,
        "records": len(records),
        "processed": result.processed,
        "success": result.success,
        "message": result.message,
    }
    print(
        f"site={summary['site']} records={summary['records']} "
        f"processed={summary['processed']} success={summary['success']}"
    )
    for outcome in result.outcomes:
        if outcome.status != "processed":
            print(f"- #{outcome.index} {outcome.status}: {outcome.reason}")
    return summary


def main() -> None:
    load_env()
    configure_logging()

    parser = argparse.ArgumentParser(description="Ingest a JSON file of scraped events without going through HTTP.")
    parser.add_argument("path", type=Path, help="JSON file holding a list of events or {\"events\": [...]}")
    parser.add_argument("--site", required=True, help="Source key, or a comma-joined list of keys")
    parser.add_argument("--no-analysis", action="store_true", help="Parse free-text records locally only")
    args = parser.parse_args()

    init_db()
    session_gen = get_session()
    session = next(session_gen)
    try:
        analyzer = None if args.no_analysis else TextAnalysisClient.from_settings()
        summary = ingest_file(session, args.site, args.path, analyzer=analyzer)
    finally:
        try:
            next(session_gen)
        except StopIteration:
            pass

    raise SystemExit(0 if summary["success"] else 1)


if __name__ == "__main__":
    main()
