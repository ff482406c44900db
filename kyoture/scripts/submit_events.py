from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

import httpx

from kyoture.core.env import load_env
from kyoture.logging import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8000/api/scrape"


def submit_events(
    site: str,
    events: list[dict[str, Any]],
    endpoint: str = DEFAULT_ENDPOINT,
    client: httpx.Client | None = None,
    timeout: float = 300.0,
) -> tuple[int, dict[str, Any]]:
    owns_client = client is None
    client = client or httpx.Client(timeout=timeout)
    try:
        response = client.post(endpoint, json={"site": site, "events": events})
    finally:
        if owns_client:
            client.close()

    try:
        body = response.json()
    except ValueError:
        body = {"error": response.text}
    if response.status_code >= 400:
        logger.warning("Submission rejected site=%s status=%s body=%s", site, response.status_code, body)
    else:
        logger.info("Submission accepted site=%s message=%s", site, body.get("message"))
    return response.status_code, body


def main() -> None:
    load_env()
    configure_logging()

    parser = argparse.ArgumentParser(description="Post scraped events to a running ingestion service.")
    parser.add_argument("path", type=Path, help="JSON file holding a list of events")
    parser.add_argument("--site", required=True, help="Source key, or a comma-joined list of keys")
    parser.add_argument("--endpoint", default=DEFAULT_ENDPOINT)
    args = parser.parse_args()

    events = json.loads(args.path.read_text(encoding="utf-8"))
    status, body = submit_events(args.site, events, endpoint=args.endpoint)
    print(f"status={status} body={body}")


if __name__ == "__main__":
    main()
