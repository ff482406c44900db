from __future__ import annotations

import logging
import threading
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from kyoture.core.errors import UnsupportedSourceError
from kyoture.db.session import get_session
from kyoture.services.ingest.orchestrator import IngestionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# One batch at a time per process.
_batch_lock = threading.Lock()


class ScrapeRequest(BaseModel):
    site: str = Field(min_length=1)
    # Per-record shape is checked by the normalizer; a bad element only skips that record.
    events: list[Any]


@router.post("/scrape")
def scrape(payload: ScrapeRequest, session: Session = Depends(get_session)) -> JSONResponse:
    with _batch_lock:
        orchestrator = IngestionOrchestrator.from_settings(session, logger=logger)
        try:
            result = orchestrator.run(payload.site, payload.events)
        except UnsupportedSourceError as exc:
            logger.warning("Rejected scrape request site=%s", exc.site)
            return JSONResponse(status_code=400, content={"error": str(exc)})

    status_code = 200 if result.success else 422
    return JSONResponse(
        status_code=status_code,
        content={"success": result.success, "message": result.message},
    )
