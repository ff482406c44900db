from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

import openai
from openai import OpenAI

from kyoture.config import settings
from kyoture.core.errors import MalformedResponseError, TransientIOError
from kyoture.services.ingest.sources import SourceProfile
from kyoture.services.llm.json_block import parse_json_block

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


def build_directive(event_data: dict[str, Any], profile: SourceProfile) -> str:
    event_json = json.dumps(event_data, ensure_ascii=False, indent=2, default=str)
    categories = ", ".join(f"'{name}'" for name in profile.categories)
    tags = ", ".join(f"'{name}'" for name in profile.tags)
    return (
        f"Given the following JSON data extracted from {profile.label}, parse and transform it "
        "into the specified JSON format. Return only the extracted data in valid JSON format. "
        "Do not include any comments, explanations, or additional text outside the JSON structure.\n\n"
        f"Event Data:\n{event_json}\n\n"
        "Extraction Requirements:\n"
        "1. Date Parsing:\n"
        "   - Extract 'date_start' and 'date_end' from 'raw_date' or any date information.\n"
        "   - If only a single date is found, set both 'date_start' and 'date_end' to this value.\n"
        "   - For a range like 'YYYY.MM.DD (DAY) - MM.DD (DAY)', the end date uses the start year.\n"
        "   - Format dates as 'YYYY-MM-DD'.\n"
        "2. Schedule Parsing:\n"
        "   - Build a 'schedule' array with 'date', 'time_start', 'time_end' and 'special_notes' "
        "from 'raw_date' or 'raw_schedule'.\n"
        "   - If a time is 'TBA' or not specified, set it to null.\n"
        "3. Category Assignment:\n"
        f"   - Assign one or more of these categories only: [{categories}].\n"
        "4. Tag Assignment:\n"
        f"   - Assign one or more of these tags only: [{tags}].\n"
        "5. Price Parsing:\n"
        "   - Read 'raw_price_text' or any price information into a 'prices' array.\n"
        "   - Each price has 'price_tier', 'amount' as a plain digit string without separators or "
        "currency symbols, 'currency' (default 'JPY') and 'discount_info' or null.\n"
        "   - Separate advance and door prices into different tiers.\n"
        "   - If a price is 'TBA', set 'amount' to null. If the event is free, set 'amount' to '0' "
        "and 'price_tier' to 'Free'.\n"
        "6. Output Format:\n"
        '   {"events": [{"title": "", "date_start": "YYYY-MM-DD", "date_end": "YYYY-MM-DD", '
        '"venue": "", "organization": "", "event_link": "", "image_url": "", '
        '"schedule": [{"date": "YYYY-MM-DD", "time_start": "HH:mm", "time_end": "HH:mm", '
        '"special_notes": ""}], "categories": [], "tags": [], '
        '"prices": [{"price_tier": "General", "amount": "1000", "currency": "JPY", '
        '"discount_info": null}]}]}\n'
    )


class TextAnalysisClient:
    """Free-text to structured event conversion through the chat completions API."""

    def __init__(
        self,
        client: Any | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        attempts: int | None = None,
        rate_limit_delay_s: float | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self.model = model or settings.OPENAI_MODEL
        self.max_tokens = max_tokens or settings.TEXT_ANALYSIS_MAX_TOKENS
        self.temperature = settings.TEXT_ANALYSIS_TEMPERATURE if temperature is None else temperature
        self.attempts = attempts or settings.TEXT_ANALYSIS_ATTEMPTS
        self.rate_limit_delay_s = (
            settings.TEXT_ANALYSIS_RATE_LIMIT_DELAY_S if rate_limit_delay_s is None else rate_limit_delay_s
        )
        self.sleep_fn = sleep_fn
        self.log = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, logger: logging.Logger | None = None) -> TextAnalysisClient | None:
        if not settings.OPENAI_API_KEY:
            return None
        return cls(logger=logger)

    def _get_client(self) -> Any:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise EnvironmentError("OPENAI_API_KEY is not set")
            self._client = OpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.TEXT_ANALYSIS_TIMEOUT_S,
                max_retries=0,
            )
        return self._client

    def analyze(self, event_data: dict[str, Any], profile: SourceProfile) -> list[dict[str, Any]]:
        prompt = build_directive(event_data, profile)
        content = self._complete(prompt, site=profile.key)
        try:
            data = parse_json_block(content)
        except MalformedResponseError:
            self.log.error("Text analysis returned undecodable content site=%s response=%s", profile.key, content)
            raise

        events = data.get("events")
        if not isinstance(events, list):
            raise MalformedResponseError("response JSON has no `events` list", raw_response=content)
        return [item for item in events if isinstance(item, dict)]

    def _complete(self, prompt: str, site: str) -> str | None:
        client = self._get_client()
        for attempt in range(1, self.attempts + 1):
            try:
                response = client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            except RETRYABLE_ERRORS as exc:
                if attempt < self.attempts:
                    self.log.warning(
                        "Text analysis call failed site=%s attempt=%s/%s error=%s; retrying",
                        site,
                        attempt,
                        self.attempts,
                        exc,
                    )
                    self.sleep_fn(self.rate_limit_delay_s)
                    continue
                raise TransientIOError(f"text analysis unavailable after {attempt} attempts: {exc}") from exc
            except openai.APIError as exc:
                raise TransientIOError(f"text analysis request failed: {exc}") from exc

            choices = getattr(response, "choices", None) or []
            if not choices:
                raise MalformedResponseError("response has no choices", raw_response=str(response))
            return choices[0].message.content
        return None
