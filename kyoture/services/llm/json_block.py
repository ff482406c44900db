from __future__ import annotations

import json
from typing import Any

from kyoture.core.errors import MalformedResponseError


def find_json_block(text: str) -> str | None:
    """Return the first balanced `{...}` block in text, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this opening brace; try the next one.
        start = text.find("{", start + 1)
    return None


def parse_json_block(text: str | None) -> dict[str, Any]:
    if not text:
        raise MalformedResponseError("empty response content", raw_response=text)
    block = find_json_block(text)
    if block is None:
        raise MalformedResponseError("no JSON object found in response", raw_response=text)
    try:
        data = json.loads(block)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"invalid JSON in response: {exc}", raw_response=text) from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("response JSON is not an object", raw_response=text)
    return data
