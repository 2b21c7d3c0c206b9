"""Extraction of structured payloads from free-form oracle text.

LLM answers frequently arrive wrapped in markdown fences or surrounded by
chatter. The helpers here pull out the first JSON object that actually parses.
"""

import json
import re
from typing import Any, Dict, Iterator

from semanticast.core.errors import MalformedOracleResponse

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.IGNORECASE | re.DOTALL)


def extract_json_payload(text: str) -> Dict[str, Any]:
    """Return the first well-formed JSON object found in ``text``.

    Search order:
      1. Contents of each fenced code block.
      2. Every balanced ``{ ... }`` span in the raw text, left to right.

    Args:
        text: Raw oracle output.

    Returns:
        The decoded JSON object.

    Raises:
        MalformedOracleResponse: If no candidate decodes to a JSON object.
    """
    if not text or not text.strip():
        raise MalformedOracleResponse("empty oracle response")

    candidates = [m.group(1) for m in _FENCE_RE.finditer(text)]
    candidates.append(text)

    for candidate in candidates:
        for span in _balanced_objects(candidate):
            try:
                parsed = json.loads(span, strict=False)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed

    raise MalformedOracleResponse(f"no JSON object in oracle response: {text[:120]!r}")


def _balanced_objects(text: str) -> Iterator[str]:
    """Yield every brace-balanced span that starts at a ``{``, string-aware."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if escaped:
                escaped = False
                continue
            if ch == "\\" and in_string:
                escaped = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    yield text[start:i + 1]
                    break
        start = text.find("{", start + 1)
