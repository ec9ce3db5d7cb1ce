"""JSON extraction from model output.

Models wrap JSON in prose or markdown fences often enough that every caller
goes through one of two entry points here:

* ``extract_json`` - lenient; tries the raw text, a fenced block, then the
  outermost ``{...}`` span, and returns ``None`` instead of raising.
* ``parse_json_strict`` - same recovery steps but raises ``ValueError`` so
  planners can feed the error back into a repair prompt.
"""

import json
import re
from typing import Any

FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
OBJECT_SPAN_RE = re.compile(r"\{[\s\S]*\}")


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def extract_json(text: str | None) -> dict[str, Any] | None:
    """Recover a JSON object from ``text`` or return None."""
    if not text:
        return None
    candidate = text.strip()

    data = _loads_object(candidate)
    if data is not None:
        return data

    fenced = FENCED_BLOCK_RE.search(candidate)
    if fenced:
        data = _loads_object(fenced.group(1).strip())
        if data is not None:
            return data

    span = OBJECT_SPAN_RE.search(candidate)
    if span:
        data = _loads_object(span.group(0))
        if data is not None:
            return data

    return None


def parse_json_strict(response: str) -> dict[str, Any]:
    """Parse a JSON object from an LLM response.

    Raises:
        ValueError: If no JSON object can be recovered
    """
    data = extract_json(response)
    if data is None:
        preview = (response or "").strip()[:200]
        raise ValueError(f"Failed to parse JSON object from model output: {preview!r}")
    return data
