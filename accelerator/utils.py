"""Shared utility functions used across accelerator modules."""
from __future__ import annotations

import json
import re
from typing import Any

_MISSING = object()

_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def extract_json_array(text: str) -> Any:
    """Parse the JSON between the first ``[`` and the last ``]`` of *text*.

    Raises ``ValueError`` (or ``json.JSONDecodeError``) when no array can be parsed.
    """
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end < start:
        raise ValueError("no JSON array in text")
    return json.loads(text[start:end + 1])


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def clip(value: Any, max_len: int) -> str:
    """Coerce to a stripped string no longer than *max_len*."""
    return str(value if value is not None else "").strip()[:max_len]
