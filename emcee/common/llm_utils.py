"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re

_FLAG_RE_TEMPLATE = r'"{key}"\s*:\s*(true|false)'


def strip_code_fences(raw: str) -> str:
    """Remove markdown code fence lines (```json ... ```) from a response."""
    if not raw.startswith("```"):
        return raw
    lines = raw.split("\n")
    lines = [l for l in lines if not l.strip().startswith("```")]
    return "\n".join(lines)


def parse_llm_json(raw: str) -> dict:
    """Parse JSON from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict

    Anything that does not decode to a JSON object yields an empty dict.
    """
    if not raw:
        return {}

    text = strip_code_fences(raw.strip())

    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else {}
    except json.JSONDecodeError:
        pass

    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            data = json.loads(raw[start:end])
            return data if isinstance(data, dict) else {}
        except json.JSONDecodeError:
            pass

    return {}


def sniff_json_flag(raw: str, key: str) -> bool:
    """Best-effort lookup of a boolean ``"key": true`` in malformed JSON text.

    Matching is case-insensitive on both the key and the value.
    """
    if not raw:
        return False
    pattern = _FLAG_RE_TEMPLATE.format(key=re.escape(key))
    match = re.search(pattern, raw, flags=re.IGNORECASE)
    return bool(match) and match.group(1).lower() == "true"
