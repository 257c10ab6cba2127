"""Shared utilities for parsing refinement responses."""

from __future__ import annotations

import json
import re

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*$")


def strip_code_fences(raw: str) -> str:
    """Drop markdown fence lines (```json ... ```) around a response."""
    lines = [line for line in raw.split("\n") if not _FENCE_RE.match(line)]
    return "\n".join(lines).strip()


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict

    Anything that decodes to something other than an object (a list, a bare
    string) is treated as unparseable.
    """
    if not raw:
        return {}

    text = strip_code_fences(raw)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None

    if data is None:
        start = text.find("{")
        end = text.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                data = json.loads(text[start:end])
            except json.JSONDecodeError:
                return {}

    return data if isinstance(data, dict) else {}
