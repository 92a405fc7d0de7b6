"""Lenient JSON extraction from model text output."""
from __future__ import annotations

import ast
import json
import re
from typing import Any

from autodiagram.errors import SchemaValidationFailedError


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_LITERAL_RE = re.compile(r"(?<=[:\[,]\s)(true|false|null)\b|(?<=[:\[,])(true|false|null)\b")
_PY_LITERALS = {"true": "True", "false": "False", "null": "None"}


def _candidate(text: str) -> str | None:
    # A bare JSON value may itself carry fenced markup inside a string.
    if not text.lstrip().startswith(("{", "[")):
        fenced = _FENCE_RE.search(text)
        if fenced:
            text = fenced.group(1)
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str) -> Any:
    """Parse the first JSON object or array in `text`.

    Tolerates Markdown fences, surrounding prose, smart quotes and trailing
    commas. Raises `SchemaValidationFailedError` when nothing parses.
    """
    raw = _candidate(text or "")
    if raw is None:
        raise SchemaValidationFailedError("No JSON value found in model output")
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    cleaned = raw.replace("“", '"').replace("”", '"').replace("’", "'")
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    pythonish = _LITERAL_RE.sub(lambda m: _PY_LITERALS[m.group(1) or m.group(2)], cleaned)
    try:
        return ast.literal_eval(pythonish)
    except (ValueError, SyntaxError) as exc:
        raise SchemaValidationFailedError(f"Model output is not valid JSON: {exc}") from exc
