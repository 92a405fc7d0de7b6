"""Helpers for Mermaid markup returned by the model."""
from __future__ import annotations

import re
from typing import Iterable, List

from autodiagram.chart_types import MERMAID_HEADERS, ChartType


_FENCE_RE = re.compile(r"```(?:mermaid)?[ \t]*\n?([\s\S]*?)```", re.IGNORECASE)

_BLOCK_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"<\s*script", re.IGNORECASE), "<script>"),
    (re.compile(r"<\s*iframe", re.IGNORECASE), "<iframe>"),
    (re.compile(r"javascript:\s*", re.IGNORECASE), "javascript URI"),
)

# Longest keyword first so "stateDiagram-v2" wins over "stateDiagram".
_HEADER_INDEX: List[tuple[str, ChartType]] = sorted(
    ((keyword, chart_type) for chart_type, keywords in MERMAID_HEADERS.items() for keyword in keywords),
    key=lambda item: len(item[0]),
    reverse=True,
)


def extract_fenced(text: str) -> str:
    """Return the body of the first Markdown code fence, or the trimmed text."""
    if not text:
        return ""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def normalize_markup(text: str) -> str:
    body = extract_fenced(text)
    # Models sometimes return literal "\n" sequences inside JSON strings.
    if "\n" not in body and "\\n" in body:
        body = body.replace("\\n", "\n")
    return body.strip()


def _significant_lines(markup: str) -> Iterable[tuple[int, str]]:
    in_frontmatter = False
    for number, raw in enumerate((markup or "").splitlines(), start=1):
        line = raw.strip()
        if number == 1 and line == "---":
            in_frontmatter = True
            continue
        if in_frontmatter:
            if line == "---":
                in_frontmatter = False
            continue
        if not line or line.startswith("%%"):
            continue
        yield number, line


def header_line(markup: str) -> tuple[int, str] | None:
    """Line number and text of the first statement, skipping comments and frontmatter."""
    return next(iter(_significant_lines(markup)), None)


def detect_chart_type(markup: str) -> ChartType | None:
    first = header_line(markup)
    if first is None:
        return None
    token = first[1].split()[0].rstrip(";")
    for keyword, chart_type in _HEADER_INDEX:
        if token == keyword:
            return chart_type
    return None


def blocked_tokens(markup: str) -> List[str]:
    return [label for pattern, label in _BLOCK_PATTERNS if pattern.search(markup or "")]
