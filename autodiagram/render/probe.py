"""Render probes decide whether a chart's markup renders."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from autodiagram.chart_types import ChartType
from autodiagram.tools.markup import blocked_tokens, detect_chart_type, header_line


logger = logging.getLogger(__name__)

_PAIRS = {")": "(", "]": "[", "}": "{"}

# Message and label text in these types is free-form; brackets there carry no structure.
_FREE_TEXT_TYPES = {
    ChartType.SEQUENCE,
    ChartType.GANTT,
    ChartType.JOURNEY,
    ChartType.TIMELINE,
    ChartType.MINDMAP,
    ChartType.GITGRAPH,
}
# A ":" outside any bracket starts a description or relation label.
_LABEL_AFTER_COLON_TYPES = {ChartType.CLASS, ChartType.STATE}


@dataclass(frozen=True)
class RenderOutcome:
    ok: bool
    error: Optional[str] = None
    svg: Optional[str] = None


class RenderProbe(Protocol):
    async def probe(self, markup: str) -> RenderOutcome:
        ...


def _bracket_error(markup: str, chart_type: ChartType) -> Optional[str]:
    if chart_type in _FREE_TEXT_TYPES:
        return None
    flowchart = chart_type == ChartType.FLOWCHART
    stops_at_colon = chart_type in _LABEL_AFTER_COLON_TYPES
    stack: List[Tuple[str, int]] = []
    for number, line in enumerate(markup.splitlines(), start=1):
        stripped = line.strip()
        if stripped.startswith("%%"):
            continue
        depth = len(stack)
        in_quote = False
        in_label = False
        previous = ""
        for char in stripped:
            if char == '"' and not in_label:
                in_quote = not in_quote
            elif in_quote:
                pass
            elif flowchart and char == "|" and len(stack) == depth:
                in_label = not in_label
            elif in_label:
                pass
            elif stops_at_colon and char == ":" and len(stack) == depth:
                break
            elif flowchart and char == ">" and not stack and (previous.isalnum() or previous == "_"):
                # Asymmetric node: id>label]
                stack.append((">", number))
            elif char in "([{":
                stack.append((char, number))
            elif char in _PAIRS:
                top = stack[-1][0] if stack else None
                if top != _PAIRS[char] and not (char == "]" and top == ">"):
                    return f"Parse error on line {number}: unexpected '{char}'"
                stack.pop()
            previous = char
        if in_quote:
            return f"Parse error on line {number}: unterminated string"
        if in_label:
            return f"Parse error on line {number}: unterminated edge label"
    if stack:
        char, number = stack[-1]
        return f"Parse error on line {number}: unclosed '{char}'"
    return None


def check_markup(markup: str) -> Optional[str]:
    """Syntactic pre-render check; returns an error string or None."""
    if not (markup or "").strip():
        return "Parse error on line 1: empty diagram"
    first = header_line(markup)
    if first is None:
        return "Parse error on line 1: missing diagram type declaration"
    chart_type = detect_chart_type(markup)
    if chart_type is None:
        number, text = first
        keyword = text.split()[0]
        return f"Parse error on line {number}: unknown diagram type '{keyword}'"
    blocked = blocked_tokens(markup)
    if blocked:
        return f"Blocked content in diagram: {', '.join(blocked)}"
    return _bracket_error(markup, chart_type)


class HeaderRenderProbe:
    """In-process probe that catches the structural errors a renderer would reject."""

    async def probe(self, markup: str) -> RenderOutcome:
        error = check_markup(markup)
        if error:
            logger.debug("Markup failed header probe", extra={"error": error})
            return RenderOutcome(ok=False, error=error)
        return RenderOutcome(ok=True)
