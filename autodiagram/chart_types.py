"""Registry of the Mermaid chart types the application can plan and generate."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

from autodiagram.errors import UnsupportedChartTypeError


class ChartType(str, Enum):
    FLOWCHART = "flowchart"
    SEQUENCE = "sequence"
    CLASS = "class"
    STATE = "state"
    GANTT = "gantt"
    JOURNEY = "journey"
    MINDMAP = "mindmap"
    TIMELINE = "timeline"
    GITGRAPH = "gitgraph"


SUPPORTED_CHART_TYPES: Tuple[str, ...] = tuple(t.value for t in ChartType)

# First keyword of the markup for each chart type, as accepted by Mermaid.
MERMAID_HEADERS: Dict[ChartType, Tuple[str, ...]] = {
    ChartType.FLOWCHART: ("flowchart", "graph"),
    ChartType.SEQUENCE: ("sequenceDiagram",),
    ChartType.CLASS: ("classDiagram", "classDiagram-v2"),
    ChartType.STATE: ("stateDiagram", "stateDiagram-v2"),
    ChartType.GANTT: ("gantt",),
    ChartType.JOURNEY: ("journey",),
    ChartType.MINDMAP: ("mindmap",),
    ChartType.TIMELINE: ("timeline",),
    ChartType.GITGRAPH: ("gitGraph",),
}


def parse_chart_type(value: object) -> ChartType:
    """Return the registry member for `value` or raise; values are never coerced."""
    if isinstance(value, ChartType):
        return value
    if isinstance(value, str):
        try:
            return ChartType(value)
        except ValueError:
            pass
    raise UnsupportedChartTypeError(value)


def is_supported(value: object) -> bool:
    try:
        parse_chart_type(value)
    except UnsupportedChartTypeError:
        return False
    return True


@dataclass(frozen=True)
class ChartCommand:
    command: str
    type: ChartType | None
    description: str


CHART_COMMANDS: Tuple[ChartCommand, ...] = (
    ChartCommand("/flowchart", ChartType.FLOWCHART, "Create a flowchart diagram"),
    ChartCommand("/sequence", ChartType.SEQUENCE, "Create a sequence diagram"),
    ChartCommand("/class", ChartType.CLASS, "Create a class diagram"),
    ChartCommand("/state", ChartType.STATE, "Create a state diagram"),
    ChartCommand("/gantt", ChartType.GANTT, "Create a Gantt chart"),
    ChartCommand("/journey", ChartType.JOURNEY, "Create a user journey map"),
    ChartCommand("/mindmap", ChartType.MINDMAP, "Create a mind map"),
    ChartCommand("/timeline", ChartType.TIMELINE, "Create a timeline"),
    ChartCommand("/gitgraph", ChartType.GITGRAPH, "Create a Git graph"),
    ChartCommand("/", None, "Show all available chart types"),
)

_COMMAND_RE = re.compile(r"(?<![\w/])/([a-z]+)\b", re.IGNORECASE)


def suggest_commands(prefix: str) -> List[ChartCommand]:
    """Commands whose name starts with `prefix` (case-insensitive).

    Only an incomplete command (a slash with no whitespace after it) yields
    suggestions.
    """
    token = (prefix or "").lstrip()
    if not token.startswith("/") or any(char.isspace() for char in token):
        return []
    lowered = token.lower()
    return [cmd for cmd in CHART_COMMANDS if cmd.command.lower().startswith(lowered)]


def extract_chart_commands(prompt: str) -> List[ChartType]:
    """Chart types the user asked for with slash commands, in order, without duplicates."""
    found: List[ChartType] = []
    for match in _COMMAND_RE.finditer(prompt or ""):
        name = match.group(1).lower()
        if name in SUPPORTED_CHART_TYPES:
            chart_type = ChartType(name)
            if chart_type not in found:
                found.append(chart_type)
    return found
