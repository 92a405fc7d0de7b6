"""User-prompt builders for planning, generation and repair.

Optional context that is missing renders as nothing: a prompt never carries
`None`, `undefined` or an unresolved placeholder.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from autodiagram.chart_types import ChartType, parse_chart_type
from autodiagram.models.contracts import FixAttempt
from autodiagram.prompts.template import PromptTemplate


SOURCE_EXCERPT_CHARS = 800


GENERATION_USER_TEMPLATE = PromptTemplate(
    """Generate a **${chart_type}** chart based on the following request:

${original_section}

${plan_section}

${instructions_section}

Create the Mermaid diagram now."""
)

REPAIR_USER_TEMPLATE = PromptTemplate(
    """Please fix ONLY the syntax errors in this **${chart_type}** Mermaid chart. Preserve all original content, structure and intent.

${original_section}

${plan_section}

## Original broken chart:
```mermaid
${chart}
```

## Error encountered:
${error}

${attempts_section}

Return the corrected chart with only syntax fixes applied."""
)

PLANNER_USER_TEMPLATE = PromptTemplate(
    """**User Request:**
${prompt}

${requested_section}"""
)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def build_generation_user_prompt(
    chart_type: ChartType | str,
    original_user_message: str | None = "",
    plan_description: str | None = "",
) -> str:
    chart_type = parse_chart_type(chart_type)
    original = _clean(original_user_message)
    plan = _clean(plan_description)

    original_section = f"**Original User Request:**\n{original}" if original else ""
    plan_section = f"**Chart Plan:**\n{plan}" if plan else ""
    instructions_section = ""
    if original and plan:
        instructions_section = (
            "**Instructions:**\n"
            f"Follow the chart plan closely. It was written to answer the original request "
            f"and describes exactly what this {chart_type.value} chart must show."
        )
    return GENERATION_USER_TEMPLATE.format_optional(
        chart_type=chart_type,
        original_section=original_section,
        plan_section=plan_section,
        instructions_section=instructions_section,
    )


def _format_attempt(number: int, attempt: FixAttempt) -> str:
    lines = [f"### Attempt {number}", "```mermaid", attempt.chart.strip(), "```", f"Error: {attempt.error.strip()}"]
    explanation = _clean(attempt.explanation)
    if explanation:
        lines.append(f"Explanation given: {explanation}")
    return "\n".join(lines)


def build_repair_user_prompt(
    chart_type: ChartType | str,
    chart: str,
    error: str,
    plan_description: str | None = "",
    previous_attempts: Sequence[FixAttempt] = (),
    original_user_message: str | None = "",
) -> str:
    chart_type = parse_chart_type(chart_type)
    plan = _clean(plan_description)
    original = _clean(original_user_message)
    original_section = f"**Original User Request:**\n{original}" if original else ""
    plan_section = f'This chart should fulfill: "{plan}"' if plan else ""

    attempts_section = ""
    if previous_attempts:
        blocks = [_format_attempt(i, attempt) for i, attempt in enumerate(previous_attempts, start=1)]
        attempts_section = (
            "## Previous fix attempts (all of these still failed, do not repeat them):\n\n"
            + "\n\n".join(blocks)
        )
    return REPAIR_USER_TEMPLATE.format_optional(
        chart_type=chart_type,
        original_section=original_section,
        plan_section=plan_section,
        chart=chart.strip(),
        error=_clean(error) or "Unknown render error",
        attempts_section=attempts_section,
    )


def enhance_prompt_with_sources(prompt: str, sources: Iterable[Mapping[str, Any]] | None) -> str:
    """Append numbered web-source excerpts to `prompt`.

    Each source may carry `title`, `url`, `publishedDate` (or `published_date`)
    and `content`/`text`; only the first 800 characters of the content are used.
    The prompt is returned unchanged when there are no sources.
    """
    items = list(sources or [])
    if not items:
        return prompt

    blocks = []
    for number, source in enumerate(items, start=1):
        title = _clean(source.get("title")) or "Untitled"
        lines = [f"[{number}] {title}"]
        url = _clean(source.get("url"))
        if url:
            lines.append(f"URL: {url}")
        published = _clean(source.get("publishedDate") or source.get("published_date"))
        if published:
            lines.append(f"Published: {published}")
        content = _clean(source.get("content") or source.get("text"))
        if content:
            excerpt = content[:SOURCE_EXCERPT_CHARS]
            if len(content) > SOURCE_EXCERPT_CHARS:
                excerpt += "..."
            lines.append(f"Content: {excerpt}")
        blocks.append("\n".join(lines))

    return (
        f"{prompt}\n\n"
        "Use the following web sources as context. Prefer facts from them over prior "
        "knowledge and cite them by number in chart descriptions where relevant.\n\n"
        + "\n\n".join(blocks)
    )


def build_planner_user_prompt(
    prompt: str,
    requested_types: Sequence[ChartType] = (),
    sources: Iterable[Mapping[str, Any]] | None = None,
) -> str:
    requested_section = ""
    if requested_types:
        names = ", ".join(parse_chart_type(t).value for t in requested_types)
        requested_section = (
            f"The user explicitly requested these chart types: {names}. "
            "Include one chart of each requested type."
        )
    body = PLANNER_USER_TEMPLATE.format_optional(prompt=_clean(prompt), requested_section=requested_section)
    return enhance_prompt_with_sources(body, sources)
