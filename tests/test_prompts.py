from __future__ import annotations

import pytest

from autodiagram.chart_types import SUPPORTED_CHART_TYPES, ChartType
from autodiagram.models.contracts import FixAttempt
from autodiagram.prompts import (
    PromptTemplate,
    build_generation_user_prompt,
    build_planner_user_prompt,
    build_repair_user_prompt,
    enhance_prompt_with_sources,
    fix_system_prompt,
    generation_system_prompt,
    planner_system_prompt,
)


def _assert_clean(prompt: str) -> None:
    assert "None" not in prompt
    assert "undefined" not in prompt
    assert "${" not in prompt
    assert "\n\n\n" not in prompt


def test_template_strict_format_requires_every_value():
    template = PromptTemplate("Draw a ${kind} for ${topic}")
    assert template.keys == ("kind", "topic")
    assert template.format(kind="flowchart", topic="login") == "Draw a flowchart for login"
    with pytest.raises(ValueError):
        template.format(kind="flowchart", topic=None)


def test_template_optional_format_drops_missing_values():
    template = PromptTemplate("Intro\n\n${a}\n\n${b}\n\nEnd")
    assert template.format_optional(a=None) == "Intro\n\nEnd"


@pytest.mark.parametrize("chart_type", SUPPORTED_CHART_TYPES)
def test_generation_prompt_without_context_degrades_gracefully(chart_type):
    prompt = build_generation_user_prompt(chart_type, original_user_message=None, plan_description=None)
    _assert_clean(prompt)
    assert prompt.startswith(f"Generate a **{chart_type}** chart")
    assert "**Original User Request:**" not in prompt
    assert "**Chart Plan:**" not in prompt
    assert "**Instructions:**" not in prompt
    assert prompt.endswith("Create the Mermaid diagram now.")


def test_generation_prompt_instructions_only_with_both_sections():
    only_plan = build_generation_user_prompt(ChartType.SEQUENCE, plan_description="User logs in")
    assert "**Chart Plan:**\nUser logs in" in only_plan
    assert "**Instructions:**" not in only_plan

    both = build_generation_user_prompt(
        ChartType.SEQUENCE,
        original_user_message="Show me how user authentication works",
        plan_description="User logs in",
    )
    _assert_clean(both)
    assert "**Original User Request:**\nShow me how user authentication works" in both
    assert "**Instructions:**" in both
    assert "ChartType" not in both


def test_repair_prompt_first_attempt_has_no_history_section():
    prompt = build_repair_user_prompt("flowchart", "flowchart TD\n A[x", "Parse error on line 2")
    _assert_clean(prompt)
    assert "**flowchart**" in prompt
    assert "## Original broken chart:\n```mermaid\nflowchart TD\n A[x\n```" in prompt
    assert "## Error encountered:\nParse error on line 2" in prompt
    assert "Previous fix attempts" not in prompt
    assert "This chart should fulfill" not in prompt


def test_repair_prompt_lists_previous_attempts():
    attempts = [
        FixAttempt(chart="flowchart TD\n A[x", error="Parse error on line 2", explanation="Closed bracket"),
        FixAttempt(chart="flowchart TD\n A[x]]", error="Parse error on line 2: unexpected ']'"),
    ]
    prompt = build_repair_user_prompt(
        ChartType.FLOWCHART,
        "flowchart TD\n A[x]]",
        "Parse error on line 2: unexpected ']'",
        plan_description="Login decision flow",
        previous_attempts=attempts,
    )
    _assert_clean(prompt)
    assert 'This chart should fulfill: "Login decision flow"' in prompt
    assert "## Previous fix attempts" in prompt
    assert "### Attempt 1" in prompt and "### Attempt 2" in prompt
    assert "Explanation given: Closed bracket" in prompt
    assert prompt.count("Explanation given:") == 1


def test_enhance_prompt_with_sources():
    assert enhance_prompt_with_sources("Explain TLS", []) == "Explain TLS"
    assert enhance_prompt_with_sources("Explain TLS", None) == "Explain TLS"

    long_text = "x" * 1000
    enhanced = enhance_prompt_with_sources(
        "Explain TLS",
        [
            {"title": "RFC 8446", "url": "https://example.com/rfc", "publishedDate": "2018-08-01", "content": long_text},
            {"url": "https://example.com/blog"},
        ],
    )
    assert enhanced.startswith("Explain TLS\n\n")
    assert "[1] RFC 8446" in enhanced
    assert "Published: 2018-08-01" in enhanced
    assert "x" * 800 + "..." in enhanced
    assert "x" * 801 not in enhanced
    assert "[2] Untitled\nURL: https://example.com/blog" in enhanced


def test_planner_user_prompt_mentions_requested_types():
    prompt = build_planner_user_prompt("Login flow /sequence", requested_types=[ChartType.SEQUENCE])
    _assert_clean(prompt)
    assert prompt.startswith("**User Request:**\nLogin flow /sequence")
    assert "explicitly requested these chart types: sequence" in prompt


def test_system_prompts():
    planner = planner_system_prompt()
    assert "Your supported chart types are: " + ", ".join(SUPPORTED_CHART_TYPES) in planner
    _assert_clean(planner)
    assert '"type"' in generation_system_prompt() and '"chart"' in generation_system_prompt()
    assert "SYNTAX" in fix_system_prompt()
    assert '"explanation"' in fix_system_prompt()


def test_repair_prompt_includes_original_request_when_given():
    prompt = build_repair_user_prompt(
        "sequence",
        "sequenceDiagram\n    A->>B hi",
        "Parse error on line 2",
        original_user_message="Show me how user authentication works",
    )
    _assert_clean(prompt)
    assert "**Original User Request:**\nShow me how user authentication works" in prompt
    assert "**Original User Request:**" not in build_repair_user_prompt("sequence", "x", "y")
