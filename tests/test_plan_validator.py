from __future__ import annotations

import pytest

from autodiagram.chart_types import ChartType
from autodiagram.errors import PlanValidationError
from autodiagram.tools.plan_validator import validate_plans


def test_validate_plans_returns_typed_plans():
    plans = validate_plans(
        [
            {"type": "sequence", "description": "Login between **User** and **Auth Service**"},
            {"type": "flowchart", "description": "Credential checks"},
        ]
    )
    assert [p.type for p in plans] == [ChartType.SEQUENCE, ChartType.FLOWCHART]
    assert plans[0].description.startswith("Login")


def test_empty_list_is_valid():
    assert validate_plans([]) == []


def test_non_array_is_rejected():
    with pytest.raises(PlanValidationError) as exc_info:
        validate_plans({"type": "flowchart", "description": "x"})
    assert exc_info.value.code == "invalid_request"


def test_unknown_type_invalidates_element_and_reports_it():
    with pytest.raises(PlanValidationError) as exc_info:
        validate_plans(
            [
                {"type": "flowchart", "description": "fine"},
                {"type": "pie", "description": "not supported"},
            ]
        )
    issues = exc_info.value.issues
    assert issues == [
        {
            "index": 1,
            "field": "type",
            "message": "type must be one of: flowchart, sequence, class, state, gantt, journey, mindmap, timeline, gitgraph",
        }
    ]


@pytest.mark.parametrize(
    "element",
    [
        {"type": "flowchart"},
        {"type": "flowchart", "description": "   "},
        {"description": "missing type"},
        "flowchart",
    ],
)
def test_missing_or_blank_fields_are_rejected(element):
    with pytest.raises(PlanValidationError) as exc_info:
        validate_plans([element])
    assert exc_info.value.issues[0]["index"] == 0
    assert "issues" in exc_info.value.to_dict()
