import pytest

from leadpilot.automation.conditions import evaluate_conditions, matches
from leadpilot.automation.schemas import Condition

PAYLOAD = {
    "leadTemperature": "Hot",
    "lead": {"score": 42, "status": "New", "tags": ["yoga", "vip"], "notes": ""},
    "message": {"text": "I want to BOOK a class"},
}


@pytest.mark.parametrize(
    "condition, expected",
    [
        ({"field": "leadTemperature", "op": "eq", "value": "Hot"}, True),
        ({"field": "leadTemperature", "op": "eq", "value": "Cold"}, False),
        ({"field": "lead_temperature", "op": "ne", "value": "Cold"}, True),
        ({"field": "lead.score", "op": "gt", "value": "40"}, True),
        ({"field": "lead.score", "op": "lt", "value": 40}, False),
        ({"field": "lead.score", "operator": "equals", "value": "42"}, True),
        ({"field": "message.text", "operator": "contains", "value": "book"}, True),
        ({"field": "message.text", "operator": "not_contains", "value": "cancel"}, True),
        ({"field": "lead.tags", "operator": "contains", "value": "vip"}, True),
        ({"field": "lead.notes", "operator": "is_empty"}, True),
        ({"field": "lead.missing", "operator": "is_empty"}, True),
        ({"field": "lead.status", "operator": "is_not_empty"}, True),
        ({"field": "lead.status", "operator": "in", "value": "New, Contacted"}, True),
        ({"field": "lead.status", "operator": "not_in", "value": ["Won", "Lost"]}, True),
        ({"field": "lead.status", "operator": "matches_regex", "value": ".*"}, False),
    ],
)
def test_single_condition(condition, expected):
    assert matches(condition, PAYLOAD) is expected


def test_empty_condition_list_always_holds():
    assert evaluate_conditions([], PAYLOAD)
    assert evaluate_conditions(None, PAYLOAD)


def test_and_or_logic_with_models():
    hot = Condition(field="leadTemperature", op="eq", value="Hot")
    won = Condition(field="lead.status", operator="eq", value="Won")
    assert not evaluate_conditions([hot, won], PAYLOAD)
    assert evaluate_conditions([hot, won], PAYLOAD, logic="OR")
    assert not evaluate_conditions([won], PAYLOAD, logic="or")
