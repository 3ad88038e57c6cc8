from __future__ import annotations

import json

from plan_compiler.compiler.parse import parse_plan, validate_plan_structure
from plan_compiler.schema.jsonschema_adapter import check_schema, format_path, get_validator
from plan_compiler.schema.models import BranchStep, FilterOperator, Plan, TriggerHttpStep
from plan_compiler.schema.plan_schema import PLAN_SCHEMA, PLAN_SCHEMA_ID

TRIGGER = {"type": "trigger.http", "path": "/leads", "secretHmac": False}


def _payload(*steps: dict, name: str = "Lead Router") -> dict:
    return {"version": "1", "name": name, "steps": list(steps)}


def test_plan_schema_is_valid_draft_2020_12() -> None:
    check_schema(PLAN_SCHEMA)
    assert PLAN_SCHEMA["$defs"]["step"]["oneOf"]
    assert get_validator(PLAN_SCHEMA, schema_id=PLAN_SCHEMA_ID) is get_validator(
        PLAN_SCHEMA, schema_id=PLAN_SCHEMA_ID
    )


def test_parse_plan_returns_typed_plan() -> None:
    payload = _payload(
        TRIGGER,
        {
            "type": "branch",
            "cases": [
                {
                    "when": {"field": "score", "op": "gt", "value": 80},
                    "steps": [{"type": "action.slack.postMessage", "channel": "#hot", "text": "hi"}],
                }
            ],
            "else": [{"type": "custom.action", "actionSlug": "enrich"}],
        },
    )

    result = parse_plan(payload)

    assert result.valid
    assert result.errors == []
    assert isinstance(result.plan, Plan)
    assert isinstance(result.plan.steps[0], TriggerHttpStep)
    branch = result.plan.steps[1]
    assert isinstance(branch, BranchStep)
    assert branch.cases[0].when.op is FilterOperator.gt
    assert branch.else_[0].action_slug == "enrich"


def test_parse_plan_accepts_json_string() -> None:
    result = parse_plan(json.dumps(_payload(TRIGGER)))

    assert result.valid
    assert result.plan.name == "Lead Router"


def test_parse_plan_reports_undecodable_json_at_root() -> None:
    result = parse_plan("{not json")

    assert not result.valid
    assert result.plan is None
    assert result.errors[0].path == "root"
    assert result.errors[0].keyword == "json"


def test_missing_required_property_is_templated() -> None:
    result = parse_plan({"version": "1", "steps": [TRIGGER]})

    assert not result.valid
    assert result.messages == ['Missing required property "name" at root']


def test_known_step_type_reports_variant_error_instead_of_union_error() -> None:
    payload = _payload(
        TRIGGER,
        {"type": "filter", "when": {"field": "score", "op": "between", "value": 1}},
    )

    result = parse_plan(payload)

    assert not result.valid
    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.path == "steps[1].when.op"
    assert error.keyword == "enum"
    assert error.message.startswith("Invalid value at steps[1].when.op. Must be one of:")


def test_unknown_step_type_names_every_allowed_type() -> None:
    result = parse_plan(_payload(TRIGGER, {"type": "action.email.send", "to": "a@b.c"}))

    assert not result.valid
    error = result.errors[0]
    assert error.keyword == "oneOf"
    assert error.path == "steps[1]"
    assert "trigger.http" in error.message
    assert "custom.action" in error.message


def test_nested_variant_errors_carry_full_locator() -> None:
    payload = _payload(
        TRIGGER,
        {
            "type": "branch",
            "cases": [
                {
                    "when": {"field": "score", "op": "gt", "value": 1},
                    "steps": [{"type": "action.http.request", "method": "PATCH", "url": "https://x.io"}],
                }
            ],
        },
    )

    result = parse_plan(payload)

    assert [error.path for error in result.errors] == ["steps[1].cases[0].steps[0].method"]


def test_step_count_limit() -> None:
    result = parse_plan(_payload(*([TRIGGER] * 51)))

    assert not result.valid
    assert "Array at steps must have no more than 50 items" in result.messages


def test_empty_steps_and_long_name_collect_all_errors() -> None:
    result = parse_plan({"version": "1", "name": "x" * 101, "steps": []})

    keywords = sorted(error.keyword for error in result.errors)
    assert keywords == ["maxLength", "minItems"]


def test_unknown_property_is_rejected() -> None:
    result = parse_plan({**_payload(TRIGGER), "owner": "ops"})

    assert not result.valid
    assert result.errors[0].keyword == "additionalProperties"
    assert result.errors[0].path == "root"


def test_empty_branch_case_is_structurally_valid() -> None:
    payload = _payload(
        TRIGGER,
        {"type": "branch", "cases": [{"when": {"field": "a", "op": "equals", "value": 1}, "steps": []}]},
    )

    assert parse_plan(payload).valid


def test_pathologically_deep_nesting_is_reported_not_raised() -> None:
    step: dict = {"type": "action.slack.postMessage", "channel": "#deep", "text": "hi"}
    for _ in range(5000):
        step = {
            "type": "branch",
            "cases": [{"when": {"field": "a", "op": "equals", "value": 1}, "steps": [step]}],
        }

    result = parse_plan(_payload(TRIGGER, step))

    assert not result.valid
    assert result.errors[0].keyword == "depth"


def test_deeply_nested_json_string_is_reported_not_raised() -> None:
    result = parse_plan("[" * 100000 + "]" * 100000)

    assert not result.valid
    assert result.plan is None
    assert result.errors[0].path == "root"
    assert result.errors[0].keyword == "depth"


def test_validate_plan_structure_returns_tuple() -> None:
    valid, messages, plan = validate_plan_structure(_payload(TRIGGER))
    assert valid is True
    assert messages == []
    assert plan is not None

    valid, messages, plan = validate_plan_structure({"version": "2", "name": "x", "steps": [TRIGGER]})
    assert valid is False
    assert messages == ["Invalid value at version. Must be: 1"]
    assert plan is None


def test_format_path() -> None:
    assert format_path([]) == "root"
    assert format_path(["steps", 2, "when", "op"]) == "steps[2].when.op"
    assert format_path(["steps", 1, "cases", 0, "steps"]) == "steps[1].cases[0].steps"
