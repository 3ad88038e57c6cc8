from __future__ import annotations

from plan_compiler.compiler.templates import rewrite_template, rewrite_value
from plan_compiler.plan_utils import count_total_steps, get_used_step_types, has_step_type, iter_steps
from plan_compiler.redaction import redact_org_id, redact_url
from plan_compiler.schema.models import Plan

PLAN = Plan.model_validate(
    {
        "version": "1",
        "name": "Lead Router",
        "steps": [
            {"type": "trigger.http", "path": "/leads", "secretHmac": False},
            {
                "type": "branch",
                "cases": [
                    {
                        "when": {"field": "score", "op": "gt", "value": 80},
                        "steps": [
                            {"type": "action.slack.postMessage", "channel": "#hot", "text": "hot"},
                            {"type": "custom.action", "actionSlug": "enrich"},
                        ],
                    },
                    {"when": {"field": "score", "op": "lt", "value": 10}, "steps": []},
                ],
                "else": [{"type": "action.slack.postMessage", "channel": "#warm", "text": "warm"}],
            },
            {"type": "action.http.request", "method": "GET", "url": "https://api.github.com"},
        ],
    }
)


def test_iter_steps_walks_in_pre_order() -> None:
    types = [step.type for step in iter_steps(PLAN.steps)]

    assert types == [
        "trigger.http",
        "branch",
        "action.slack.postMessage",
        "custom.action",
        "action.slack.postMessage",
        "action.http.request",
    ]


def test_step_type_helpers() -> None:
    assert count_total_steps(PLAN) == 6
    assert has_step_type(PLAN, "custom.action")
    assert not has_step_type(PLAN, "filter")
    assert get_used_step_types(PLAN) == [
        "trigger.http",
        "branch",
        "action.slack.postMessage",
        "custom.action",
        "action.http.request",
    ]


def test_rewrite_template() -> None:
    assert rewrite_template("Hi {{name}}") == "Hi {{ $json.name }}"
    assert rewrite_template("Hi {{ user.first_name }}!") == "Hi {{ $json.user.first_name }}!"
    assert rewrite_template("Bearer {{secrets.API_KEY}}") == "Bearer {{ $vars.API_KEY }}"
    assert rewrite_template("no placeholders") == "no placeholders"


def test_rewrite_value_recurses_into_containers() -> None:
    value = {"to": ["{{email}}", 3], "meta": {"key": "{{secrets.KEY}}", "flag": True}}

    assert rewrite_value(value) == {
        "to": ["{{ $json.email }}", 3],
        "meta": {"key": "{{ $vars.KEY }}", "flag": True},
    }


def test_redact_url_keeps_scheme_and_host_only() -> None:
    assert redact_url("https://user:pw@api.example.com:8443/v1/x?token=abc") == "https://api.example.com"
    assert redact_url("not a url") == "[INVALID_URL]"
    assert redact_url("http://[::1") == "[INVALID_URL]"


def test_redact_org_id() -> None:
    assert redact_org_id("org_1234567890") == "org_1234..."
