from __future__ import annotations

import pytest

from plan_compiler import validate_plan_document
from plan_compiler.compiler.context import CompilerContext
from plan_compiler.compiler.validate_plan import validate_plan
from plan_compiler.registry.action_registry import ActionDefinition, InMemoryActionRegistry
from plan_compiler.registry.host_allowlist import StaticHostAllowlist
from plan_compiler.schema.models import Plan, ValidationIssue, ValidationResult
from plan_compiler.summary import categorize_issues, get_validation_summary
from shared.config import config

TRIGGER = {"type": "trigger.http", "path": "/leads", "secretHmac": False}
SLACK = {"type": "action.slack.postMessage", "channel": "#sales", "text": "New lead {{name}}"}


def _plan(*steps: dict) -> Plan:
    return Plan.model_validate({"version": "1", "name": "Lead Router", "steps": list(steps)})


def _context(**kwargs) -> CompilerContext:
    return CompilerContext(org_id="org_1234567890", **kwargs)


def _branch(*case_steps: list, else_steps: list | None = None) -> dict:
    branch = {
        "type": "branch",
        "cases": [
            {"when": {"field": "score", "op": "gt", "value": index}, "steps": steps}
            for index, steps in enumerate(case_steps)
        ],
    }
    if else_steps is not None:
        branch["else"] = else_steps
    return branch


def _codes(result: ValidationResult) -> list[str]:
    return [issue.code for issue in result.issues]


@pytest.mark.asyncio
async def test_valid_plan_has_no_issues() -> None:
    result = await validate_plan(_plan(TRIGGER, SLACK), _context())

    assert result.valid is True
    assert result.issues == []


@pytest.mark.asyncio
async def test_plan_must_start_with_trigger() -> None:
    result = await validate_plan(_plan(SLACK), _context())

    assert result.valid is False
    assert _codes(result) == ["MUST_START_WITH_TRIGGER"]
    assert result.issues[0].path == "steps[0].type"


@pytest.mark.asyncio
async def test_multiple_triggers() -> None:
    result = await validate_plan(_plan(TRIGGER, TRIGGER), _context())

    assert _codes(result) == ["MULTIPLE_TRIGGERS"]
    assert result.issues[0].path == "steps"


@pytest.mark.asyncio
async def test_forbidden_host_in_branch_case_is_redacted() -> None:
    http = {
        "type": "action.http.request",
        "method": "GET",
        "url": "https://evil.example.com/export?token=s3cr3t",
    }
    result = await validate_plan(_plan(TRIGGER, _branch([http])), _context())

    assert _codes(result) == ["FORBIDDEN_HOST"]
    issue = result.issues[0]
    assert issue.path == "steps[1].cases[0].steps[0].url"
    assert "https://evil.example.com" in issue.message
    assert "token" not in issue.message
    assert "/export" not in issue.message


@pytest.mark.asyncio
async def test_allowed_host_subdomain_passes() -> None:
    http = {"type": "action.http.request", "method": "POST", "url": "https://hooks.slack.com/services/T000"}
    result = await validate_plan(_plan(TRIGGER, http), _context())

    assert result.valid


@pytest.mark.asyncio
async def test_custom_host_allowlist() -> None:
    http = {"type": "action.http.request", "method": "GET", "url": "https://internal.acme.io/ping"}
    context = _context(host_allowlist=StaticHostAllowlist(["acme.io"]))

    result = await validate_plan(_plan(TRIGGER, http), context)

    assert result.valid


@pytest.mark.asyncio
async def test_awaitable_host_allowlist() -> None:
    class RemoteAllowlist:
        def __init__(self) -> None:
            self.calls: list[str] = []

        async def is_allowed(self, url: str) -> bool:
            self.calls.append(url)
            return url.startswith("https://ok.")

    allowlist = RemoteAllowlist()
    steps = [
        {"type": "action.http.request", "method": "GET", "url": "https://ok.example.com"},
        {"type": "action.http.request", "method": "GET", "url": "https://nope.example.com"},
    ]

    result = await validate_plan(_plan(TRIGGER, *steps), _context(host_allowlist=allowlist))

    assert allowlist.calls == ["https://ok.example.com", "https://nope.example.com"]
    assert [issue.path for issue in result.issues] == ["steps[2].url"]


@pytest.mark.asyncio
async def test_unknown_action_slug() -> None:
    step = {"type": "custom.action", "actionSlug": "enrich_lead"}

    result = await validate_plan(_plan(TRIGGER, step), _context())

    assert _codes(result) == ["UNKNOWN_ACTION_SLUG"]
    assert result.issues[0].path == "steps[1].actionSlug"
    assert "enrich_lead" in result.issues[0].message


@pytest.mark.asyncio
async def test_known_action_slug_is_resolved_for_org() -> None:
    registry = InMemoryActionRegistry()
    registry.register(ActionDefinition(slug="enrich_lead", url="https://api.example.com/enrich"), org_id="org_1234567890")
    step = {"type": "custom.action", "actionSlug": "enrich_lead"}

    result = await validate_plan(_plan(TRIGGER, step), _context(action_registry=registry))
    other_org = await validate_plan(
        _plan(TRIGGER, step),
        CompilerContext(org_id="org_other", action_registry=registry),
    )

    assert result.valid
    assert _codes(other_org) == ["UNKNOWN_ACTION_SLUG"]


@pytest.mark.asyncio
async def test_empty_branch_case_and_else() -> None:
    result = await validate_plan(_plan(TRIGGER, _branch([], [SLACK], else_steps=[])), _context())

    assert sorted((issue.code, issue.path) for issue in result.issues) == [
        ("EMPTY_BRANCH_CASE", "steps[1].cases[0].steps"),
        ("EMPTY_BRANCH_ELSE", "steps[1].else"),
    ]


@pytest.mark.asyncio
async def test_slack_channel_checked_inside_else() -> None:
    bad_slack = {**SLACK, "channel": "sales"}

    result = await validate_plan(_plan(TRIGGER, _branch([SLACK], else_steps=[bad_slack])), _context())

    assert _codes(result) == ["INVALID_SLACK_CHANNEL"]
    assert result.issues[0].path == "steps[1].else[0].channel"


@pytest.mark.asyncio
async def test_user_slack_channel_is_valid() -> None:
    result = await validate_plan(_plan(TRIGGER, {**SLACK, "channel": "@jane"}), _context())

    assert result.valid


@pytest.mark.asyncio
async def test_webhook_path_rules() -> None:
    trigger = {**TRIGGER, "path": "leads?source=web"}

    result = await validate_plan(_plan(trigger), _context())

    assert _codes(result) == ["INVALID_WEBHOOK_PATH", "INVALID_WEBHOOK_PATH_FORMAT"]
    assert {issue.path for issue in result.issues} == {"steps[0].path"}


@pytest.mark.asyncio
async def test_all_issues_are_collected() -> None:
    plan = _plan(
        SLACK,
        _branch(
            [{"type": "custom.action", "actionSlug": "missing"}],
            else_steps=[{"type": "action.http.request", "method": "GET", "url": "http://10.0.0.1/"}],
        ),
        TRIGGER,
        TRIGGER,
    )

    result = await validate_plan(plan, _context())

    codes = _codes(result)
    # top-level checks bracket the descent; branch subtrees have no fixed relative order
    assert codes[0] == "MUST_START_WITH_TRIGGER"
    assert codes[-1] == "MULTIPLE_TRIGGERS"
    assert sorted(codes[1:-1]) == ["FORBIDDEN_HOST", "UNKNOWN_ACTION_SLUG"]


@pytest.mark.asyncio
async def test_branch_depth_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "max_branch_depth", 1)
    nested = _branch([_branch([{**SLACK, "channel": "no-prefix"}])])

    result = await validate_plan(_plan(TRIGGER, nested), _context())

    assert _codes(result) == ["MAX_DEPTH_EXCEEDED"]
    assert result.issues[0].path == "steps[1].cases[0].steps[0]"


@pytest.mark.asyncio
async def test_collaborator_failure_becomes_validation_error() -> None:
    class BrokenRegistry:
        async def resolve(self, action_slug: str, org_id: str):
            raise ConnectionError("registry unavailable")

    step = {"type": "custom.action", "actionSlug": "enrich"}

    result = await validate_plan(_plan(TRIGGER, step), _context(action_registry=BrokenRegistry()))

    assert result.valid is False
    assert result.issues[-1].code == "VALIDATION_ERROR"
    assert result.issues[-1].path == "validation"


@pytest.mark.asyncio
async def test_validate_plan_document_reports_schema_failures() -> None:
    result = await validate_plan_document({"version": "1", "name": "x", "steps": []}, _context())

    assert result.valid is False
    assert _codes(result) == ["SCHEMA_VALIDATION_FAILED"]
    assert result.issues[0].path == "schema"
    assert result.issues[0].message == "Array at steps must have at least 1 items"


@pytest.mark.asyncio
async def test_validate_plan_document_runs_business_rules() -> None:
    result = await validate_plan_document(
        {"version": "1", "name": "x", "steps": [SLACK]},
        _context(),
    )

    assert _codes(result) == ["MUST_START_WITH_TRIGGER"]


def test_validation_summary() -> None:
    assert get_validation_summary(ValidationResult(valid=True)) == "Plan is valid and ready to use."

    critical = ValidationResult(
        valid=False,
        issues=[
            ValidationIssue(path="steps[0].type", code="MUST_START_WITH_TRIGGER", message="..."),
            ValidationIssue(path="steps", code="MULTIPLE_TRIGGERS", message="..."),
        ],
    )
    assert get_validation_summary(critical) == (
        "Plan has 2 issues including 1 critical error. Fix critical errors first."
    )

    minor = ValidationResult(
        valid=False,
        issues=[ValidationIssue(path="steps[1].channel", code="INVALID_SLACK_CHANNEL", message="...")],
    )
    assert get_validation_summary(minor) == "Plan has 1 issue that should be addressed before deployment."


def test_categorize_issues() -> None:
    issues = [
        ValidationIssue(path="schema", code="SCHEMA_VALIDATION_FAILED", message="..."),
        ValidationIssue(path="steps[1].url", code="FORBIDDEN_HOST", message="..."),
        ValidationIssue(path="steps[1].channel", code="INVALID_SLACK_CHANNEL", message="..."),
        ValidationIssue(path="steps[2].cases[0].steps", code="EMPTY_BRANCH_CASE", message="..."),
    ]

    categories = categorize_issues(issues)

    assert [issue.code for issue in categories["critical"]] == ["SCHEMA_VALIDATION_FAILED", "EMPTY_BRANCH_CASE"]
    assert [issue.code for issue in categories["warning"]] == ["FORBIDDEN_HOST"]
    assert [issue.code for issue in categories["info"]] == ["INVALID_SLACK_CHANNEL"]
