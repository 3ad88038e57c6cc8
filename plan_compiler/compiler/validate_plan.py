"""
Stage 2: Business-rule validation of a structurally valid Plan.

Every rule violation is collected as a ``ValidationIssue``; the validator
always returns a result and never raises. Issue locators follow the document,
e.g. ``steps[1].cases[0].steps[0].url``.
"""

from __future__ import annotations

import inspect
from typing import List, Sequence

from plan_compiler.compiler.context import CompilerContext
from plan_compiler.redaction import redact_org_id, redact_url
from plan_compiler.schema.models import (
    BranchStep,
    CustomActionStep,
    HttpRequestStep,
    Plan,
    SlackPostMessageStep,
    Step,
    TriggerHttpStep,
    ValidationIssue,
    ValidationResult,
)
from shared.config import config
from shared.logger import get_logger

logger = get_logger(__name__)

NO_STEPS = "NO_STEPS"
MUST_START_WITH_TRIGGER = "MUST_START_WITH_TRIGGER"
MULTIPLE_TRIGGERS = "MULTIPLE_TRIGGERS"
UNKNOWN_ACTION_SLUG = "UNKNOWN_ACTION_SLUG"
FORBIDDEN_HOST = "FORBIDDEN_HOST"
EMPTY_BRANCH_CASE = "EMPTY_BRANCH_CASE"
EMPTY_BRANCH_ELSE = "EMPTY_BRANCH_ELSE"
INVALID_SLACK_CHANNEL = "INVALID_SLACK_CHANNEL"
INVALID_WEBHOOK_PATH = "INVALID_WEBHOOK_PATH"
INVALID_WEBHOOK_PATH_FORMAT = "INVALID_WEBHOOK_PATH_FORMAT"
MAX_DEPTH_EXCEEDED = "MAX_DEPTH_EXCEEDED"
VALIDATION_ERROR = "VALIDATION_ERROR"
SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"


async def validate_plan(plan: Plan, context: CompilerContext) -> ValidationResult:
    issues: List[ValidationIssue] = []

    try:
        if not plan.steps:
            issues.append(
                ValidationIssue(
                    path="steps",
                    code=NO_STEPS,
                    message="Plan must contain at least one step.",
                )
            )
        elif not plan.steps[0].is_trigger:
            issues.append(
                ValidationIssue(
                    path="steps[0].type",
                    code=MUST_START_WITH_TRIGGER,
                    message=(
                        "Plan must start with a trigger step (e.g., trigger.http). "
                        "Add a trigger as the first step."
                    ),
                )
            )

        await _validate_sequence(plan.steps, "steps", context, issues, depth=0)

        if sum(1 for step in plan.steps if step.is_trigger) > 1:
            issues.append(
                ValidationIssue(
                    path="steps",
                    code=MULTIPLE_TRIGGERS,
                    message=(
                        "Plan can only have one trigger step. Remove extra trigger steps "
                        "or create separate plans."
                    ),
                )
            )
    except Exception as exc:
        logger.error(
            "Error during plan validation org=%s error=%s",
            redact_org_id(context.org_id),
            exc,
        )
        issues.append(
            ValidationIssue(
                path="validation",
                code=VALIDATION_ERROR,
                message="An error occurred during plan validation. Please try again.",
            )
        )

    return ValidationResult(valid=not issues, issues=issues)


async def _validate_sequence(
    steps: Sequence[Step],
    path: str,
    context: CompilerContext,
    issues: List[ValidationIssue],
    *,
    depth: int,
) -> None:
    for index, step in enumerate(steps):
        await _validate_step(step, f"{path}[{index}]", context, issues, depth=depth)


async def _validate_step(
    step: Step,
    path: str,
    context: CompilerContext,
    issues: List[ValidationIssue],
    *,
    depth: int,
) -> None:
    if isinstance(step, TriggerHttpStep):
        _check_webhook_path(step, path, issues)
    elif isinstance(step, SlackPostMessageStep):
        if not step.channel.startswith(("#", "@")):
            issues.append(
                ValidationIssue(
                    path=f"{path}.channel",
                    code=INVALID_SLACK_CHANNEL,
                    message=(
                        "Slack channel must start with # for channels or @ for users. "
                        f'Got: "{step.channel}"'
                    ),
                )
            )
    elif isinstance(step, HttpRequestStep):
        if not await _host_allowed(context, step.url):
            issues.append(
                ValidationIssue(
                    path=f"{path}.url",
                    code=FORBIDDEN_HOST,
                    message=(
                        f"HTTP requests to {redact_url(step.url)} are not allowed. "
                        "Contact support to allowlist this host."
                    ),
                )
            )
    elif isinstance(step, CustomActionStep):
        definition = await context.action_registry.resolve(step.action_slug, context.org_id)
        if definition is None:
            issues.append(
                ValidationIssue(
                    path=f"{path}.actionSlug",
                    code=UNKNOWN_ACTION_SLUG,
                    message=(
                        f'Custom action "{step.action_slug}" is not available for your '
                        "organization. Check the spelling or contact support to add this action."
                    ),
                )
            )
    elif isinstance(step, BranchStep):
        await _validate_branch(step, path, context, issues, depth=depth)


async def _validate_branch(
    step: BranchStep,
    path: str,
    context: CompilerContext,
    issues: List[ValidationIssue],
    *,
    depth: int,
) -> None:
    if depth >= config.max_branch_depth:
        issues.append(
            ValidationIssue(
                path=path,
                code=MAX_DEPTH_EXCEEDED,
                message=(
                    f"Branches can be nested at most {config.max_branch_depth} levels deep. "
                    "Flatten this branch or split the plan."
                ),
            )
        )
        return

    for case_index, branch_case in enumerate(step.cases):
        case_path = f"{path}.cases[{case_index}]"
        if not branch_case.steps:
            issues.append(
                ValidationIssue(
                    path=f"{case_path}.steps",
                    code=EMPTY_BRANCH_CASE,
                    message=(
                        "Branch cases must contain at least one step. "
                        "Add an action or remove this case."
                    ),
                )
            )
            continue
        await _validate_sequence(
            branch_case.steps, f"{case_path}.steps", context, issues, depth=depth + 1
        )

    if step.else_ is None:
        return
    if not step.else_:
        issues.append(
            ValidationIssue(
                path=f"{path}.else",
                code=EMPTY_BRANCH_ELSE,
                message="Branch else clause cannot be empty. Add steps or remove the else clause.",
            )
        )
        return
    await _validate_sequence(step.else_, f"{path}.else", context, issues, depth=depth + 1)


def _check_webhook_path(step: TriggerHttpStep, path: str, issues: List[ValidationIssue]) -> None:
    if not step.path.startswith("/"):
        issues.append(
            ValidationIssue(
                path=f"{path}.path",
                code=INVALID_WEBHOOK_PATH,
                message=f'Webhook path must start with /. Got: "{step.path}"',
            )
        )
    if " " in step.path or "?" in step.path:
        issues.append(
            ValidationIssue(
                path=f"{path}.path",
                code=INVALID_WEBHOOK_PATH_FORMAT,
                message=(
                    "Webhook path cannot contain spaces or query parameters. "
                    f'Got: "{step.path}"'
                ),
            )
        )


async def _host_allowed(context: CompilerContext, url: str) -> bool:
    allowed = context.host_allowlist.is_allowed(url)
    if inspect.isawaitable(allowed):
        allowed = await allowed
    return bool(allowed)
