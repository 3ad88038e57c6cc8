"""
Public entrypoints for validating automation plans and compiling them into
n8n workflow graphs.

    parse_plan      -> typed Plan or structural errors
    validate_plan   -> business-rule issues
    compile_plan    -> positioned nodes + connections
"""

from __future__ import annotations

import time
from typing import Any, Optional

from plan_compiler.compiler.context import CompilerContext
from plan_compiler.compiler.emit_n8n import COMPILATION_ERROR, emit_workflow_graph, to_canonical_json
from plan_compiler.compiler.layout import LayoutOptions, auto_layout, validate_layout
from plan_compiler.compiler.parse import StructuralResult, parse_plan
from plan_compiler.compiler.validate_plan import SCHEMA_VALIDATION_FAILED, validate_plan
from plan_compiler.errors import CompilerError, PlanCompilerError, PlanValidationError
from plan_compiler.redaction import redact_org_id
from plan_compiler.schema.models import (
    CompileResult,
    Plan,
    ValidationIssue,
    ValidationResult,
    Workflow,
)
from shared.logger import get_logger

logger = get_logger(__name__)


async def compile_plan(
    plan: Plan,
    context: CompilerContext,
    *,
    layout_options: Optional[LayoutOptions] = None,
) -> CompileResult:
    """
    Compile a plan into a positioned n8n workflow graph.

    Raises ``CompilerError`` on the first unrecoverable problem; there is no
    partial result.
    """

    started = time.perf_counter()
    org = redact_org_id(context.org_id)
    logger.info(
        "Compiling plan to n8n workflow plan=%s steps=%d org=%s",
        plan.name,
        len(plan.steps),
        org,
    )

    try:
        nodes, connections = await emit_workflow_graph(plan.steps, context, plan_name=plan.name)
        positioned = auto_layout(nodes, connections, layout_options)
        workflow = Workflow(nodes=positioned, connections=connections, name=plan.name)
    except CompilerError as exc:
        logger.error(
            "Plan compilation failed code=%s step_type=%s org=%s message=%s",
            exc.code,
            exc.step_type,
            org,
            exc.message,
        )
        raise
    except Exception as exc:
        logger.error("Unexpected compilation error org=%s error=%s", org, exc)
        raise CompilerError(COMPILATION_ERROR, f"Failed to compile plan: {exc}") from exc

    logger.info(
        "Plan compiled successfully plan=%s nodes=%d connections=%d org=%s duration=%.3fs",
        plan.name,
        len(workflow.nodes),
        len(workflow.connections),
        org,
        time.perf_counter() - started,
    )
    return CompileResult(workflow=workflow, name=plan.name)


async def validate_plan_document(payload: Any, context: CompilerContext) -> ValidationResult:
    """
    Structural validation followed by business-rule validation. Structural
    failures are reported as ``SCHEMA_VALIDATION_FAILED`` issues and the
    business rules are not evaluated.
    """

    structural = parse_plan(payload)
    if not structural.valid:
        return ValidationResult(valid=False, issues=schema_issues(structural))
    return await validate_plan(structural.plan, context)


async def compile_plan_document(
    payload: Any,
    context: CompilerContext,
    *,
    layout_options: Optional[LayoutOptions] = None,
) -> CompileResult:
    """
    Run the full pipeline on an untyped document. Raises
    ``PlanValidationError`` when the plan is structurally or semantically
    invalid, ``CompilerError`` when it cannot be compiled.
    """

    structural = parse_plan(payload)
    if not structural.valid:
        raise PlanValidationError(schema_issues(structural))

    result = await validate_plan(structural.plan, context)
    if not result.valid:
        raise PlanValidationError(result.issues)

    return await compile_plan(structural.plan, context, layout_options=layout_options)


def schema_issues(structural: StructuralResult) -> list[ValidationIssue]:
    return [
        ValidationIssue(path="schema", code=SCHEMA_VALIDATION_FAILED, message=error.message)
        for error in structural.errors
    ]


__all__ = [
    "CompileResult",
    "CompilerContext",
    "CompilerError",
    "LayoutOptions",
    "Plan",
    "PlanCompilerError",
    "PlanValidationError",
    "ValidationResult",
    "compile_plan",
    "compile_plan_document",
    "parse_plan",
    "to_canonical_json",
    "validate_layout",
    "validate_plan",
    "validate_plan_document",
]
