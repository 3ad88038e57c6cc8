"""
Stage 1: Parse an untyped document into a strongly typed Plan.

Validation never raises: callers receive either a ``Plan`` or the complete
list of structural violations, each with a locator such as
``steps[2].when.op``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple

from pydantic import ValidationError as ModelValidationError

from plan_compiler.schema.jsonschema_adapter import (
    ROOT_LOCATOR,
    ValidationError,
    format_path,
    format_validation_error,
    iter_errors,
)
from plan_compiler.schema.models import STEP_TYPES, Plan, StructuralError
from plan_compiler.schema.plan_schema import PLAN_SCHEMA, PLAN_SCHEMA_ID


@dataclass(frozen=True)
class StructuralResult:
    plan: Optional[Plan] = None
    errors: List[StructuralError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.plan is not None and not self.errors

    @property
    def messages(self) -> List[str]:
        return [error.message for error in self.errors]


def parse_plan(payload: Any) -> StructuralResult:
    """
    Accepts either a JSON string or a mapping compatible with the plan schema
    and returns the typed plan or every structural violation found.
    """

    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return _failure(ROOT_LOCATOR, "json", f"Invalid plan JSON payload: {exc}")
        except RecursionError:
            return _failure(ROOT_LOCATOR, "depth", "Plan is nested too deeply to decode")

    try:
        errors = [
            _to_structural_error(error)
            for error in _expand_union_errors(
                iter_errors(PLAN_SCHEMA, payload, schema_id=PLAN_SCHEMA_ID)
            )
        ]
    except RecursionError:
        return _failure(ROOT_LOCATOR, "depth", "Plan is nested too deeply to validate")

    if errors:
        return StructuralResult(errors=errors)

    try:
        plan = Plan.model_validate(payload)
    except ModelValidationError as exc:
        return StructuralResult(errors=_from_model_errors(exc))
    except RecursionError:
        return _failure(ROOT_LOCATOR, "depth", "Plan is nested too deeply to validate")
    return StructuralResult(plan=plan)


def validate_plan_structure(payload: Any) -> Tuple[bool, List[str], Optional[Plan]]:
    """
    Convenience wrapper returning ``(valid, messages, plan)``.
    """

    result = parse_plan(payload)
    return result.valid, result.messages, result.plan


def _failure(path: str, keyword: str, message: str) -> StructuralResult:
    return StructuralResult(errors=[StructuralError(path=path, keyword=keyword, message=message)])


def _expand_union_errors(errors: Iterable[ValidationError]) -> Iterator[ValidationError]:
    # A step whose "type" names a known variant is reported against that
    # variant rather than as a generic "no union member matched".
    for error in errors:
        if error.validator == "oneOf":
            variant_errors = _variant_errors(error)
            if variant_errors:
                yield from _expand_union_errors(variant_errors)
                continue
        yield error


def _variant_errors(error: ValidationError) -> List[ValidationError]:
    instance = error.instance
    if not isinstance(instance, Mapping):
        return []
    step_type = instance.get("type")
    if step_type not in STEP_TYPES:
        return []
    index = STEP_TYPES.index(step_type)
    return [
        sub_error
        for sub_error in error.context or []
        if sub_error.relative_schema_path and sub_error.relative_schema_path[0] == index
    ]


def _to_structural_error(error: ValidationError) -> StructuralError:
    return StructuralError(
        path=format_path(error.absolute_path),
        keyword=str(error.validator),
        message=format_validation_error(error, union_members=STEP_TYPES),
    )


def _from_model_errors(exc: ModelValidationError) -> List[StructuralError]:
    errors: List[StructuralError] = []
    for detail in exc.errors():
        path = format_path(detail.get("loc", ()))
        errors.append(
            StructuralError(
                path=path,
                keyword=str(detail.get("type", "model")),
                message=f"{detail.get('msg', 'validation failed')} at {path}",
            )
        )
    return errors
