"""
Read-only helpers for walking the step tree of a plan.
"""

from __future__ import annotations

from typing import Iterator, List, Sequence

from plan_compiler.schema.models import BranchStep, Plan, Step


def child_sequences(step: Step) -> List[Sequence[Step]]:
    """Nested step lists of a branch in traversal order: each case, then else."""
    if not isinstance(step, BranchStep):
        return []
    sequences: List[Sequence[Step]] = [case.steps for case in step.cases]
    if step.else_ is not None:
        sequences.append(step.else_)
    return sequences


def iter_steps(steps: Sequence[Step]) -> Iterator[Step]:
    """Pre-order walk over ``steps`` and everything nested below them."""
    stack: List[Iterator[Step]] = [iter(steps)]
    while stack:
        step = next(stack[-1], None)
        if step is None:
            stack.pop()
            continue
        yield step
        for sequence in reversed(child_sequences(step)):
            stack.append(iter(sequence))


def has_step_type(plan: Plan, step_type: str) -> bool:
    return any(step.type == step_type for step in iter_steps(plan.steps))


def get_used_step_types(plan: Plan) -> List[str]:
    """Distinct step types in first-seen order."""
    seen: List[str] = []
    for step in iter_steps(plan.steps):
        if step.type not in seen:
            seen.append(step.type)
    return seen


def count_total_steps(plan: Plan) -> int:
    return sum(1 for _ in iter_steps(plan.steps))
