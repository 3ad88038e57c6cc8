"""
Shared exception hierarchy for the plan compiler.

Validation problems are reported as data (``StructuralError`` and
``ValidationIssue``); only the conditions below are raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence

if TYPE_CHECKING:
    from plan_compiler.schema.models import ValidationIssue


class PlanCompilerError(Exception):
    """Base class for all compiler related errors."""


class CompilerError(PlanCompilerError):
    """
    Raised when a plan cannot be turned into a workflow graph.

    ``code`` is a machine-readable identifier (e.g. ``UNKNOWN_CUSTOM_ACTION``)
    and ``offending_step`` carries the step that triggered the failure when
    one can be named.
    """

    def __init__(self, code: str, message: str, offending_step: Optional[Any] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.offending_step = offending_step

    @property
    def step_type(self) -> Optional[str]:
        return getattr(self.offending_step, "type", None)

    def __repr__(self) -> str:
        return f"CompilerError(code={self.code!r}, message={self.message!r})"


class PlanValidationError(PlanCompilerError):
    """Raised by the end-to-end pipeline when a plan fails validation."""

    def __init__(self, issues: Sequence["ValidationIssue"]) -> None:
        self.issues: List["ValidationIssue"] = list(issues)
        codes = ", ".join(sorted({issue.code for issue in self.issues}))
        super().__init__(f"Plan failed validation with {len(self.issues)} issue(s): {codes}")


class LayoutError(PlanCompilerError):
    """Raised inside the layout engine; never escapes ``auto_layout``."""
