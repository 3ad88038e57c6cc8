"""
Pydantic models describing automation plans and the compiled workflow graph.

Plans arrive as untyped JSON (from the plan generator or the editor), are
checked against ``plan_schema.PLAN_SCHEMA`` and are then represented by the
models below. All models are frozen: every compiler stage produces new values
instead of mutating its input.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


JsonSchema = Dict[str, Any]  # draft 2020-12 style dict


class StrictModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        frozen=True,
    )


# -----------------------------
# Conditions
# -----------------------------
class FilterOperator(str, Enum):
    contains = "contains"
    equals = "equals"
    gt = "gt"
    lt = "lt"
    regex = "regex"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class Condition(StrictModel):
    """
    A single comparison against a field of the incoming item.

    Examples:
      - {"field": "lead_score", "op": "gt", "value": 80}
      - {"field": "email", "op": "regex", "value": ".*@acme\\.com$"}
    """

    field: str
    op: FilterOperator
    value: Any = None


# -----------------------------
# Steps
# -----------------------------
TRIGGER_PREFIX = "trigger."


class StepBase(StrictModel):
    type: str

    @property
    def is_trigger(self) -> bool:
        return self.type.startswith(TRIGGER_PREFIX)


class TriggerHttpStep(StepBase):
    type: Literal["trigger.http"] = "trigger.http"
    path: str
    secret_hmac: bool = Field(alias="secretHmac")


class FilterStep(StepBase):
    type: Literal["filter"] = "filter"
    when: Condition


class BranchCase(StrictModel):
    when: Condition
    steps: List["Step"] = Field(default_factory=list)


class BranchStep(StepBase):
    type: Literal["branch"] = "branch"
    cases: List[BranchCase] = Field(min_length=1)
    else_: Optional[List["Step"]] = Field(default=None, alias="else")


class SlackPostMessageStep(StepBase):
    type: Literal["action.slack.postMessage"] = "action.slack.postMessage"
    channel: str
    text: str


class HttpRequestStep(StepBase):
    type: Literal["action.http.request"] = "action.http.request"
    method: HttpMethod
    url: str
    headers: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None


class CustomActionStep(StepBase):
    type: Literal["custom.action"] = "custom.action"
    action_slug: str = Field(alias="actionSlug")
    input: Optional[Dict[str, Any]] = None


Step = Annotated[
    Union[
        TriggerHttpStep,
        FilterStep,
        BranchStep,
        SlackPostMessageStep,
        HttpRequestStep,
        CustomActionStep,
    ],
    Field(discriminator="type"),
]

STEP_TYPES: Tuple[str, ...] = (
    "trigger.http",
    "filter",
    "branch",
    "action.slack.postMessage",
    "action.http.request",
    "custom.action",
)


class Plan(StrictModel):
    version: Literal["1"] = "1"
    name: str = Field(min_length=1, max_length=100)
    steps: List[Step] = Field(min_length=1, max_length=50)


BranchCase.model_rebuild()
BranchStep.model_rebuild()
Plan.model_rebuild()


# -----------------------------
# Validation results
# -----------------------------
class StructuralError(StrictModel):
    """A schema violation found before the plan could be typed."""

    path: str
    keyword: str
    message: str


class ValidationIssue(StrictModel):
    path: str
    code: str
    message: str


class ValidationResult(StrictModel):
    valid: bool
    issues: List[ValidationIssue] = Field(default_factory=list)


# -----------------------------
# Compiled workflow
# -----------------------------
class Node(StrictModel):
    id: str = Field(pattern=r"^node_\d{3,}$")
    name: str
    type: str
    type_version: int = Field(alias="typeVersion")
    position: Tuple[int, int] = (0, 0)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    webhook_id: Optional[str] = Field(default=None, alias="webhookId")

    def to_wire(self) -> Dict[str, Any]:
        exclude = {"webhook_id"} if self.webhook_id is None else None
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)


class Connection(StrictModel):
    source: str
    source_output: str = Field(default="main", alias="sourceOutput")
    target: str
    target_input: str = Field(default="main", alias="targetInput")


# node id -> output port -> connections; list position is the output index
ConnectionMap = Dict[str, Dict[str, List[Connection]]]


class Workflow(StrictModel):
    nodes: List[Node]
    connections: ConnectionMap = Field(default_factory=dict)
    name: str

    def to_wire(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_wire() for node in self.nodes],
            "connections": {
                node_id: {
                    port: [conn.model_dump(by_alias=True, mode="json") for conn in conns]
                    for port, conns in ports.items()
                }
                for node_id, ports in self.connections.items()
            },
            "name": self.name,
        }


class CompileResult(StrictModel):
    workflow: Workflow
    name: str

    def to_wire(self) -> Dict[str, Any]:
        return {"workflow": self.workflow.to_wire(), "name": self.name}
