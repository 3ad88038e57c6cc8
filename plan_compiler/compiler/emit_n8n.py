"""
Stage 3: Emit an n8n node graph from a validated Plan.

The step tree is flattened depth-first in pre-order: a branch's decision node
comes first, followed by the nodes of each case in order and then the nodes
of its else clause. Node ids (``node_000``, ``node_001``, ...) follow that
order, so compiling the same plan twice yields identical graphs.
"""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from plan_compiler.compiler.context import CompilerContext
from plan_compiler.compiler.templates import (
    data_expression,
    rewrite_template,
    rewrite_value,
    secret_expression,
)
from plan_compiler.errors import CompilerError
from plan_compiler.plan_utils import child_sequences
from plan_compiler.schema.models import (
    BranchStep,
    CompileResult,
    Condition,
    Connection,
    ConnectionMap,
    CustomActionStep,
    FilterStep,
    HttpRequestStep,
    Node,
    SlackPostMessageStep,
    Step,
    TriggerHttpStep,
)
from shared.config import config

WEBHOOK_NODE = "n8n-nodes-base.webhook"
IF_NODE = "n8n-nodes-base.if"
SWITCH_NODE = "n8n-nodes-base.switch"
SLACK_NODE = "n8n-nodes-base.slack"
HTTP_REQUEST_NODE = "n8n-nodes-base.httpRequest"

MAIN_PORT = "main"

UNSUPPORTED_STEP_TYPE = "UNSUPPORTED_STEP_TYPE"
UNSUPPORTED_FILTER_OPERATION = "UNSUPPORTED_FILTER_OPERATION"
UNKNOWN_CUSTOM_ACTION = "UNKNOWN_CUSTOM_ACTION"
NO_NODES_GENERATED = "NO_NODES_GENERATED"
MAX_DEPTH_EXCEEDED = "MAX_DEPTH_EXCEEDED"
COMPILATION_ERROR = "COMPILATION_ERROR"

FILTER_OPERATIONS: Dict[str, str] = {
    "equals": "equal",
    "contains": "contains",
    "gt": "larger",
    "lt": "smaller",
    "regex": "regex",
}

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")


@dataclass(frozen=True)
class FlattenedSteps:
    nodes: List[Node] = field(default_factory=list)
    # decision node id -> number of outputs to wire
    output_counts: Dict[str, int] = field(default_factory=dict)
    next_index: int = 0


def node_id_for(index: int) -> str:
    return f"node_{index:03d}"


def escape_node_name(name: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", name)[: config.max_node_name_length]


async def emit_workflow_graph(
    plan_steps: Sequence[Step], context: CompilerContext, *, plan_name: str
) -> Tuple[List[Node], ConnectionMap]:
    """
    Flatten ``plan_steps`` into nodes and wire them together. Returns
    ``(nodes, connections)``; positions are left at the origin.
    """

    flattened = await flatten_steps(plan_steps, context, plan_name=plan_name)
    if not flattened.nodes:
        raise CompilerError(
            NO_NODES_GENERATED,
            "Plan compilation resulted in no nodes. Ensure the plan has valid steps.",
        )
    return flattened.nodes, create_connections(flattened.nodes, flattened.output_counts)


async def flatten_steps(
    steps: Sequence[Step],
    context: CompilerContext,
    *,
    plan_name: str,
    start_index: int = 0,
    depth: int = 0,
) -> FlattenedSteps:
    nodes: List[Node] = []
    output_counts: Dict[str, int] = {}
    index = start_index

    for step in steps:
        node_id = node_id_for(index)
        index += 1

        if isinstance(step, BranchStep) and depth >= config.max_branch_depth:
            raise CompilerError(
                MAX_DEPTH_EXCEEDED,
                f"Branches can be nested at most {config.max_branch_depth} levels deep.",
                step,
            )

        nodes.append(await build_node(step, node_id, context, plan_name=plan_name))

        if isinstance(step, FilterStep):
            output_counts[node_id] = 1 if config.filter_false_output_terminates else 2
        elif isinstance(step, BranchStep):
            output_counts[node_id] = len(step.cases) + (1 if step.else_ is not None else 0)
            for sequence in child_sequences(step):
                nested = await flatten_steps(
                    sequence,
                    context,
                    plan_name=plan_name,
                    start_index=index,
                    depth=depth + 1,
                )
                nodes.extend(nested.nodes)
                output_counts.update(nested.output_counts)
                index = nested.next_index

    return FlattenedSteps(nodes=nodes, output_counts=output_counts, next_index=index)


async def build_node(step: Step, node_id: str, context: CompilerContext, *, plan_name: str) -> Node:
    if isinstance(step, TriggerHttpStep):
        return create_webhook_node(step, node_id, plan_name=plan_name)
    if isinstance(step, FilterStep):
        return create_filter_node(step, node_id)
    if isinstance(step, BranchStep):
        return create_branch_node(step, node_id)
    if isinstance(step, SlackPostMessageStep):
        return create_slack_node(step, node_id)
    if isinstance(step, HttpRequestStep):
        return create_http_node(step, node_id)
    if isinstance(step, CustomActionStep):
        return await create_custom_action_node(step, node_id, context)
    step_type = getattr(step, "type", type(step).__name__)
    raise CompilerError(
        UNSUPPORTED_STEP_TYPE,
        f'Unsupported step type "{step_type}". Use custom.action for unsupported integrations.',
        step,
    )


def create_webhook_node(step: TriggerHttpStep, node_id: str, *, plan_name: str) -> Node:
    options: Dict[str, Any] = {"noResponseBody": False}
    if step.secret_hmac:
        options["authentication"] = "headerAuth"
        options["headerAuth"] = {
            "name": config.webhook_signature_header,
            "value": f"={secret_expression(config.webhook_secret_variable)}",
        }

    webhook_uuid = uuid.uuid5(uuid.NAMESPACE_URL, f"{plan_name}|{node_id}|{step.path}")
    return Node(
        id=node_id,
        name=escape_node_name(f"Webhook_{step.path}"),
        type=WEBHOOK_NODE,
        type_version=1,
        parameters={
            "path": step.path,
            "httpMethod": "POST",
            "responseMode": "responseNode",
            "options": options,
        },
        webhook_id=f"webhook_{webhook_uuid.hex[:13]}",
    )


def build_condition(when: Condition, step: Optional[Step] = None) -> Dict[str, Any]:
    op = getattr(when.op, "value", when.op)
    operation = FILTER_OPERATIONS.get(op)
    if operation is None:
        raise CompilerError(
            UNSUPPORTED_FILTER_OPERATION,
            f'Unsupported filter operation "{op}". '
            f"Supported operations: {', '.join(FILTER_OPERATIONS)}",
            step,
        )
    return {
        "value1": data_expression(when.field),
        "operation": operation,
        "value2": when.value,
    }


def create_filter_node(step: FilterStep, node_id: str) -> Node:
    return Node(
        id=node_id,
        name=escape_node_name(f"Filter_{step.when.field}"),
        type=IF_NODE,
        type_version=1,
        parameters={"conditions": {"string": [build_condition(step.when, step)]}},
    )


def create_branch_node(step: BranchStep, node_id: str) -> Node:
    rules = [
        {
            "conditions": {"string": [build_condition(branch_case.when, step)]},
            "output": case_index,
        }
        for case_index, branch_case in enumerate(step.cases)
    ]
    return Node(
        id=node_id,
        name=escape_node_name("Branch_Switch"),
        type=SWITCH_NODE,
        type_version=1,
        parameters={
            "dataType": "string",
            "value1": "={{ $json }}",
            "rules": {"values": rules},
            "fallbackOutput": len(step.cases) if step.else_ is not None else -1,
        },
    )


def create_slack_node(step: SlackPostMessageStep, node_id: str) -> Node:
    channel_label = step.channel.replace("#", "").replace("@", "")
    return Node(
        id=node_id,
        name=escape_node_name(f"Slack_{channel_label}"),
        type=SLACK_NODE,
        type_version=1,
        parameters={
            "operation": "postMessage",
            "channel": step.channel,
            "text": rewrite_template(step.text),
            "otherOptions": {},
            "authentication": "oAuth2",
        },
    )


def http_request_parameters(
    method: str,
    url: str,
    headers: Optional[Mapping[str, Any]] = None,
    body: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    options: Dict[str, Any] = {"response": {"fullResponse": False}}
    if headers is not None:
        options["headers"] = [
            {"name": name, "value": rewrite_value(value)} for name, value in headers.items()
        ]
    if body is not None:
        options["bodyContentType"] = "json"
        options["jsonBody"] = json.dumps(rewrite_value(dict(body)), indent=2)
    return {
        "method": method.upper(),
        "url": url,
        "authentication": "none",
        "options": options,
    }


def create_http_node(step: HttpRequestStep, node_id: str) -> Node:
    try:
        hostname = urlsplit(step.url).hostname
    except ValueError:
        hostname = None
    method = getattr(step.method, "value", step.method)
    return Node(
        id=node_id,
        name=escape_node_name(f"HTTP_{hostname or 'unknown'}"),
        type=HTTP_REQUEST_NODE,
        type_version=4,
        parameters=http_request_parameters(method, step.url, step.headers, step.body),
    )


async def create_custom_action_node(
    step: CustomActionStep, node_id: str, context: CompilerContext
) -> Node:
    definition = await context.action_registry.resolve(step.action_slug, context.org_id)
    if definition is None:
        raise CompilerError(
            UNKNOWN_CUSTOM_ACTION,
            f'Custom action "{step.action_slug}" is not available for your organization. '
            "Check the spelling or contact support to add this action.",
            step,
        )

    body = None
    if definition.body is not None or step.input is not None:
        body = {**(definition.body or {}), **(step.input or {})}

    return Node(
        id=node_id,
        name=escape_node_name(f"Custom_{step.action_slug}"),
        type=HTTP_REQUEST_NODE,
        type_version=4,
        parameters=http_request_parameters(definition.method, definition.url, definition.headers, body),
    )


def create_connections(nodes: Sequence[Node], output_counts: Mapping[str, int]) -> ConnectionMap:
    """
    Wire each node to the next one in flattened order. Decision nodes get one
    connection per output; the position in the ``main`` list is the output
    index.
    """

    connections: ConnectionMap = {}
    for current, following in zip(nodes, nodes[1:]):
        count = output_counts.get(current.id, 1)
        connections[current.id] = {
            MAIN_PORT: [
                Connection(
                    source=current.id,
                    source_output=MAIN_PORT,
                    target=following.id,
                    target_input=MAIN_PORT,
                )
                for _ in range(count)
            ]
        }
    return connections


def to_canonical_json(result: CompileResult) -> str:
    """Byte-stable serialization of a compile result."""
    return json.dumps(result.to_wire(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
