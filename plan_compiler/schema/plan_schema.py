"""
JSON Schema for plan documents.

Branch steps contain nested steps of the same union, so the step definition is
declared once under ``$defs`` and referenced recursively via ``$ref``.
"""

from __future__ import annotations

from typing import Any, Dict

from plan_compiler.schema.models import JsonSchema

PLAN_SCHEMA_ID = "plan@v1"

STEP_REF = {"$ref": "#/$defs/step"}

_CONDITION: JsonSchema = {
    "type": "object",
    "properties": {
        "field": {"type": "string"},
        "op": {"type": "string", "enum": ["contains", "equals", "gt", "lt", "regex"]},
        "value": {},
    },
    "required": ["field", "op", "value"],
    "additionalProperties": False,
}

_OPEN_OBJECT: JsonSchema = {"type": ["object", "null"], "additionalProperties": True}


def _step_variant(step_type: str, properties: Dict[str, Any], required: list[str]) -> JsonSchema:
    return {
        "type": "object",
        "properties": {"type": {"type": "string", "const": step_type}, **properties},
        "required": ["type", *required],
        "additionalProperties": False,
    }


STEP_VARIANTS: Dict[str, JsonSchema] = {
    "trigger.http": _step_variant(
        "trigger.http",
        {"path": {"type": "string"}, "secretHmac": {"type": "boolean"}},
        ["path", "secretHmac"],
    ),
    "filter": _step_variant("filter", {"when": {"$ref": "#/$defs/condition"}}, ["when"]),
    "branch": _step_variant(
        "branch",
        {
            "cases": {
                "type": "array",
                "items": {"$ref": "#/$defs/branchCase"},
                "minItems": 1,
            },
            "else": {"type": ["array", "null"], "items": STEP_REF},
        },
        ["cases"],
    ),
    "action.slack.postMessage": _step_variant(
        "action.slack.postMessage",
        {"channel": {"type": "string"}, "text": {"type": "string"}},
        ["channel", "text"],
    ),
    "action.http.request": _step_variant(
        "action.http.request",
        {
            "method": {"type": "string", "enum": ["GET", "POST", "PUT", "DELETE"]},
            "url": {"type": "string"},
            "headers": _OPEN_OBJECT,
            "body": _OPEN_OBJECT,
        },
        ["method", "url"],
    ),
    "custom.action": _step_variant(
        "custom.action",
        {"actionSlug": {"type": "string"}, "input": _OPEN_OBJECT},
        ["actionSlug"],
    ),
}

PLAN_SCHEMA: JsonSchema = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "version": {"type": "string", "const": "1"},
        "name": {"type": "string", "minLength": 1, "maxLength": 100},
        "steps": {
            "type": "array",
            "items": STEP_REF,
            "minItems": 1,
            "maxItems": 50,
        },
    },
    "required": ["version", "name", "steps"],
    "additionalProperties": False,
    "$defs": {
        "condition": _CONDITION,
        "branchCase": {
            "type": "object",
            "properties": {
                "when": {"$ref": "#/$defs/condition"},
                "steps": {"type": "array", "items": STEP_REF},
            },
            "required": ["when", "steps"],
            "additionalProperties": False,
        },
        "step": {"oneOf": list(STEP_VARIANTS.values())},
    },
}
