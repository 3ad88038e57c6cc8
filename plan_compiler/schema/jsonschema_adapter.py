from __future__ import annotations

import json
import re
from threading import Lock
from typing import Any, Dict, Iterable, Iterator, Sequence

from jsonschema import ValidationError
from jsonschema.exceptions import SchemaError
from jsonschema.validators import Draft202012Validator, validator_for

from plan_compiler.schema.models import JsonSchema

ValidatorType = Draft202012Validator

ROOT_LOCATOR = "root"

_validator_cache: Dict[str, ValidatorType] = {}
_cache_lock = Lock()

_REQUIRED_PATTERN = re.compile(r"^'(?P<name>.*)' is a required property$")


def _cache_key(schema: JsonSchema, schema_id: str | None) -> str:
    if schema_id:
        return schema_id
    return json.dumps(schema, sort_keys=True, separators=(",", ":"))


def get_validator(schema: JsonSchema, *, schema_id: str | None = None) -> ValidatorType:
    """
    Return the compiled validator for ``schema``. Validators are built once per
    ``schema_id`` (or per canonical schema text) and shared across requests.
    """

    key = _cache_key(schema, schema_id)
    with _cache_lock:
        validator = _validator_cache.get(key)
        if validator is None:
            validator_cls = validator_for(schema, default=Draft202012Validator)
            validator = validator_cls(schema)
            _validator_cache[key] = validator
    return validator


def iter_errors(
    schema: JsonSchema, instance: Any, *, schema_id: str | None = None
) -> Iterator[ValidationError]:
    """
    Yield every violation of ``schema`` by ``instance`` instead of stopping at
    the first one.
    """

    validator = get_validator(schema, schema_id=schema_id)
    yield from validator.iter_errors(instance)


def check_schema(schema: JsonSchema) -> None:
    """Raise ``SchemaError`` when ``schema`` is not itself valid JSON Schema."""

    validator_cls = validator_for(schema, default=Draft202012Validator)
    validator_cls.check_schema(schema)


def format_path(tokens: Iterable[Any]) -> str:
    """
    Render an instance path as a dotted/bracketed locator, e.g.
    ``steps[2].when.op``. The empty path is reported as ``root``.
    """

    path = ""
    for token in tokens:
        if isinstance(token, int):
            path += f"[{token}]"
        elif path:
            path += f".{token}"
        else:
            path = str(token)
    return path or ROOT_LOCATOR


def _missing_property(error: ValidationError) -> str:
    match = _REQUIRED_PATTERN.match(error.message)
    if match:
        return match.group("name")
    return error.message


def format_validation_error(
    error: ValidationError,
    *,
    union_members: Sequence[str] | None = None,
) -> str:
    """
    Convert a jsonschema.ValidationError into a human-friendly error string
    templated by the kind of violation.
    """

    path = format_path(error.absolute_path)
    keyword = error.validator

    if keyword == "required":
        return f'Missing required property "{_missing_property(error)}" at {path}'
    if keyword == "enum":
        allowed = ", ".join(str(value) for value in error.validator_value)
        return f"Invalid value at {path}. Must be one of: {allowed}"
    if keyword == "const":
        return f"Invalid value at {path}. Must be: {error.validator_value}"
    if keyword == "minItems":
        return f"Array at {path} must have at least {error.validator_value} items"
    if keyword == "maxItems":
        return f"Array at {path} must have no more than {error.validator_value} items"
    if keyword == "minLength":
        return f"String at {path} must be at least {error.validator_value} characters long"
    if keyword == "maxLength":
        return f"String at {path} must be no more than {error.validator_value} characters long"
    if keyword == "oneOf":
        if union_members:
            return f"Invalid step type at {path}. Must be one of: {', '.join(union_members)}"
        return f"Value at {path} does not match any allowed shape"
    if keyword == "additionalProperties":
        return f"Unexpected property at {path}: {error.message}"
    if keyword == "type":
        expected = error.validator_value
        if isinstance(expected, list):
            expected = " or ".join(expected)
        return f"Value at {path} must be of type {expected}"
    return f"{error.message} at {path}"


__all__ = [
    "ROOT_LOCATOR",
    "SchemaError",
    "ValidationError",
    "check_schema",
    "format_path",
    "format_validation_error",
    "get_validator",
    "iter_errors",
]
