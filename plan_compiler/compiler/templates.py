"""
Rewriting of ``{{path}}`` placeholders into n8n runtime expressions.

Plans reference incoming data as ``{{user.name}}`` and secrets as
``{{secrets.API_KEY}}``. In the compiled workflow these become
``{{ $json.user.name }}`` and ``{{ $vars.API_KEY }}`` respectively.
"""

from __future__ import annotations

import re
from typing import Any

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

SECRETS_ROOT = "secrets."


def data_expression(path: str) -> str:
    return f"{{{{ $json.{path} }}}}"


def secret_expression(name: str) -> str:
    return f"{{{{ $vars.{name} }}}}"


def _rewrite_match(match: re.Match[str]) -> str:
    reference = match.group(1).strip()
    if reference.startswith(SECRETS_ROOT):
        return secret_expression(reference[len(SECRETS_ROOT):])
    return data_expression(reference)


def rewrite_template(text: str) -> str:
    return TEMPLATE_PATTERN.sub(_rewrite_match, text)


def rewrite_value(value: Any) -> Any:
    """Rewrite every string inside ``value``; other scalars pass through."""
    if isinstance(value, str):
        return rewrite_template(value)
    if isinstance(value, list):
        return [rewrite_value(item) for item in value]
    if isinstance(value, dict):
        return {key: rewrite_value(item) for key, item in value.items()}
    return value

