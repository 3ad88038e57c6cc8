"""
Organization-scoped registry of custom actions.

The semantic validator asks the registry whether a ``custom.action`` slug
exists for the caller's organization, and the graph compiler resolves the
slug into the HTTP call it stands for.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, MutableMapping, Optional, Protocol, Tuple, runtime_checkable


@dataclass(frozen=True)
class ActionDefinition:
    slug: str
    url: str
    method: str = "POST"
    headers: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, slug: str, data: Mapping[str, Any]) -> "ActionDefinition":
        return cls(
            slug=slug,
            url=str(data["url"]),
            method=str(data.get("method", "POST")),
            headers=dict(data["headers"]) if data.get("headers") else None,
            body=dict(data["body"]) if data.get("body") else None,
            metadata=dict(data.get("metadata") or {}),
        )


@runtime_checkable
class ActionRegistry(Protocol):
    async def resolve(self, action_slug: str, org_id: str) -> Optional[ActionDefinition]:
        """Return the action for ``org_id`` or ``None`` when it does not exist."""


class InMemoryActionRegistry:
    """
    Stores action definitions either globally (visible to every organization)
    or for a single organization. Organization entries shadow global ones.
    """

    def __init__(
        self,
        initial: MutableMapping[str, ActionDefinition] | None = None,
    ) -> None:
        self._global: Dict[str, ActionDefinition] = dict(initial or {})
        self._scoped: Dict[Tuple[str, str], ActionDefinition] = {}

    def register(self, definition: ActionDefinition, *, org_id: str | None = None) -> None:
        if org_id is None:
            self._global[definition.slug] = definition
        else:
            self._scoped[(org_id, definition.slug)] = definition

    def maybe_get(self, action_slug: str, org_id: str) -> Optional[ActionDefinition]:
        return self._scoped.get((org_id, action_slug)) or self._global.get(action_slug)

    async def resolve(self, action_slug: str, org_id: str) -> Optional[ActionDefinition]:
        return self.maybe_get(action_slug, org_id)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]]) -> "InMemoryActionRegistry":
        """
        Build a registry from ``{slug: {"url": ..., "method": ..., ...}}``.
        An optional ``org_id`` key inside a definition scopes it to that org.
        """

        registry = cls()
        for slug, raw in data.items():
            registry.register(ActionDefinition.from_mapping(slug, raw), org_id=raw.get("org_id"))
        return registry
