"""
Container for per-request compiler inputs and collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from plan_compiler.registry.action_registry import ActionRegistry, InMemoryActionRegistry
from plan_compiler.registry.host_allowlist import HostAllowlist, StaticHostAllowlist


@dataclass(frozen=True)
class CompilerContext:
    org_id: str
    action_registry: ActionRegistry = field(default_factory=InMemoryActionRegistry)
    host_allowlist: HostAllowlist = field(default_factory=StaticHostAllowlist)
