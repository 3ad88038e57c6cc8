"""
Stage 4: Assign canvas coordinates to compiled nodes.

Nodes are placed in columns by level (hops from the nearest root) and stacked
vertically, centered on ``start_y``, within each column. Layout must never
block deployment: any failure falls back to a fixed three-column grid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Set, Tuple

from plan_compiler.errors import LayoutError
from plan_compiler.schema.models import Connection, Node
from shared.config import config
from shared.logger import get_logger

logger = get_logger(__name__)

GRID_COLUMNS = 3

Position = Tuple[int, int]


@dataclass(frozen=True)
class LayoutOptions:
    node_width: int = 240
    node_height: int = 100
    horizontal_spacing: int = 300
    vertical_spacing: int = 150
    start_x: int = 100
    start_y: int = 100

    @classmethod
    def from_config(cls, **overrides: int) -> "LayoutOptions":
        return cls(**{**config.layout_defaults, **overrides})

    @property
    def origin(self) -> Position:
        return (self.start_x, self.start_y)


@dataclass(frozen=True)
class LayoutValidation:
    valid: bool
    issues: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LayoutBounds:
    min_x: int = 0
    min_y: int = 0
    max_x: int = 0
    max_y: int = 0

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y


def auto_layout(
    nodes: Sequence[Node],
    connections: Mapping[str, Mapping[str, Sequence[Any]]],
    options: LayoutOptions | None = None,
) -> List[Node]:
    """
    Return copies of ``nodes`` with positions assigned. Never raises.
    """

    opts = options or LayoutOptions.from_config()

    if not nodes:
        return []

    if len(nodes) == 1:
        return [_place(nodes[0], opts.origin)]

    try:
        dependencies = build_dependency_graph(nodes, connections)
        levels = calculate_levels(nodes, dependencies)
        positions = _calculate_positions(_group_by_level(nodes, levels), opts)
        return [_place(node, positions.get(node.id, opts.origin)) for node in nodes]
    except Exception as exc:
        logger.warning(
            "Auto-layout failed, falling back to grid layout nodes=%d error=%s",
            len(nodes),
            exc,
        )
        return grid_layout(nodes, opts)


def grid_layout(nodes: Sequence[Node], options: LayoutOptions) -> List[Node]:
    return [
        _place(
            node,
            (
                options.start_x + (index % GRID_COLUMNS) * options.horizontal_spacing,
                options.start_y + (index // GRID_COLUMNS) * options.vertical_spacing,
            ),
        )
        for index, node in enumerate(nodes)
    ]


def build_dependency_graph(
    nodes: Sequence[Node],
    connections: Mapping[str, Mapping[str, Sequence[Any]]],
) -> Dict[str, List[str]]:
    """
    Map every node id to the ids of the nodes that connect into it.
    """

    graph: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for source_id, outputs in connections.items():
        for connection_list in outputs.values():
            for connection in connection_list:
                sources = graph.setdefault(_target_of(connection), [])
                if source_id not in sources:
                    sources.append(source_id)
    return graph


def calculate_levels(nodes: Sequence[Node], dependencies: Mapping[str, Sequence[str]]) -> Dict[str, int]:
    """
    Level 0 for nodes without dependencies, otherwise one more than the
    deepest dependency. Memoized depth-first walk with an explicit stack;
    a dependency cycle raises ``LayoutError``.
    """

    levels: Dict[str, int] = {}
    for node in nodes:
        if node.id in levels:
            continue
        on_path: Set[str] = set()
        stack: List[Tuple[str, bool]] = [(node.id, False)]
        while stack:
            node_id, expanded = stack.pop()
            sources = dependencies.get(node_id, ())
            if expanded:
                on_path.discard(node_id)
                levels[node_id] = 1 + max(levels[source] for source in sources) if sources else 0
                continue
            if node_id in levels:
                continue
            if node_id in on_path:
                raise LayoutError(f"Dependency cycle detected at node {node_id}")
            on_path.add(node_id)
            stack.append((node_id, True))
            for source in sources:
                if source in on_path:
                    raise LayoutError(f"Dependency cycle detected between {source} and {node_id}")
                if source not in levels:
                    stack.append((source, False))
    return levels


def validate_layout(nodes: Sequence[Node]) -> LayoutValidation:
    """
    Diagnostic check for exact position collisions and negative coordinates.
    """

    issues: List[str] = []
    seen: Set[Position] = set()
    for node in nodes:
        position = tuple(node.position)
        if position in seen:
            issues.append(f"Overlapping nodes detected at position {position[0]},{position[1]}")
        seen.add(position)

    for node in nodes:
        x, y = node.position
        if x < 0 or y < 0:
            issues.append(f"Node {node.name} has negative position: [{x}, {y}]")

    return LayoutValidation(valid=not issues, issues=issues)


def get_layout_bounds(nodes: Sequence[Node]) -> LayoutBounds:
    if not nodes:
        return LayoutBounds()
    xs = [node.position[0] for node in nodes]
    ys = [node.position[1] for node in nodes]
    return LayoutBounds(min_x=min(xs), min_y=min(ys), max_x=max(xs), max_y=max(ys))


def _target_of(connection: Any) -> str:
    if isinstance(connection, Connection):
        return connection.target
    target = connection["target"]
    if not isinstance(target, str):
        raise LayoutError(f"Connection target must be a node id, got {target!r}")
    return target


def _group_by_level(nodes: Sequence[Node], levels: Mapping[str, int]) -> Dict[int, List[Node]]:
    groups: Dict[int, List[Node]] = {}
    for node in nodes:
        groups.setdefault(levels.get(node.id, 0), []).append(node)
    return groups


def _calculate_positions(groups: Mapping[int, List[Node]], options: LayoutOptions) -> Dict[str, Position]:
    positions: Dict[str, Position] = {}
    for level in sorted(groups):
        column = sorted(groups[level], key=lambda node: node.name)
        x = options.start_x + level * options.horizontal_spacing
        total_height = len(column) * options.node_height + (len(column) - 1) * options.vertical_spacing
        top = options.start_y - total_height // 2
        for index, node in enumerate(column):
            positions[node.id] = (x, top + index * (options.node_height + options.vertical_spacing))
    return positions


def _place(node: Node, position: Position) -> Node:
    return node.model_copy(update={"position": (int(position[0]), int(position[1]))})
