"""
Sequence Layout Engine

Assigns deterministic editor coordinates to sequence nodes from topology alone.
Stored positions are never consulted, so the same graph always lays out the same.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schemas.sequence import SequenceNode, Position, Branch, BRANCH_ORDER

logger = logging.getLogger(__name__)

ORIGIN_X = 250
ORIGIN_Y = 50
ROW_HEIGHT = 150
LEVEL_SPACING = 40
BRANCH_SPACING = 220


@dataclass(frozen=True)
class LayoutConfig:
    origin_x: float = ORIGIN_X
    origin_y: float = ORIGIN_Y
    row_height: float = ROW_HEIGHT
    level_spacing: float = LEVEL_SPACING
    branch_spacing: float = BRANCH_SPACING


DEFAULT_LAYOUT = LayoutConfig()


def branch_offset(branch: Optional[Branch], config: LayoutConfig = DEFAULT_LAYOUT) -> float:
    if branch == Branch.YES:
        return config.branch_spacing
    if branch == Branch.NO:
        return -config.branch_spacing
    return 0.0


def find_roots(nodes: Sequence[SequenceNode]) -> List[SequenceNode]:
    """Nodes with no incoming edge: no parent, or a parent that no longer exists."""
    ids = {node.id for node in nodes}
    return [node for node in nodes if node.parent_id is None or node.parent_id not in ids]


def _children_by_parent(nodes: Sequence[SequenceNode]) -> Dict[str, List[SequenceNode]]:
    grouped: Dict[str, List[Tuple[int, str, SequenceNode]]] = {}
    for node in nodes:
        if node.parent_id is None:
            continue
        branch = node.parent_branch or Branch.MAIN
        grouped.setdefault(node.parent_id, []).append((BRANCH_ORDER[branch], node.id, node))

    return {
        parent_id: [node for _, _, node in sorted(entries, key=lambda entry: entry[:2])]
        for parent_id, entries in grouped.items()
    }


def _node_id(node: SequenceNode) -> str:
    return node.id


def preorder(nodes: Sequence[SequenceNode]) -> Iterable[Tuple[SequenceNode, int]]:
    """
    Yield (node, level) depth-first, pre-order, from each root in turn.

    Roots are walked in id order and siblings main < yes < no, ties broken by
    id, so input order never changes the result. Nodes unreachable from any
    root (only possible on a parent cycle) are walked afterwards as if they
    were roots, so every node is yielded exactly once.
    """
    children = _children_by_parent(nodes)
    visited = set()

    def walk(start: SequenceNode):
        stack = [(start, 0)]
        while stack:
            node, level = stack.pop()
            if node.id in visited:
                continue
            visited.add(node.id)
            yield node, level
            for child in reversed(children.get(node.id, [])):
                stack.append((child, level + 1))

    for root in sorted(find_roots(nodes), key=_node_id):
        yield from walk(root)

    for node in sorted(nodes, key=_node_id):
        if node.id not in visited:
            yield from walk(node)


def layout_positions(nodes: Sequence[SequenceNode], config: LayoutConfig = DEFAULT_LAYOUT) -> Dict[str, Position]:
    """
    Compute positions for every node.

    y advances one row per visited node in pre-order; x is set by depth plus a
    sideways shift for nodes entered through a yes (right) or no (left) edge.
    """
    positions: Dict[str, Position] = {}
    row = 0
    for node, level in preorder(nodes):
        branch = node.parent_branch if level > 0 else Branch.MAIN
        positions[node.id] = Position(
            x=config.origin_x + level * config.level_spacing + branch_offset(branch, config),
            y=config.origin_y + row * config.row_height,
        )
        row += 1

    logger.debug(f"Laid out {len(positions)} nodes")
    return positions


def apply_layout(nodes: Sequence[SequenceNode], config: LayoutConfig = DEFAULT_LAYOUT) -> None:
    """Overwrite every node's position with the computed layout."""
    positions = layout_positions(nodes, config)
    for node in nodes:
        node.position = positions[node.id]


def initial_position(
    parent: Optional[SequenceNode],
    parent_level: int,
    branch: Optional[Branch],
    config: LayoutConfig = DEFAULT_LAYOUT,
) -> Position:
    """Placement for a freshly added node, one row below its parent."""
    if parent is None:
        return Position(x=config.origin_x, y=config.origin_y)

    level = parent_level + 1
    return Position(
        x=config.origin_x + level * config.level_spacing + branch_offset(branch, config),
        y=parent.position.y + config.row_height,
    )
