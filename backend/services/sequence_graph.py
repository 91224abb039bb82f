"""
Sequence Graph Model

Owns the nodes of a campaign sequence and every structural edit made to them.
Connections are never stored separately: they are re-derived from the nodes'
parent pointers after each structural change.
"""

from typing import Any, Dict, Iterable, Iterator, List, Optional, Union
import copy
import logging

from pydantic import ValidationError

from schemas.sequence import (
    SequenceNode, StepContent, ParentRef, Branch, BranchConnections, NodeKind,
    ActionType, ConditionType, CONTENT_MODELS, StructuralViolation, ViolationCode,
    MutationResult, classify_step_type,
)
from services.sequence_layout import (
    LayoutConfig, DEFAULT_LAYOUT, initial_position, find_roots,
)
from services.step_id import new_step_id
from services.template_variables import (
    sync_node_variables, can_insert_variable, insert_variable as insert_placeholder,
)

logger = logging.getLogger(__name__)

# A follow-up step waits a day by default; the first step goes out immediately
DEFAULT_FOLLOW_UP_DELAY = 1


class SequenceGraphError(Exception):
    """Raised internally when a structural rule would be broken"""

    def __init__(self, violation: StructuralViolation):
        super().__init__(violation.message)
        self.violation = violation


def _violation(code: ViolationCode, message: str, node_id: Optional[str] = None) -> SequenceGraphError:
    return SequenceGraphError(StructuralViolation(code=code, message=message, node_id=node_id))


def derive_adjacency(nodes: Iterable[SequenceNode]) -> Dict[str, BranchConnections]:
    """
    Group nodes by (parent_id, parent_branch) into per-node connection lists.

    This is the only place connections are computed. Parents that are not in
    the node set are ignored; their children show up as roots instead.
    """
    node_list = list(nodes)
    adjacency = {node.id: BranchConnections() for node in node_list}

    for node in node_list:
        if node.parent_id is None or node.parent_id not in adjacency:
            continue
        connections = adjacency[node.parent_id]
        branch = node.parent_branch or Branch.MAIN
        if branch == Branch.YES:
            if connections.yes_child is None:
                connections.yes_child = node.id
        elif branch == Branch.NO:
            if connections.no_child is None:
                connections.no_child = node.id
        else:
            connections.main_children.append(node.id)

    return adjacency


def default_content(step_type: str, is_root: bool) -> StepContent:
    """Empty content of the right variant for a new step."""
    model = CONTENT_MODELS[step_type]
    return model(delay=0 if is_root else DEFAULT_FOLLOW_UP_DELAY)


def resolve_step_type(kind: NodeKind, subtype: Union[str, ActionType, ConditionType]) -> str:
    value = subtype.value if isinstance(subtype, (ActionType, ConditionType)) else str(subtype)
    if value not in CONTENT_MODELS:
        raise _violation(ViolationCode.UNKNOWN_STEP_TYPE, f"Unknown step type '{value}'")
    if classify_step_type(value) != kind:
        raise _violation(
            ViolationCode.UNKNOWN_STEP_TYPE,
            f"'{value}' is not a {kind.value} step type",
        )
    return value


class SequenceGraph:
    """
    In-memory campaign sequence.

    Mutations return MutationResult values instead of raising. Structural
    and content edits are snapshotted so the last ones can be rolled back.
    """

    def __init__(self, layout_config: LayoutConfig = DEFAULT_LAYOUT):
        self._nodes: Dict[str, SequenceNode] = {}
        self.adjacency: Dict[str, BranchConnections] = {}
        self.layout_config = layout_config
        self.history: List[Dict[str, SequenceNode]] = []
        self.max_history = 100

    @classmethod
    def from_nodes(cls, nodes: Iterable[SequenceNode], layout_config: LayoutConfig = DEFAULT_LAYOUT) -> "SequenceGraph":
        """Wrap already-validated nodes (e.g. from deserialization) without re-checking them."""
        graph = cls(layout_config)
        for node in nodes:
            graph._nodes[node.id] = node
        graph._refresh()
        return graph

    # ---------- Read access ----------

    @property
    def nodes(self) -> List[SequenceNode]:
        return list(self._nodes.values())

    def get(self, node_id: str) -> Optional[SequenceNode]:
        return self._nodes.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[SequenceNode]:
        return iter(self.nodes)

    def roots(self) -> List[str]:
        return [node.id for node in find_roots(self.nodes)]

    def connections(self, node_id: str) -> BranchConnections:
        return self.adjacency.get(node_id, BranchConnections())

    def child(self, node_id: str, branch: Branch) -> Optional[str]:
        connections = self.connections(node_id)
        if branch == Branch.YES:
            return connections.yes_child
        if branch == Branch.NO:
            return connections.no_child
        return connections.main_children[0] if connections.main_children else None

    def ancestors(self, node_id: str) -> List[str]:
        """Parent chain from the nearest parent up to the root."""
        chain: List[str] = []
        seen = {node_id}
        node = self._nodes.get(node_id)
        while node is not None and node.parent_id is not None and node.parent_id in self._nodes:
            if node.parent_id in seen:
                break
            chain.append(node.parent_id)
            seen.add(node.parent_id)
            node = self._nodes[node.parent_id]
        return chain

    def depth(self, node_id: str) -> int:
        return len(self.ancestors(node_id))

    # ---------- Rule checks ----------

    def check_attach(self, parent: ParentRef, child_id: Optional[str] = None) -> Optional[StructuralViolation]:
        """Return the violation attaching under parent would cause, or None."""
        try:
            self._check_attach(parent, child_id)
        except SequenceGraphError as e:
            return e.violation
        return None

    def _check_attach(self, parent: ParentRef, child_id: Optional[str] = None) -> None:
        parent_node = self._nodes.get(parent.id)
        if parent_node is None:
            raise _violation(ViolationCode.UNKNOWN_NODE, f"Parent step '{parent.id}' not found", parent.id)

        if parent_node.kind == NodeKind.ACTION and parent.branch != Branch.MAIN:
            raise _violation(
                ViolationCode.INVALID_BRANCH,
                f"Step '{parent.id}' is an action; only conditions have {parent.branch.value} branches",
                parent.id,
            )
        if parent_node.kind == NodeKind.CONDITION and parent.branch == Branch.MAIN:
            raise _violation(
                ViolationCode.INVALID_BRANCH,
                f"Condition '{parent.id}' only continues through its yes and no branches",
                parent.id,
            )

        occupant = self.child(parent.id, parent.branch)
        if occupant is not None and occupant != child_id:
            raise _violation(
                ViolationCode.BRANCH_OCCUPIED,
                f"The {parent.branch.value} branch of '{parent.id}' already leads to '{occupant}'",
                parent.id,
            )

        if child_id is not None and (parent.id == child_id or child_id in self.ancestors(parent.id)):
            raise _violation(
                ViolationCode.CYCLE,
                f"Attaching '{child_id}' under '{parent.id}' would make it its own ancestor",
                child_id,
            )

    # ---------- Structural mutations ----------

    def add_node(
        self,
        kind: NodeKind,
        subtype: Union[str, ActionType, ConditionType],
        parent: Optional[ParentRef] = None,
        node_id: Optional[str] = None,
    ) -> MutationResult:
        """Create a step with default content, optionally attached under parent."""
        try:
            step_type = resolve_step_type(kind, subtype)
            if parent is not None:
                self._check_attach(parent)

            node_id = node_id or new_step_id()
            if node_id in self._nodes:
                raise _violation(ViolationCode.DUPLICATE_ID, f"Step '{node_id}' already exists", node_id)

            parent_node = self._nodes[parent.id] if parent is not None else None
            node = SequenceNode(
                id=node_id,
                kind=kind,
                step_type=step_type,
                content=default_content(step_type, is_root=parent is None),
                parent_id=parent.id if parent is not None else None,
                parent_branch=parent.branch if parent is not None else None,
                position=initial_position(
                    parent_node,
                    self.depth(parent.id) if parent is not None else 0,
                    parent.branch if parent is not None else None,
                    self.layout_config,
                ),
            )
        except SequenceGraphError as e:
            logger.warning(f"Rejected add_node: {e}")
            return MutationResult.failure(e.violation)

        self._snapshot()
        self._nodes[node.id] = node
        self._refresh()
        logger.debug(f"Added {step_type} step {node.id} under {parent.id if parent else 'root'}")
        return MutationResult.success(node.id)

    def move_node(self, node_id: str, parent: Optional[ParentRef]) -> MutationResult:
        """Re-attach an existing step under a new parent, or detach it when parent is None."""
        try:
            node = self._nodes.get(node_id)
            if node is None:
                raise _violation(ViolationCode.UNKNOWN_NODE, f"Step '{node_id}' not found", node_id)
            if parent is not None:
                self._check_attach(parent, child_id=node_id)
        except SequenceGraphError as e:
            logger.warning(f"Rejected move_node: {e}")
            return MutationResult.failure(e.violation)

        self._snapshot()
        node.parent_id = parent.id if parent is not None else None
        node.parent_branch = parent.branch if parent is not None else None
        self._refresh()
        return MutationResult.success(node_id)

    def remove_node(self, node_id: str) -> MutationResult:
        """
        Delete a step. Its children are orphaned: their parent pointer is
        cleared and they become roots of their own subtrees.
        """
        if node_id not in self._nodes:
            violation = StructuralViolation(
                code=ViolationCode.UNKNOWN_NODE, message=f"Step '{node_id}' not found", node_id=node_id
            )
            logger.warning(f"Rejected remove_node: {violation.message}")
            return MutationResult.failure(violation)

        self._snapshot()
        del self._nodes[node_id]
        orphaned = 0
        for node in self._nodes.values():
            if node.parent_id == node_id:
                node.parent_id = None
                node.parent_branch = None
                orphaned += 1
        self._refresh()
        logger.debug(f"Removed step {node_id}, orphaned {orphaned} children")
        return MutationResult.success(node_id)

    # ---------- Content and position ----------

    def update_content(self, node_id: str, partial_content: Dict[str, Any]) -> MutationResult:
        """
        Merge fields into a step's content. Keys may be snake_case or camelCase.

        Fields that do not belong to the step's content variant are rejected,
        as is any attempt to write the derived `variables` list.
        """
        node = self._nodes.get(node_id)
        if node is None:
            violation = StructuralViolation(
                code=ViolationCode.UNKNOWN_NODE, message=f"Step '{node_id}' not found", node_id=node_id
            )
            return MutationResult.failure(violation)

        content_model = type(node.content)
        updates: Dict[str, Any] = {}
        for key, value in partial_content.items():
            field_name = content_model.field_name_for(key)
            if field_name is None or field_name == "variables":
                violation = StructuralViolation(
                    code=ViolationCode.INVALID_CONTENT,
                    message=f"'{key}' cannot be set on a {node.step_type} step",
                    node_id=node_id,
                )
                logger.warning(f"Rejected update_content: {violation.message}")
                return MutationResult.failure(violation)
            updates[field_name] = value

        merged = node.content.model_dump()
        merged.update(updates)
        try:
            new_content = content_model.model_validate(merged)
        except ValidationError as e:
            violation = StructuralViolation(
                code=ViolationCode.INVALID_CONTENT,
                message=f"Invalid content for step '{node_id}': {e.error_count()} error(s)",
                node_id=node_id,
            )
            logger.warning(f"Rejected update_content: {e}")
            return MutationResult.failure(violation)

        self._snapshot()
        node.content = new_content
        if any(name in content_model.template_fields for name in updates):
            sync_node_variables(node)
        return MutationResult.success(node_id)

    def insert_variable(self, node_id: str, key: str, field: str) -> bool:
        node = self._nodes.get(node_id)
        if node is None or not can_insert_variable(node, key, field):
            return False
        self._snapshot()
        return insert_placeholder(node, key, field)

    def set_position(self, node_id: str, x: float, y: float) -> bool:
        """Manual placement; stays until the next full re-layout."""
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.position.x = x
        node.position.y = y
        return True

    # ---------- History ----------

    def rollback_last(self) -> bool:
        """Restore the state before the last structural or content edit."""
        if not self.history:
            return False
        self._nodes = self.history.pop()
        self._refresh()
        return True

    def _snapshot(self) -> None:
        self.history.append(copy.deepcopy(self._nodes))
        if len(self.history) > self.max_history:
            self.history.pop(0)

    def _refresh(self) -> None:
        self.adjacency = derive_adjacency(self._nodes.values())


def validate_sequence(graph: SequenceGraph) -> List[str]:
    """
    Report structural problems without changing anything:
    - more than one root (orphaned steps)
    - condition nodes missing a yes or no branch, or continuing through main
    - action nodes fanning out into several main children
    - parent cycles
    """
    errs: List[str] = []

    roots = graph.roots()
    if len(graph) and not roots:
        errs.append("Sequence has no starting step")
    for orphan_id in roots[1:]:
        errs.append(f"Step '{orphan_id}' is not connected to the sequence")

    for node in graph.nodes:
        connections = graph.connections(node.id)
        if node.kind == NodeKind.CONDITION:
            if connections.yes_child is None:
                errs.append(f"Condition '{node.id}' has nothing on its yes branch")
            if connections.no_child is None:
                errs.append(f"Condition '{node.id}' has nothing on its no branch")
            if connections.main_children:
                errs.append(f"Condition '{node.id}' continues through main instead of yes/no")
        elif len(connections.main_children) > 1:
            errs.append(
                f"Action '{node.id}' leads to {len(connections.main_children)} steps (at most 1 allowed)"
            )

    reachable = _reachable_from_roots(graph)
    for node in graph.nodes:
        if node.id not in reachable:
            errs.append(f"Step '{node.id}' is caught in a parent cycle")

    return errs


def _reachable_from_roots(graph: SequenceGraph) -> set:
    children: Dict[str, List[str]] = {}
    for node in graph.nodes:
        if node.parent_id is not None:
            children.setdefault(node.parent_id, []).append(node.id)

    reached = set()
    stack = graph.roots()
    while stack:
        node_id = stack.pop()
        if node_id in reached:
            continue
        reached.add(node_id)
        stack.extend(children.get(node_id, []))
    return reached
