"""
Sequence Serialization Adapter

Converts between the flat parent-pointer steps the campaign service stores
and the in-memory SequenceGraph used for editing.

Loading never fails on bad data: problems are reported as SequenceWarning
values and the offending step is kept, orphaned if its edge can't be trusted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union
import logging

from pydantic import ValidationError

from schemas.sequence import (
    FlatStep, SequenceNode, StepContent, UnknownContent, Position, Branch, BranchConnections,
    NodeKind, SequenceWarning, WarningCode, classify_step_type, is_known_step_type,
    content_model_for,
)
from services.sequence_graph import SequenceGraph
from services.sequence_layout import LayoutConfig, DEFAULT_LAYOUT, apply_layout
from services.template_variables import sync_node_variables

logger = logging.getLogger(__name__)


@dataclass
class DeserializeResult:
    graph: SequenceGraph
    adjacency: Dict[str, BranchConnections]
    warnings: List[SequenceWarning] = field(default_factory=list)
    relaid_out: bool = False


def to_flat(graph: SequenceGraph) -> List[FlatStep]:
    """Flatten the graph into storable steps. Derived adjacency is not included."""
    steps = []
    for node in graph.nodes:
        steps.append(FlatStep(
            id=node.id,
            step_type=node.step_type,
            parent_id=node.parent_id,
            parent_branch=node.parent_branch.value if node.parent_branch else None,
            x=node.position.x,
            y=node.position.y,
            content=_dump_content(node.content),
        ))
    return steps


def to_flat_dicts(graph: SequenceGraph) -> List[Dict[str, Any]]:
    return [step.to_wire() for step in to_flat(graph)]


def _dump_content(content: StepContent) -> Dict[str, Any]:
    if isinstance(content, UnknownContent):
        # Only what was read in goes back out
        return content.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return content.model_dump(mode="json", by_alias=True, exclude_none=True)


def from_flat(
    steps: Iterable[Union[FlatStep, Dict[str, Any]]],
    relayout: bool = False,
    layout_config: LayoutConfig = DEFAULT_LAYOUT,
) -> DeserializeResult:
    """
    Rebuild a SequenceGraph from flat steps.

    Array order carries no meaning except to decide which of two conflicting
    steps keeps a contested branch (the earlier one). Stored positions are kept
    only when every step has both x and y and relayout is False.
    """
    warnings: List[SequenceWarning] = []
    parsed = _parse_steps(steps, warnings)

    nodes: List[SequenceNode] = []
    has_positions = True
    for step in parsed:
        nodes.append(_build_node(step, warnings))
        if step.x is None or step.y is None:
            has_positions = False

    _resolve_parents(nodes, warnings)
    _break_cycles(nodes, warnings)

    for node, step in zip(nodes, parsed):
        stored = step.content.get("variables")
        changed = sync_node_variables(node)
        if changed and stored is not None:
            _warn(warnings, WarningCode.VARIABLES_RESYNCED, node.id,
                  f"Stored variables {stored} did not match the text; now {node.content.variables}")

    relaid_out = relayout or not has_positions
    if relaid_out:
        apply_layout(nodes, layout_config)

    graph = SequenceGraph.from_nodes(nodes, layout_config)
    logger.info(f"Loaded sequence with {len(nodes)} steps, {len(warnings)} warnings")
    return DeserializeResult(graph=graph, adjacency=graph.adjacency, warnings=warnings, relaid_out=relaid_out)


def _warn(warnings: List[SequenceWarning], code: WarningCode, step_id: Optional[str], message: str) -> None:
    logger.warning(f"Sequence step {step_id}: {message}")
    warnings.append(SequenceWarning(code=code, step_id=step_id, message=message))


def _parse_steps(steps: Iterable[Union[FlatStep, Dict[str, Any]]], warnings: List[SequenceWarning]) -> List[FlatStep]:
    parsed: List[FlatStep] = []
    seen: Set[str] = set()
    for index, raw in enumerate(steps):
        if isinstance(raw, FlatStep):
            step = raw
        else:
            if isinstance(raw, dict):
                raw = _coerce_record(raw, warnings)
            try:
                step = FlatStep.model_validate(raw)
            except ValidationError as e:
                step_id = raw.get("id") if isinstance(raw, dict) else None
                _warn(warnings, WarningCode.INVALID_STEP, step_id,
                      f"Step #{index} could not be read and was skipped: {e.error_count()} error(s)")
                continue

        if step.id in seen:
            _warn(warnings, WarningCode.DUPLICATE_ID, step.id,
                  f"Step #{index} repeats id '{step.id}' and was skipped")
            continue
        seen.add(step.id)
        parsed.append(step)
    return parsed


def _coerce_record(raw: Dict[str, Any], warnings: List[SequenceWarning]) -> Dict[str, Any]:
    """
    Blank out optional fields that can't be read so the rest of the step
    survives. Only a missing/unreadable id or step type drops the record.
    """
    record = dict(raw)
    step_id = record.get("id")

    if "content" in record and not isinstance(record["content"], dict):
        if record["content"] is not None:
            _warn(warnings, WarningCode.INVALID_CONTENT, step_id,
                  f"Content {record['content']!r} is not an object; using defaults")
        record["content"] = {}

    for key in ("parentBranch", "parent_branch"):
        if key in record and record[key] is not None and not isinstance(record[key], str):
            _warn(warnings, WarningCode.UNKNOWN_BRANCH, step_id,
                  f"Unknown branch {record[key]!r}, treated as main")
            record[key] = None

    for key in ("x", "y"):
        if record.get(key) is not None and _as_coordinate(record[key]) is None:
            record[key] = None

    return record


def _as_coordinate(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _build_node(step: FlatStep, warnings: List[SequenceWarning]) -> SequenceNode:
    parent_id = step.parent_id
    parent_branch: Optional[Branch] = None

    if not is_known_step_type(step.step_type):
        _warn(warnings, WarningCode.UNKNOWN_STEP_TYPE, step.id,
              f"Unknown step type '{step.step_type}'; kept as a detached step")
        parent_id = None
    elif parent_id is not None:
        try:
            parent_branch = Branch(step.parent_branch) if step.parent_branch else Branch.MAIN
        except ValueError:
            _warn(warnings, WarningCode.UNKNOWN_BRANCH, step.id,
                  f"Unknown branch '{step.parent_branch}', treated as main")
            parent_branch = Branch.MAIN

    return SequenceNode(
        id=step.id,
        kind=classify_step_type(step.step_type),
        step_type=step.step_type,
        content=_build_content(step, warnings),
        parent_id=parent_id,
        parent_branch=parent_branch,
        position=Position(x=step.x or 0.0, y=step.y or 0.0),
    )


def _build_content(step: FlatStep, warnings: List[SequenceWarning]) -> StepContent:
    """
    Validate raw content against the step's variant.

    Unknown keys are dropped. Keys with invalid values fall back to their
    defaults one at a time, so the valid rest of the content survives.
    """
    model = content_model_for(step.step_type)
    raw = dict(step.content)

    if model is not UnknownContent:
        extra = sorted(key for key in raw if model.field_name_for(key) is None)
        if extra:
            _warn(warnings, WarningCode.DROPPED_FIELDS, step.id,
                  f"Fields {extra} do not belong to a {step.step_type} step and were dropped")
            for key in extra:
                raw.pop(key)

    while True:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            bad_fields = {model.field_name_for(str(err["loc"][0])) for err in e.errors() if err["loc"]}
            bad_keys = {key for key in raw if model.field_name_for(key) in bad_fields}
            if not bad_keys:
                _warn(warnings, WarningCode.INVALID_CONTENT, step.id,
                      "Content could not be read; using defaults")
                return model()
            _warn(warnings, WarningCode.INVALID_CONTENT, step.id,
                  f"Invalid values for {sorted(bad_keys)} replaced with defaults")
            for key in bad_keys:
                raw.pop(key)


def _resolve_parents(nodes: List[SequenceNode], warnings: List[SequenceWarning]) -> None:
    """Orphan steps whose parent is missing or whose branch slot can't hold them."""
    by_id = {node.id: node for node in nodes}
    claimed: Set[tuple] = set()

    for node in nodes:
        if node.parent_id is None:
            continue

        parent = by_id.get(node.parent_id)
        if parent is None:
            _warn(warnings, WarningCode.UNKNOWN_PARENT, node.id,
                  f"Parent '{node.parent_id}' does not exist; step is now a root")
            _detach(node)
            continue

        branch = node.parent_branch or Branch.MAIN
        if parent.kind == NodeKind.ACTION and branch != Branch.MAIN:
            _warn(warnings, WarningCode.BRANCH_CONFLICT, node.id,
                  f"Action '{parent.id}' has no {branch.value} branch; step is now a root")
            _detach(node)
            continue

        # A condition's main children are tolerated on read and not slot-limited
        if parent.kind == NodeKind.CONDITION and branch == Branch.MAIN:
            continue

        slot = (parent.id, branch)
        if slot in claimed:
            _warn(warnings, WarningCode.BRANCH_CONFLICT, node.id,
                  f"The {branch.value} branch of '{parent.id}' is already taken; step is now a root")
            _detach(node)
            continue
        claimed.add(slot)


def _break_cycles(nodes: List[SequenceNode], warnings: List[SequenceWarning]) -> None:
    """Detach one step per parent cycle (the earliest in input order)."""
    by_id = {node.id: node for node in nodes}
    order = {node.id: index for index, node in enumerate(nodes)}
    settled: Set[str] = set()

    for node in nodes:
        path: List[str] = []
        on_path: Set[str] = set()
        current: Optional[SequenceNode] = node
        while current is not None and current.id not in settled:
            if current.id in on_path:
                cycle = path[path.index(current.id):]
                victim = by_id[min(cycle, key=order.__getitem__)]
                _warn(warnings, WarningCode.CYCLE_BROKEN, victim.id,
                      f"Steps {cycle} form a parent cycle; '{victim.id}' is now a root")
                _detach(victim)
                break
            path.append(current.id)
            on_path.add(current.id)
            current = by_id.get(current.parent_id) if current.parent_id is not None else None
        settled.update(path)


def _detach(node: SequenceNode) -> None:
    node.parent_id = None
    node.parent_branch = None
