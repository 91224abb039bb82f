"""
Sequence Editor Session

One editing session over a campaign sequence: the graph, the canvas view
state, and the add-step chooser handshake. Structural edits are refused
while a node is being dragged.
"""

from typing import Any, Dict, List, Optional, Tuple, Union
import logging

from schemas.sequence import (
    Branch, BranchConnections, FlatStep, MutationResult, NodeKind, ParentRef, Position,
    SequenceWarning, StepChooserRequest, StructuralViolation, ViolationCode, classify_step_type,
)
from services import canvas_state
from services.canvas_state import CanvasState, ZoomTrigger
from services.sequence_graph import SequenceGraph
from services.sequence_layout import LayoutConfig, DEFAULT_LAYOUT
from services.sequence_serializer import from_flat, to_flat_dicts

logger = logging.getLogger(__name__)


class SequenceEditor:
    def __init__(self, graph: Optional[SequenceGraph] = None):
        self.graph = graph if graph is not None else SequenceGraph()
        self.canvas = CanvasState()

    @classmethod
    def load(
        cls,
        steps: List[Union[FlatStep, Dict[str, Any]]],
        relayout: bool = False,
        layout_config: LayoutConfig = DEFAULT_LAYOUT,
    ) -> Tuple["SequenceEditor", List[SequenceWarning]]:
        result = from_flat(steps, relayout=relayout, layout_config=layout_config)
        return cls(result.graph), result.warnings

    def save(self) -> List[Dict[str, Any]]:
        return to_flat_dicts(self.graph)

    @property
    def adjacency(self) -> Dict[str, BranchConnections]:
        return self.graph.adjacency

    # ---------- Add-step chooser ----------

    def open_step_chooser(
        self, parent_id: Optional[str] = None, branch: Branch = Branch.MAIN
    ) -> Union[StepChooserRequest, StructuralViolation]:
        """
        Begin adding a step. The returned request says where the chosen step
        will go and must be handed back to complete_step_chooser.
        """
        if self.canvas.is_dragging:
            return self._drag_violation()

        request = StepChooserRequest(parent_id=parent_id, branch=branch if parent_id else None)
        if request.parent is not None:
            violation = self.graph.check_attach(request.parent)
            if violation is not None:
                return violation
        return request

    def complete_step_chooser(self, request: StepChooserRequest, step_type: str) -> MutationResult:
        return self.add_step(classify_step_type(step_type), step_type, request.parent)

    # ---------- Structural edits ----------

    def add_step(self, kind: NodeKind, subtype: str, parent: Optional[ParentRef] = None) -> MutationResult:
        if self.canvas.is_dragging:
            return MutationResult.failure(self._drag_violation())
        return self.graph.add_node(kind, subtype, parent)

    def remove_step(self, node_id: str) -> MutationResult:
        if self.canvas.is_dragging:
            return MutationResult.failure(self._drag_violation())
        return self.graph.remove_node(node_id)

    def move_step(self, node_id: str, parent: Optional[ParentRef]) -> MutationResult:
        if self.canvas.is_dragging:
            return MutationResult.failure(self._drag_violation())
        return self.graph.move_node(node_id, parent)

    def undo(self) -> bool:
        if self.canvas.is_dragging:
            return False
        return self.graph.rollback_last()

    # ---------- Content edits ----------

    def update_content(self, node_id: str, partial_content: Dict[str, Any]) -> MutationResult:
        return self.graph.update_content(node_id, partial_content)

    def insert_variable(self, node_id: str, key: str, field: str) -> bool:
        return self.graph.insert_variable(node_id, key, field)

    # ---------- Canvas gestures ----------

    def pointer_down_on_node(self, node_id: str, pointer: Position) -> None:
        node = self.graph.get(node_id)
        if node is None:
            return
        self.canvas = canvas_state.pointer_down_on_node(self.canvas, node_id, node.position, pointer)

    def pointer_down_on_canvas(self, pointer: Position) -> None:
        self.canvas = canvas_state.pointer_down_on_canvas(self.canvas, pointer)

    def pointer_move(self, pointer: Position) -> None:
        self.canvas, position = canvas_state.pointer_move(self.canvas, pointer)
        if position is not None and self.canvas.drag is not None:
            self.graph.set_position(self.canvas.drag.node_id, position.x, position.y)

    def pointer_up(self) -> None:
        self.canvas = canvas_state.pointer_up(self.canvas)

    def wheel(self, delta_y: float) -> None:
        self.canvas = canvas_state.wheel(self.canvas, delta_y)

    def zoom_in(self) -> None:
        self.canvas = canvas_state.zoom(self.canvas, zoom_in=True, trigger=ZoomTrigger.BUTTON)

    def zoom_out(self) -> None:
        self.canvas = canvas_state.zoom(self.canvas, zoom_in=False, trigger=ZoomTrigger.BUTTON)

    def _drag_violation(self) -> StructuralViolation:
        drag = self.canvas.drag
        logger.warning("Structural edit refused while a step is being dragged")
        return StructuralViolation(
            code=ViolationCode.DRAG_IN_PROGRESS,
            message="Finish moving the step before changing the sequence",
            node_id=drag.node_id if drag else None,
        )
