"""
Canvas Interaction State

View-only state of the sequence editor canvas: zoom, pan offset and the node
drag in progress. Every transition returns a new CanvasState; nothing here
touches sequence content.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from schemas.sequence import Position

MIN_ZOOM = 0.1
MAX_ZOOM = 3.0

WHEEL_ZOOM_IN = 1.1
WHEEL_ZOOM_OUT = 0.9
BUTTON_ZOOM_IN = 1.2
BUTTON_ZOOM_OUT = 0.8


class ZoomTrigger(str, Enum):
    WHEEL = "wheel"
    BUTTON = "button"


@dataclass(frozen=True)
class DragState:
    node_id: str
    original_position: Position
    pointer_origin: Position


@dataclass(frozen=True)
class CanvasState:
    zoom: float = 1.0
    pan_offset: Position = field(default_factory=Position)
    drag: Optional[DragState] = None
    # Last pointer seen during a pan gesture; None when not panning
    pan_pointer: Optional[Position] = None

    @property
    def is_dragging(self) -> bool:
        return self.drag is not None

    @property
    def is_panning(self) -> bool:
        return self.pan_pointer is not None


def clamp_zoom(value: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, value))


def zoom(state: CanvasState, zoom_in: bool, trigger: ZoomTrigger = ZoomTrigger.BUTTON) -> CanvasState:
    if trigger == ZoomTrigger.WHEEL:
        factor = WHEEL_ZOOM_IN if zoom_in else WHEEL_ZOOM_OUT
    else:
        factor = BUTTON_ZOOM_IN if zoom_in else BUTTON_ZOOM_OUT
    return replace(state, zoom=clamp_zoom(state.zoom * factor))


def wheel(state: CanvasState, delta_y: float) -> CanvasState:
    """Scrolling up (negative delta) zooms in."""
    if delta_y == 0:
        return state
    return zoom(state, zoom_in=delta_y < 0, trigger=ZoomTrigger.WHEEL)


def reset_view(state: CanvasState) -> CanvasState:
    return replace(state, zoom=1.0, pan_offset=Position())


def pointer_down_on_canvas(state: CanvasState, pointer: Position) -> CanvasState:
    """Start panning, unless a node drag already owns this gesture."""
    if state.is_dragging:
        return state
    return replace(state, pan_pointer=pointer)


def pointer_down_on_node(
    state: CanvasState, node_id: str, node_position: Position, pointer: Position
) -> CanvasState:
    """Start dragging a node. Any pan the same press would begin is suppressed."""
    drag = DragState(
        node_id=node_id,
        original_position=Position(x=node_position.x, y=node_position.y),
        pointer_origin=pointer,
    )
    return replace(state, drag=drag, pan_pointer=None)


def dragged_position(drag: DragState, pointer: Position, zoom_level: float) -> Position:
    """
    Canvas position of the dragged node. Pointer movement is in screen
    pixels, so it is divided by the zoom to land in canvas units.
    """
    return Position(
        x=drag.original_position.x + (pointer.x - drag.pointer_origin.x) / zoom_level,
        y=drag.original_position.y + (pointer.y - drag.pointer_origin.y) / zoom_level,
    )


def pointer_move(state: CanvasState, pointer: Position) -> Tuple[CanvasState, Optional[Position]]:
    """
    Returns the new state and, while dragging, the dragged node's new position.
    """
    if state.drag is not None:
        return state, dragged_position(state.drag, pointer, state.zoom)

    if state.pan_pointer is not None:
        offset = Position(
            x=state.pan_offset.x + pointer.x - state.pan_pointer.x,
            y=state.pan_offset.y + pointer.y - state.pan_pointer.y,
        )
        return replace(state, pan_offset=offset, pan_pointer=pointer), None

    return state, None


def pointer_up(state: CanvasState) -> CanvasState:
    return replace(state, drag=None, pan_pointer=None)
