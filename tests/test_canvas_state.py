"""Tests for canvas zoom, pan and drag transitions."""

import pytest

from schemas.sequence import Position
from services.canvas_state import (
    MAX_ZOOM, MIN_ZOOM, CanvasState, ZoomTrigger, pointer_down_on_canvas, pointer_down_on_node,
    pointer_move, pointer_up, reset_view, wheel, zoom,
)


class TestZoom:
    def test_button_factors(self):
        assert zoom(CanvasState(), zoom_in=True).zoom == pytest.approx(1.2)
        assert zoom(CanvasState(), zoom_in=False).zoom == pytest.approx(0.8)

    def test_wheel_factors(self):
        assert zoom(CanvasState(), zoom_in=True, trigger=ZoomTrigger.WHEEL).zoom == pytest.approx(1.1)
        assert wheel(CanvasState(), -120).zoom == pytest.approx(1.1)
        assert wheel(CanvasState(), 120).zoom == pytest.approx(0.9)

    def test_zero_wheel_delta_is_ignored(self):
        state = CanvasState(zoom=1.5)
        assert wheel(state, 0) is state

    def test_clamped(self):
        assert zoom(CanvasState(zoom=2.9), zoom_in=True).zoom == MAX_ZOOM
        assert zoom(CanvasState(zoom=0.11), zoom_in=False).zoom == MIN_ZOOM

    def test_transitions_do_not_mutate(self):
        state = CanvasState()
        zoom(state, zoom_in=True)
        assert state.zoom == 1.0

    def test_reset_view(self):
        state = CanvasState(zoom=2.0, pan_offset=Position(x=40, y=-10))
        reset = reset_view(state)
        assert reset.zoom == 1.0
        assert (reset.pan_offset.x, reset.pan_offset.y) == (0, 0)


class TestDrag:
    def test_pointer_delta_is_divided_by_zoom(self):
        state = pointer_down_on_node(
            CanvasState(zoom=2.0), "a", Position(x=100, y=100), Position(x=10, y=10)
        )

        state, position = pointer_move(state, Position(x=30, y=50))

        assert (position.x, position.y) == (110, 120)
        assert state.is_dragging

    def test_original_position_is_copied(self):
        node_position = Position(x=100, y=100)
        state = pointer_down_on_node(CanvasState(), "a", node_position, Position())
        node_position.x = 500
        assert state.drag.original_position.x == 100

    def test_drag_suppresses_pan(self):
        state = pointer_down_on_canvas(CanvasState(), Position(x=0, y=0))
        state = pointer_down_on_node(state, "a", Position(), Position())

        assert state.is_dragging
        assert not state.is_panning

        state = pointer_down_on_canvas(state, Position(x=5, y=5))
        state, _ = pointer_move(state, Position(x=50, y=50))
        assert (state.pan_offset.x, state.pan_offset.y) == (0, 0)

    def test_pointer_up_ends_drag(self):
        state = pointer_down_on_node(CanvasState(), "a", Position(), Position())
        state = pointer_up(state)
        assert state.drag is None

        state, position = pointer_move(state, Position(x=10, y=10))
        assert position is None


class TestPan:
    def test_pan_moves_offset_in_screen_units(self):
        state = pointer_down_on_canvas(CanvasState(zoom=2.0), Position(x=10, y=10))

        state, position = pointer_move(state, Position(x=30, y=25))
        state, _ = pointer_move(state, Position(x=40, y=25))

        assert position is None
        assert (state.pan_offset.x, state.pan_offset.y) == (30, 15)

    def test_move_without_press_does_nothing(self):
        state = CanvasState()
        new_state, position = pointer_move(state, Position(x=10, y=10))
        assert new_state is state
        assert position is None

    def test_pointer_up_ends_pan(self):
        state = pointer_down_on_canvas(CanvasState(), Position())
        assert not pointer_up(state).is_panning
