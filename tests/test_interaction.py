import pytest

from gridraffle.core.geometry import View, screen_to_world, world_to_screen
from gridraffle.core.interaction import (
    SECONDARY_BUTTON,
    Handle,
    InteractionMachine,
    Mode,
    PointerEvent,
    handle_at,
    move_rect,
    resize_rect,
)
from gridraffle.core.layout import ImageRecord
from gridraffle.core.selection import Rect, SelectionModel


def _setup(selection=None, rows=1, cols=5, locked=False):
    model = SelectionModel()
    model.add_image(ImageRecord(width=400, height=300, id="img"), rows=rows, cols=cols, selection=selection)
    actions = []
    machine = InteractionMachine(model, is_locked=lambda: locked, on_action=actions.append)
    return model, machine, actions


def _drag(machine, start, end, pointer_id=1, steps=4):
    machine.pointer_down(PointerEvent(pointer_id, *start))
    for step in range(1, steps + 1):
        x = start[0] + (end[0] - start[0]) * step / steps
        y = start[1] + (end[1] - start[1]) * step / steps
        machine.pointer_move(PointerEvent(pointer_id, x, y))
    machine.pointer_up(PointerEvent(pointer_id, *end))


def test_drawing_backwards_normalizes_selection():
    model, machine, actions = _setup()

    _drag(machine, (100, 80), (40, 20))

    assert model.get("img").selection == Rect(40, 20, 60, 60)
    assert actions == ["draw selection"]
    assert machine.mode is Mode.IDLE


def test_tiny_drawing_is_discarded():
    model, machine, actions = _setup()

    _drag(machine, (10, 10), (15, 40))

    assert model.get("img").selection is None
    assert actions == []


def test_tiny_drawing_clears_existing_selection():
    model, machine, actions = _setup(selection=Rect(200, 200, 100, 50))

    _drag(machine, (10, 10), (12, 12), steps=1)

    assert model.get("img").selection is None
    assert actions == ["clear selection"]


def test_move_is_clamped_to_image_bounds():
    model, machine, actions = _setup(selection=Rect(0, 0, 100, 100))

    _drag(machine, (50, 50), (450, 400))

    assert model.get("img").selection == Rect(300, 200, 100, 100)
    assert actions == ["move selection"]


def test_move_rect_clamps_on_every_side():
    rect = Rect(10, 10, 50, 50)
    assert move_rect(rect, -100, -100, (200, 100)) == Rect(0, 0, 50, 50)
    assert move_rect(rect, 500, 500, (200, 100)) == Rect(150, 50, 50, 50)


def test_resize_through_opposite_edge_stays_normalized():
    model, machine, actions = _setup(selection=Rect(100, 100, 100, 100))

    machine.pointer_down(PointerEvent(1, 200, 200))
    assert machine.mode is Mode.RESIZING
    assert machine.handle is Handle.BOTTOM_RIGHT
    for x, y in [(180, 180), (120, 130), (100, 100), (80, 90), (50, 60)]:
        machine.pointer_move(PointerEvent(1, x, y))
        rect = model.get("img").selection
        assert rect.w >= 0 and rect.h >= 0
    machine.pointer_up(PointerEvent(1, 50, 60))

    assert model.get("img").selection == Rect(50, 60, 50, 40)
    assert actions == ["resize selection"]


def test_resize_rect_edge_handles_only_move_one_axis():
    rect = Rect(10, 10, 100, 50)
    assert resize_rect(rect, Handle.MIDDLE_RIGHT, 20, 99) == Rect(10, 10, 120, 50)
    assert resize_rect(rect, Handle.TOP_MIDDLE, 99, -10) == Rect(10, 0, 100, 60)
    assert resize_rect(rect, Handle.MIDDLE_LEFT, 150, 0) == Rect(110, 10, 50, 50)


def test_handle_radius_follows_zoom():
    selection = Rect(10, 10, 20, 20)
    model, machine, _ = _setup(selection=selection)
    machine.view = View(scale=4.0)

    # 8 screen pixels is 2 world units at 4x
    assert machine.cursor_hint((46, 40)) == Handle.TOP_LEFT.cursor
    assert machine.cursor_hint((49, 40)) == "move"

    machine.view = View(scale=0.5)
    assert machine.cursor_hint((0, 0)) == Handle.TOP_LEFT.cursor
    machine.view = View(scale=4.0)
    assert machine.cursor_hint((0, 0)) == "crosshair"


def test_corner_wins_over_edge_on_small_selection():
    assert handle_at(Rect(0, 0, 6, 6), (1, 1), 8) is Handle.TOP_LEFT


def test_click_inside_selection_toggles_cell():
    model, machine, actions = _setup(selection=Rect(0, 0, 200, 100), rows=2, cols=2)

    machine.pointer_down(PointerEvent(1, 150, 20))
    machine.pointer_up(PointerEvent(1, 152, 22))

    state = model.get("img")
    assert state.excluded == {1}
    assert state.selection == Rect(0, 0, 200, 100)
    assert actions == ["exclude cell 2"]

    machine.pointer_down(PointerEvent(1, 150, 20))
    machine.pointer_up(PointerEvent(1, 150, 20))
    assert model.get("img").excluded == frozenset()
    assert actions[-1] == "include cell 2"


def test_drag_past_threshold_moves_and_clears_exclusions():
    model, machine, actions = _setup(selection=Rect(0, 0, 200, 100), rows=2, cols=2)
    model.toggle_excluded("img", 0)

    _drag(machine, (150, 20), (160, 20))

    state = model.get("img")
    assert state.selection == Rect(10, 0, 200, 100)
    assert state.excluded == frozenset()
    assert actions == ["move selection"]


def test_small_wiggle_back_to_start_toggles_instead_of_moving():
    model, machine, actions = _setup(selection=Rect(0, 0, 200, 100), rows=2, cols=2)

    machine.pointer_down(PointerEvent(1, 50, 50))
    machine.pointer_move(PointerEvent(1, 53, 51))
    machine.pointer_up(PointerEvent(1, 52, 51))

    assert model.get("img").selection == Rect(0, 0, 200, 100)
    assert model.get("img").excluded == {2}
    assert actions == ["exclude cell 3"]


def test_click_keeps_winners_of_other_cells():
    model, machine, _ = _setup(selection=Rect(0, 0, 200, 100), rows=2, cols=2)
    model.set_winners({"img": [3]})

    machine.pointer_down(PointerEvent(1, 20, 20))
    machine.pointer_up(PointerEvent(1, 20, 20))

    assert model.get("img").winners == {3}


def test_starting_a_move_clears_winners():
    model, machine, _ = _setup(selection=Rect(0, 0, 200, 100), rows=2, cols=2)
    model.set_winners({"img": [3]})

    machine.pointer_down(PointerEvent(1, 20, 20))
    machine.pointer_move(PointerEvent(1, 40, 20))

    assert model.get("img").winners == frozenset()


def test_pointer_cancel_never_toggles():
    model, machine, actions = _setup(selection=Rect(0, 0, 200, 100), rows=2, cols=2)

    machine.pointer_down(PointerEvent(1, 20, 20))
    machine.pointer_cancel(1)

    assert model.get("img").excluded == frozenset()
    assert actions == []
    assert machine.mode is Mode.IDLE
    assert machine.pointer_count == 0


def test_pan_on_empty_space():
    model, machine, actions = _setup()

    _drag(machine, (600, 100), (650, 120))

    assert machine.view.pan == (50, 20)
    assert model.get("img").selection is None
    assert actions == []


def test_pan_tool_modifier_and_secondary_button_pan():
    model, machine, _ = _setup()

    machine.pan_tool = True
    _drag(machine, (100, 100), (120, 100))
    assert machine.view.pan == (20, 0)
    machine.pan_tool = False

    machine.pointer_down(PointerEvent(1, 100, 100, pan_modifier=True))
    assert machine.mode is Mode.PANNING
    machine.pointer_up(PointerEvent(1, 100, 100))

    machine.pointer_down(PointerEvent(1, 100, 100, button=SECONDARY_BUTTON))
    assert machine.mode is Mode.PANNING
    machine.pointer_up(PointerEvent(1, 100, 100))
    assert model.get("img").selection is None


def test_locked_machine_pans_instead_of_editing():
    model, machine, actions = _setup(selection=Rect(0, 0, 100, 100), locked=True)

    _drag(machine, (50, 50), (80, 70))

    assert model.get("img").selection == Rect(0, 0, 100, 100)
    assert machine.view.pan == (30, 20)
    assert actions == []
    assert machine.cursor_hint((50, 50)) == "default"


def test_pinch_keeps_anchor_under_midpoint_and_reverts_edit():
    model, machine, actions = _setup()

    machine.pointer_down(PointerEvent(1, 100, 100))
    assert machine.mode is Mode.DRAWING
    machine.pointer_down(PointerEvent(2, 200, 100))
    assert machine.mode is Mode.PINCHING
    assert model.get("img").selection is None

    anchor = screen_to_world(View(), (150, 100))
    machine.pointer_move(PointerEvent(2, 300, 100))

    assert machine.view.scale == pytest.approx(2.0)
    assert world_to_screen(machine.view, anchor) == pytest.approx((200, 100))
    assert actions == []


def test_pinch_scale_is_clamped():
    _, machine, _ = _setup()
    machine.pointer_down(PointerEvent(1, 600, 100))
    machine.pointer_down(PointerEvent(2, 610, 100))
    machine.pointer_move(PointerEvent(2, 1600, 100))
    assert machine.view.scale == 5.0


def test_lifting_one_pinch_finger_re_anchors_pan():
    _, machine, _ = _setup()
    machine.pointer_down(PointerEvent(1, 100, 100))
    machine.pointer_down(PointerEvent(2, 200, 100))
    machine.pointer_move(PointerEvent(2, 300, 100))
    pinched = machine.view

    machine.pointer_up(PointerEvent(2, 300, 100))
    assert machine.mode is Mode.PANNING
    assert machine.view == pinched

    machine.pointer_move(PointerEvent(1, 110, 105))
    assert machine.view.pan == pytest.approx((pinched.pan_x + 10, pinched.pan_y + 5))

    machine.pointer_up(PointerEvent(1, 110, 105))
    assert machine.mode is Mode.IDLE


def test_third_pointer_does_not_disturb_pinch():
    _, machine, _ = _setup()
    machine.pointer_down(PointerEvent(1, 100, 100))
    machine.pointer_down(PointerEvent(2, 200, 100))
    machine.pointer_down(PointerEvent(3, 50, 50))
    machine.pointer_move(PointerEvent(3, 10, 10))
    machine.pointer_up(PointerEvent(3, 10, 10))

    assert machine.mode is Mode.PINCHING
    assert machine.view == View()


def test_unknown_pointer_events_are_ignored():
    model, machine, _ = _setup()
    machine.pointer_move(PointerEvent(9, 10, 10))
    machine.pointer_up(PointerEvent(9, 10, 10))
    machine.pointer_cancel(9)
    assert machine.mode is Mode.IDLE
    assert model.get("img").selection is None


def test_drawing_on_another_image_activates_it():
    model, machine, actions = _setup()
    model.add_image(ImageRecord(width=200, height=200, id="second"))

    # second image starts at x = 400 + 100
    _drag(machine, (520, 20), (600, 100))

    assert model.active_id == "second"
    assert model.get("second").selection == Rect(20, 20, 80, 80)
    assert actions == ["draw selection"]


def test_wheel_and_fit():
    _, machine, _ = _setup()
    machine.wheel(2, (800, 600))
    assert machine.view.scale == pytest.approx(0.9)

    assert machine.fit_to("img", (880, 680), padding=40)
    assert machine.view.scale == pytest.approx(2.0)
    assert not machine.fit_to("missing", (880, 680))
