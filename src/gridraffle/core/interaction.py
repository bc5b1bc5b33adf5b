from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from gridraffle.core.geometry import (
    MAX_SCALE,
    MIN_SCALE,
    Point,
    Size,
    View,
    anchored_view,
    clamp_scale,
    distance,
    fit_view,
    midpoint,
    screen_length_to_world,
    screen_to_world,
    wheel_zoom,
    world_to_local,
    zoom_about,
)
from gridraffle.core.layout import IMAGE_GAP, LayoutEntry, entry_at, entry_for, layout
from gridraffle.core.selection import MIN_SELECTION_SIZE, ImageState, Rect, SelectionModel

logger = logging.getLogger(__name__)

DRAG_THRESHOLD = 5
HANDLE_SIZE = 8

PRIMARY_BUTTON = 1
SECONDARY_BUTTON = 3


class Mode(Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    MOVING = "moving"
    RESIZING = "resizing"
    PANNING = "panning"
    PINCHING = "pinching"


EDIT_MODES = frozenset({Mode.DRAWING, Mode.MOVING, Mode.RESIZING})


class Handle(Enum):
    TOP_LEFT = ("tl", 0.0, 0.0, "nw-resize")
    TOP_MIDDLE = ("tm", 0.5, 0.0, "n-resize")
    TOP_RIGHT = ("tr", 1.0, 0.0, "ne-resize")
    MIDDLE_RIGHT = ("mr", 1.0, 0.5, "e-resize")
    BOTTOM_RIGHT = ("br", 1.0, 1.0, "se-resize")
    BOTTOM_MIDDLE = ("bm", 0.5, 1.0, "s-resize")
    BOTTOM_LEFT = ("bl", 0.0, 1.0, "sw-resize")
    MIDDLE_LEFT = ("ml", 0.0, 0.5, "w-resize")

    def __init__(self, code: str, fx: float, fy: float, cursor: str) -> None:
        self.code = code
        self.fx = fx
        self.fy = fy
        self.cursor = cursor

    @property
    def moves_left(self) -> bool:
        return self.fx == 0.0

    @property
    def moves_right(self) -> bool:
        return self.fx == 1.0

    @property
    def moves_top(self) -> bool:
        return self.fy == 0.0

    @property
    def moves_bottom(self) -> bool:
        return self.fy == 1.0

    def position(self, rect: Rect) -> Point:
        return (rect.x + rect.w * self.fx, rect.y + rect.h * self.fy)


# Corners win over edge midpoints on small selections.
_HIT_ORDER = (
    Handle.TOP_LEFT,
    Handle.TOP_RIGHT,
    Handle.BOTTOM_RIGHT,
    Handle.BOTTOM_LEFT,
    Handle.TOP_MIDDLE,
    Handle.MIDDLE_RIGHT,
    Handle.BOTTOM_MIDDLE,
    Handle.MIDDLE_LEFT,
)


def handle_at(rect: Rect, point: Point, radius: float) -> Optional[Handle]:
    for handle in _HIT_ORDER:
        hx, hy = handle.position(rect)
        if abs(point[0] - hx) < radius and abs(point[1] - hy) < radius:
            return handle
    return None


def resize_rect(initial: Rect, handle: Handle, dx: float, dy: float) -> Rect:
    x, y, w, h = initial.x, initial.y, initial.w, initial.h
    if handle.moves_left:
        x += dx
        w -= dx
    if handle.moves_right:
        w += dx
    if handle.moves_top:
        y += dy
        h -= dy
    if handle.moves_bottom:
        h += dy
    return Rect(x, y, w, h).normalized()


def move_rect(initial: Rect, dx: float, dy: float, bounds: Tuple[float, float]) -> Rect:
    x = max(0.0, min(initial.x + dx, bounds[0] - initial.w))
    y = max(0.0, min(initial.y + dy, bounds[1] - initial.h))
    return initial.translated_to(x, y)


@dataclass(frozen=True)
class PointerEvent:
    """A pointer sample in canvas-relative screen pixels."""

    pointer_id: int
    x: float
    y: float
    button: int = PRIMARY_BUTTON
    pan_modifier: bool = False

    @property
    def position(self) -> Point:
        return (self.x, self.y)


@dataclass
class _Gesture:
    pointer_id: int
    start: Point
    initial_view: View
    image_id: Optional[str] = None
    before: Optional[ImageState] = None
    origin: Optional[Point] = None
    handle: Optional[Handle] = None


@dataclass(frozen=True)
class _Pinch:
    pointer_ids: Tuple[int, int]
    distance: float
    scale: float
    anchor: Point


class InteractionMachine:
    def __init__(
        self,
        model: SelectionModel,
        *,
        view: Optional[View] = None,
        image_gap: float = IMAGE_GAP,
        min_selection_size: float = MIN_SELECTION_SIZE,
        drag_threshold: float = DRAG_THRESHOLD,
        handle_size: float = HANDLE_SIZE,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE,
        wheel_zoom_step: float = 0.05,
        is_locked: Optional[Callable[[], bool]] = None,
        on_action: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.model = model
        self.view = view or View()
        self.image_gap = image_gap
        self.min_selection_size = min_selection_size
        self.drag_threshold = drag_threshold
        self.handle_size = handle_size
        self.min_scale = min_scale
        self.max_scale = max_scale
        self.wheel_zoom_step = wheel_zoom_step
        self.is_locked = is_locked or (lambda: False)
        self.on_action = on_action
        self.pan_tool = False
        self.mode = Mode.IDLE
        self._pointers: Dict[int, Point] = {}
        self._gesture: Optional[_Gesture] = None
        self._pinch: Optional[_Pinch] = None

    @property
    def entries(self) -> List[LayoutEntry]:
        return layout(self.model.images, self.image_gap)

    @property
    def handle(self) -> Optional[Handle]:
        return self._gesture.handle if self._gesture else None

    @property
    def pointer_count(self) -> int:
        return len(self._pointers)

    @property
    def editing(self) -> bool:
        return self.mode in EDIT_MODES

    def _emit(self, label: str) -> None:
        logger.debug("Action: %s", label)
        if self.on_action is not None:
            self.on_action(label)

    def _local_point(self, entry: LayoutEntry, screen_point: Point) -> Point:
        return world_to_local(screen_to_world(self.view, screen_point), entry.origin)

    # -- pointer events --------------------------------------------------

    def pointer_down(self, event: PointerEvent) -> None:
        self._pointers[event.pointer_id] = event.position
        if len(self._pointers) == 2:
            self._begin_pinch()
            return
        if len(self._pointers) > 2 or self._gesture is not None:
            return

        if self.pan_tool or event.button != PRIMARY_BUTTON or event.pan_modifier:
            self._begin_pan(event.pointer_id, event.position)
            return
        if self.is_locked():
            self._begin_pan(event.pointer_id, event.position)
            return

        world = screen_to_world(self.view, event.position)
        entries = self.entries
        active = self.model.active
        active_entry = entry_for(entries, self.model.active_id)
        if active is not None and active.selection is not None and active_entry is not None:
            local = world_to_local(world, active_entry.origin)
            radius = screen_length_to_world(self.handle_size, self.view)
            handle = handle_at(active.selection, local, radius)
            if handle is not None:
                self._begin_edit(Mode.RESIZING, event, active, handle=handle)
                return
            if active.selection.contains(local):
                self._begin_edit(Mode.MOVING, event, active)
                return

        entry = entry_at(entries, world)
        if entry is None:
            self._begin_pan(event.pointer_id, event.position)
            return
        if entry.image_id != self.model.active_id:
            self.model.set_active(entry.image_id)
        local = world_to_local(world, entry.origin)
        self._begin_edit(Mode.DRAWING, event, self.model.get(entry.image_id), origin=local)
        self.model.set_selection(entry.image_id, Rect(local[0], local[1], 0, 0))

    def pointer_move(self, event: PointerEvent) -> None:
        if event.pointer_id not in self._pointers:
            return
        self._pointers[event.pointer_id] = event.position

        if self.mode is Mode.PINCHING:
            if self._pinch is not None and event.pointer_id in self._pinch.pointer_ids:
                self._update_pinch()
            return

        gesture = self._gesture
        if gesture is None or gesture.pointer_id != event.pointer_id:
            return
        dx = event.x - gesture.start[0]
        dy = event.y - gesture.start[1]

        if self.mode is Mode.PANNING:
            base = gesture.initial_view
            self.view = base.panned_to((base.pan_x + dx, base.pan_y + dy))
            return

        if gesture.image_id not in self.model:
            self._reset()
            return
        entry = entry_for(self.entries, gesture.image_id)
        state = self.model.get(gesture.image_id)
        before = gesture.before

        if self.mode is Mode.DRAWING and entry is not None and gesture.origin is not None:
            local = self._local_point(entry, event.position)
            self.model.set_selection(gesture.image_id, Rect.from_corners(gesture.origin, local))
        elif self.mode is Mode.MOVING and before is not None and before.selection is not None:
            rect = move_rect(
                before.selection,
                dx / self.view.scale,
                dy / self.view.scale,
                (state.image.width, state.image.height),
            )
            self.model.set_selection(gesture.image_id, rect)
        elif self.mode is Mode.RESIZING and before is not None and before.selection is not None:
            if gesture.handle is not None:
                rect = resize_rect(before.selection, gesture.handle, dx / self.view.scale, dy / self.view.scale)
                self.model.set_selection(gesture.image_id, rect)

    def pointer_up(self, event: PointerEvent) -> None:
        if event.pointer_id not in self._pointers:
            return
        self._pointers[event.pointer_id] = event.position
        self._release(event.pointer_id, event.position, cancelled=False)

    def pointer_cancel(self, pointer_id: int) -> None:
        position = self._pointers.get(pointer_id)
        if position is None:
            return
        self._release(pointer_id, position, cancelled=True)

    def cancel_all(self) -> None:
        for pointer_id in list(self._pointers):
            self.pointer_cancel(pointer_id)

    # -- view ---------------------------------------------------------------

    def wheel(self, delta_y: float, viewport: Size) -> None:
        self.view = wheel_zoom(
            self.view,
            delta_y,
            viewport,
            step=self.wheel_zoom_step,
            minimum=self.min_scale,
            maximum=self.max_scale,
        )

    def zoom_by(self, step: float, viewport: Size) -> None:
        center = (viewport[0] / 2, viewport[1] / 2)
        self.view = zoom_about(
            self.view,
            self.view.scale + step,
            center,
            minimum=self.min_scale,
            maximum=self.max_scale,
        )

    def fit_to(self, image_id: str, viewport: Size, *, padding: float = 40, max_scale: float = 2.0) -> bool:
        entry = entry_for(self.entries, image_id)
        if entry is None:
            return False
        self.view = fit_view(
            entry.origin,
            (entry.width, entry.height),
            viewport,
            padding=padding,
            minimum=self.min_scale,
            maximum=min(max_scale, self.max_scale),
        )
        return True

    def reset_view(self) -> None:
        self.view = View()

    def cursor_hint(self, screen_point: Point) -> str:
        if self.pan_tool or self.mode in (Mode.PANNING, Mode.PINCHING):
            return "grab"
        if self.is_locked():
            return "default"
        world = screen_to_world(self.view, screen_point)
        entries = self.entries
        active = self.model.active
        active_entry = entry_for(entries, self.model.active_id)
        if active is not None and active.selection is not None and active_entry is not None:
            local = world_to_local(world, active_entry.origin)
            handle = handle_at(active.selection, local, screen_length_to_world(self.handle_size, self.view))
            if handle is not None:
                return handle.cursor
            if active.selection.contains(local):
                return "move"
        if entry_at(entries, world) is not None:
            return "crosshair"
        return "grab"

    # -- transitions --------------------------------------------------------

    def _begin_pan(self, pointer_id: int, position: Point) -> None:
        self.mode = Mode.PANNING
        self._pinch = None
        self._gesture = _Gesture(pointer_id=pointer_id, start=position, initial_view=self.view)

    def _begin_edit(
        self,
        mode: Mode,
        event: PointerEvent,
        state: ImageState,
        *,
        handle: Optional[Handle] = None,
        origin: Optional[Point] = None,
    ) -> None:
        self.mode = mode
        self._gesture = _Gesture(
            pointer_id=event.pointer_id,
            start=event.position,
            initial_view=self.view,
            image_id=state.image_id,
            before=state,
            origin=origin,
            handle=handle,
        )
        if mode is not Mode.DRAWING:
            self.model.clear_results(state.image_id)
        logger.debug("Begin %s on %s", mode.value, state.image_id)

    def _begin_pinch(self) -> None:
        gesture = self._gesture
        if gesture is not None and self.mode in EDIT_MODES and gesture.before is not None:
            if gesture.image_id in self.model:
                self.model.put_state(gesture.before)
        ids = tuple(list(self._pointers)[:2])
        first, second = self._pointers[ids[0]], self._pointers[ids[1]]
        anchor = screen_to_world(self.view, midpoint(first, second))
        self._pinch = _Pinch(
            pointer_ids=(ids[0], ids[1]),
            distance=distance(first, second),
            scale=self.view.scale,
            anchor=anchor,
        )
        self._gesture = None
        self.mode = Mode.PINCHING

    def _update_pinch(self) -> None:
        pinch = self._pinch
        first = self._pointers[pinch.pointer_ids[0]]
        second = self._pointers[pinch.pointer_ids[1]]
        ratio = distance(first, second) / pinch.distance if pinch.distance > 0 else 1.0
        scale = clamp_scale(pinch.scale * ratio, self.min_scale, self.max_scale)
        self.view = anchored_view(pinch.anchor, midpoint(first, second), scale)

    def _release(self, pointer_id: int, position: Point, *, cancelled: bool) -> None:
        del self._pointers[pointer_id]

        if self.mode is Mode.PINCHING:
            if self._pinch is not None and pointer_id not in self._pinch.pointer_ids:
                return
            if len(self._pointers) >= 2:
                self._begin_pinch()
            elif self._pointers:
                # Re-anchor the remaining finger so the pan does not jump.
                remaining, current = next(iter(self._pointers.items()))
                self._begin_pan(remaining, current)
            else:
                self._reset()
            return

        gesture = self._gesture
        if gesture is None or gesture.pointer_id != pointer_id:
            return
        if self.mode in EDIT_MODES and gesture.image_id in self.model:
            self._finish_edit(gesture, position, cancelled=cancelled)
        self._reset()

    def _finish_edit(self, gesture: _Gesture, position: Point, *, cancelled: bool) -> None:
        image_id = gesture.image_id
        before = gesture.before

        if self.mode is Mode.MOVING and distance(position, gesture.start) < self.drag_threshold:
            self.model.put_state(before)
            if cancelled:
                return
            entry = entry_for(self.entries, image_id)
            if entry is None:
                return
            cell = before.cell_at(self._local_point(entry, position))
            if cell is not None and self.model.toggle_excluded(image_id, cell):
                verb = "exclude" if cell in self.model.get(image_id).excluded else "include"
                self._emit(f"{verb} cell {cell + 1}")
            return

        rect = self.model.get(image_id).selection
        if rect is not None:
            rect = rect.normalized()
            if self.mode in (Mode.DRAWING, Mode.RESIZING) and rect.is_smaller_than(self.min_selection_size):
                rect = None
            self.model.set_selection(image_id, rect)

        after = self.model.get(image_id)
        if after.same_geometry(before) and after.excluded == before.excluded:
            self.model.put_state(before)
            return
        if after.selection is None:
            self._emit("clear selection")
        elif self.mode is Mode.DRAWING:
            self._emit("draw selection")
        elif self.mode is Mode.MOVING:
            self._emit("move selection")
        else:
            self._emit("resize selection")

    def _reset(self) -> None:
        self.mode = Mode.IDLE
        self._gesture = None
        self._pinch = None
