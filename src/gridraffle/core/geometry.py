from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Tuple

Point = Tuple[float, float]
Size = Tuple[float, float]

MIN_SCALE = 0.1
MAX_SCALE = 5.0


def clamp_scale(scale: float, minimum: float = MIN_SCALE, maximum: float = MAX_SCALE) -> float:
    return max(minimum, min(maximum, scale))


@dataclass(frozen=True)
class View:
    scale: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def __post_init__(self) -> None:
        if not self.scale > 0:
            raise ValueError(f"view scale must be positive, got {self.scale!r}")

    @property
    def pan(self) -> Point:
        return (self.pan_x, self.pan_y)

    def panned_to(self, pan: Point) -> "View":
        return replace(self, pan_x=pan[0], pan_y=pan[1])


def screen_to_world(view: View, point: Point) -> Point:
    return (
        (point[0] - view.pan_x) / view.scale,
        (point[1] - view.pan_y) / view.scale,
    )


def world_to_screen(view: View, point: Point) -> Point:
    return (
        point[0] * view.scale + view.pan_x,
        point[1] * view.scale + view.pan_y,
    )


def world_to_local(point: Point, origin: Point) -> Point:
    return (point[0] - origin[0], point[1] - origin[1])


def screen_length_to_world(length: float, view: View) -> float:
    """Convert a length in screen pixels (a hit radius) to world units."""
    return length / view.scale


def distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def midpoint(a: Point, b: Point) -> Point:
    return ((a[0] + b[0]) / 2, (a[1] + b[1]) / 2)


def anchored_view(anchor_world: Point, screen_point: Point, scale: float) -> View:
    """Return the view at ``scale`` that puts ``anchor_world`` under ``screen_point``."""
    return View(
        scale=scale,
        pan_x=screen_point[0] - anchor_world[0] * scale,
        pan_y=screen_point[1] - anchor_world[1] * scale,
    )


def zoom_about(
    view: View,
    scale: float,
    screen_point: Point,
    *,
    minimum: float = MIN_SCALE,
    maximum: float = MAX_SCALE,
) -> View:
    scale = clamp_scale(scale, minimum, maximum)
    anchor = screen_to_world(view, screen_point)
    return anchored_view(anchor, screen_point, scale)


def wheel_zoom(
    view: View,
    delta_y: float,
    viewport: Size,
    *,
    step: float = 0.05,
    minimum: float = MIN_SCALE,
    maximum: float = MAX_SCALE,
) -> View:
    # Positive delta scrolls down, which zooms out.
    center = (viewport[0] / 2, viewport[1] / 2)
    return zoom_about(view, view.scale - delta_y * step, center, minimum=minimum, maximum=maximum)


def fit_view(
    origin: Point,
    size: Size,
    viewport: Size,
    *,
    padding: float = 40,
    minimum: float = MIN_SCALE,
    maximum: float = 2.0,
) -> View:
    """Centre a ``size`` rectangle at world ``origin`` inside the viewport."""
    width = max(size[0], 1e-9)
    height = max(size[1], 1e-9)
    fit = min(
        (viewport[0] - padding * 2) / width,
        (viewport[1] - padding * 2) / height,
    )
    scale = clamp_scale(fit, minimum, maximum)
    left = (viewport[0] - size[0] * scale) / 2
    top = (viewport[1] - size[1] * scale) / 2
    return View(
        scale=scale,
        pan_x=left - origin[0] * scale,
        pan_y=top - origin[1] * scale,
    )
