from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import pygame

from gridraffle.core.interaction import PRIMARY_BUTTON, PointerEvent
from gridraffle.core.layout import ImageRecord

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]
Point = Tuple[float, float]

FINGERDOWN = getattr(pygame, "FINGERDOWN", None)
FINGERMOTION = getattr(pygame, "FINGERMOTION", None)
FINGERUP = getattr(pygame, "FINGERUP", None)
FINGER_EVENTS = {event for event in (FINGERDOWN, FINGERMOTION, FINGERUP) if event is not None}

MOUSE_POINTER_ID = -1
WHEEL_BUTTONS = {4, 5}

_RGB_FUNCTION = re.compile(r"^rgba?\(\s*([^)]*)\)$", re.IGNORECASE)


@dataclass
class Button:
    rect: pygame.Rect
    label: str = ""
    image: Optional[pygame.Surface] = None
    fill: Optional[Color] = None
    border_color: Optional[Color] = (30, 30, 30)
    border_width: int = 0
    enabled: bool = True

    def draw(self, surface: pygame.Surface, font: Optional[pygame.font.Font] = None) -> None:
        if self.fill is not None:
            pygame.draw.rect(surface, self.fill, self.rect, border_radius=8)
        if self.image is not None:
            image_rect = self.image.get_rect(center=self.rect.center)
            surface.blit(self.image, image_rect)
        if self.border_color is not None and self.border_width > 0:
            pygame.draw.rect(
                surface,
                self.border_color,
                self.rect,
                width=self.border_width,
                border_radius=8,
            )
        if self.label and font is not None:
            color = (20, 20, 20) if self.enabled else (150, 150, 150)
            text = font.render(self.label, True, color)
            text_rect = text.get_rect(center=self.rect.center)
            surface.blit(text, text_rect)

    def hit(self, pos: Tuple[int, int]) -> bool:
        return self.enabled and self.rect.collidepoint(pos)


def create_window(*, windowed: bool = False, size: Tuple[int, int] = (1280, 800)) -> Tuple[pygame.Surface, pygame.Rect]:
    pygame.init()
    if windowed:
        screen = pygame.display.set_mode(size, pygame.RESIZABLE)
    else:
        screen = pygame.display.set_mode((0, 0), pygame.FULLSCREEN)
    pygame.display.set_caption("Grid Raffle")
    pygame.mouse.set_visible(True)
    return screen, screen.get_rect()


def decode_surface(data: bytes, name: str = "image") -> pygame.Surface:
    surface = pygame.image.load(io.BytesIO(data), name)
    if pygame.display.get_surface() is not None:
        surface = surface.convert_alpha()
    return surface


def load_image_record(path: Path) -> Optional[ImageRecord]:
    try:
        data = path.read_bytes()
        surface = decode_surface(data, path.name)
    except (pygame.error, OSError) as exc:
        logger.warning("Could not load image %s: %s", path, exc)
        return None
    width, height = surface.get_size()
    return ImageRecord(width=width, height=height, source=surface, data=data)


def parse_color(value: object, default: Tuple[int, int, int, int] = (255, 255, 255, 153)) -> pygame.Color:
    """Parse CSS-style ``rgb()``/``rgba()`` strings plus anything pygame.Color accepts."""
    if isinstance(value, (list, tuple)):
        try:
            return pygame.Color(*value)
        except (TypeError, ValueError):
            return pygame.Color(*default)
    text = str(value).strip()
    match = _RGB_FUNCTION.match(text)
    if match:
        parts = [part.strip() for part in match.group(1).split(",")]
        try:
            channels = [max(0, min(255, int(float(part)))) for part in parts[:3]]
            alpha = 255
            if len(parts) > 3:
                alpha = max(0, min(255, int(round(float(parts[3]) * 255))))
        except ValueError:
            return pygame.Color(*default)
        if len(channels) != 3:
            return pygame.Color(*default)
        return pygame.Color(channels[0], channels[1], channels[2], alpha)
    try:
        return pygame.Color(text)
    except ValueError:
        return pygame.Color(*default)


def is_primary_pointer_event(event: pygame.event.Event, *, is_down: bool) -> bool:
    expected_type = pygame.MOUSEBUTTONDOWN if is_down else pygame.MOUSEBUTTONUP
    if event.type == expected_type:
        button = getattr(event, "button", 1)
        if button in {0, 1}:
            return True
        return bool(getattr(event, "touch", False))
    finger_type = FINGERDOWN if is_down else FINGERUP
    return finger_type is not None and event.type == finger_type


def pointer_event_pos(event: pygame.event.Event, screen_rect: pygame.Rect) -> Optional[Point]:
    if event.type in FINGER_EVENTS:
        return (
            event.x * screen_rect.width,
            event.y * screen_rect.height,
        )
    if hasattr(event, "pos"):
        return event.pos
    return None


def translate_pointer_event(
    event: pygame.event.Event,
    screen_rect: pygame.Rect,
    canvas_rect: pygame.Rect,
    *,
    pan_modifier: bool = False,
) -> Optional[Tuple[str, PointerEvent]]:
    """Map a pygame mouse/finger event to ``(kind, PointerEvent)`` in canvas coordinates.

    ``kind`` is "down", "move" or "up". Mouse events synthesized from touches
    are dropped because the matching finger events already carry them.
    """
    if event.type in FINGER_EVENTS:
        kind = {FINGERDOWN: "down", FINGERMOTION: "move", FINGERUP: "up"}[event.type]
        pointer_id = int(event.finger_id)
        button = PRIMARY_BUTTON
    elif event.type in (pygame.MOUSEBUTTONDOWN, pygame.MOUSEBUTTONUP, pygame.MOUSEMOTION):
        if getattr(event, "touch", False):
            return None
        if event.type == pygame.MOUSEMOTION:
            kind = "move"
            button = PRIMARY_BUTTON
        else:
            button = getattr(event, "button", PRIMARY_BUTTON)
            if button in WHEEL_BUTTONS:
                return None
            kind = "down" if event.type == pygame.MOUSEBUTTONDOWN else "up"
        pointer_id = MOUSE_POINTER_ID
    else:
        return None

    pos = pointer_event_pos(event, screen_rect)
    if pos is None:
        return None
    return kind, PointerEvent(
        pointer_id=pointer_id,
        x=pos[0] - canvas_rect.left,
        y=pos[1] - canvas_rect.top,
        button=button,
        pan_modifier=pan_modifier,
    )


class MouseButtonFilter:
    """Keeps a second mouse button from ending a gesture started by the first."""

    def __init__(self) -> None:
        self.held: Optional[int] = None

    def accept(self, kind: str, pointer: PointerEvent) -> bool:
        if pointer.pointer_id != MOUSE_POINTER_ID:
            return True
        if kind == "down":
            if self.held is not None:
                return False
            self.held = pointer.button
        elif kind == "up":
            if pointer.button != self.held:
                return False
            self.held = None
        return True

    def reset(self) -> None:
        self.held = None


def ignore_system_shortcut(event: pygame.event.Event) -> bool:
    if event.type != pygame.KEYDOWN:
        return False
    if event.key in {
        pygame.K_F1,
        pygame.K_F2,
        pygame.K_F3,
        pygame.K_F4,
        pygame.K_F5,
        pygame.K_F6,
        pygame.K_F7,
        pygame.K_F8,
        pygame.K_F9,
        pygame.K_F10,
        pygame.K_F11,
        pygame.K_F12,
    }:
        return True
    return False
