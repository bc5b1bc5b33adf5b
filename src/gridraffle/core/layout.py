from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

from gridraffle.core.geometry import Point

IMAGE_GAP = 100


def new_image_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass(frozen=True)
class ImageRecord:
    """A decoded image. ``source`` is the renderer's handle, ``data`` the encoded bytes."""

    width: int
    height: int
    id: str = field(default_factory=new_image_id)
    source: Any = field(default=None, compare=False, repr=False)
    data: bytes = field(default=b"", compare=False, repr=False)


@dataclass(frozen=True)
class LayoutEntry:
    image_id: str
    world_x: float
    world_y: float
    width: int
    height: int

    @property
    def origin(self) -> Point:
        return (self.world_x, self.world_y)

    def contains(self, world_point: Point) -> bool:
        x, y = world_point
        return (
            self.world_x <= x <= self.world_x + self.width
            and self.world_y <= y <= self.world_y + self.height
        )


def layout(images: Iterable[ImageRecord], gap: float = IMAGE_GAP) -> List[LayoutEntry]:
    entries = []
    x = 0.0
    for image in images:
        entries.append(LayoutEntry(image.id, x, 0.0, image.width, image.height))
        x += image.width + gap
    return entries


def entry_for(entries: Sequence[LayoutEntry], image_id: Optional[str]) -> Optional[LayoutEntry]:
    if image_id is None:
        return None
    for entry in entries:
        if entry.image_id == image_id:
            return entry
    return None


def entry_at(entries: Sequence[LayoutEntry], world_point: Point) -> Optional[LayoutEntry]:
    for entry in entries:
        if entry.contains(world_point):
            return entry
    return None

