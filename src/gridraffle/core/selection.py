from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from gridraffle.core.geometry import Point
from gridraffle.core.layout import ImageRecord

logger = logging.getLogger(__name__)

MIN_SELECTION_SIZE = 10
MAX_GRID = 50


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_corners(cls, a: Point, b: Point) -> "Rect":
        return cls(min(a[0], b[0]), min(a[1], b[1]), abs(b[0] - a[0]), abs(b[1] - a[1]))

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    def normalized(self) -> "Rect":
        x, w = (self.x + self.w, -self.w) if self.w < 0 else (self.x, self.w)
        y, h = (self.y + self.h, -self.h) if self.h < 0 else (self.y, self.h)
        return Rect(x, y, w, h)

    def contains(self, point: Point) -> bool:
        return self.x <= point[0] <= self.right and self.y <= point[1] <= self.bottom

    def translated_to(self, x: float, y: float) -> "Rect":
        return Rect(x, y, self.w, self.h)

    def is_smaller_than(self, minimum: float) -> bool:
        return self.w < minimum or self.h < minimum


def cell_index_at(rect: Rect, rows: int, cols: int, point: Point) -> Optional[int]:
    """Index of the grid cell under a local point, or None outside the grid."""
    if rect.w <= 0 or rect.h <= 0 or rows < 1 or cols < 1:
        return None
    col = math.floor((point[0] - rect.x) / (rect.w / cols))
    row = math.floor((point[1] - rect.y) / (rect.h / rows))
    if 0 <= row < rows and 0 <= col < cols:
        return row * cols + col
    return None


def cell_bounds(rect: Rect, rows: int, cols: int, index: int) -> Rect:
    cell_w = rect.w / cols
    cell_h = rect.h / rows
    row, col = divmod(index, cols)
    return Rect(rect.x + col * cell_w, rect.y + row * cell_h, cell_w, cell_h)


@dataclass(frozen=True)
class ImageState:
    image: ImageRecord
    selection: Optional[Rect] = None
    grid_rows: int = 1
    grid_cols: int = 5
    excluded: FrozenSet[int] = field(default_factory=frozenset)
    winners: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def image_id(self) -> str:
        return self.image.id

    @property
    def cell_count(self) -> int:
        return self.grid_rows * self.grid_cols

    @property
    def eligible_count(self) -> int:
        if self.selection is None:
            return 0
        return self.cell_count - len(self.excluded)

    def eligible_cells(self) -> List[int]:
        if self.selection is None:
            return []
        return [index for index in range(self.cell_count) if index not in self.excluded]

    def cell_at(self, local_point: Point) -> Optional[int]:
        if self.selection is None:
            return None
        return cell_index_at(self.selection, self.grid_rows, self.grid_cols, local_point)

    def cell_rect(self, index: int) -> Optional[Rect]:
        if self.selection is None or not 0 <= index < self.cell_count:
            return None
        return cell_bounds(self.selection, self.grid_rows, self.grid_cols, index)

    def same_geometry(self, other: "ImageState") -> bool:
        return (
            self.selection == other.selection
            and self.grid_rows == other.grid_rows
            and self.grid_cols == other.grid_cols
        )


Snapshot = Tuple[ImageState, ...]


class SelectionModel:
    """Per-image selections, grids, exclusions and winners, plus the active image.

    Every change goes through :meth:`_update`, which clears the exclusions and
    winners of an image whenever its rectangle or grid dimensions change.
    """

    def __init__(
        self,
        *,
        default_rows: int = 1,
        default_cols: int = 5,
        max_rows: int = MAX_GRID,
        max_cols: int = MAX_GRID,
    ) -> None:
        self.max_rows = max_rows
        self.max_cols = max_cols
        self.default_rows = self._clamp_rows(default_rows)
        self.default_cols = self._clamp_cols(default_cols)
        self._states: Dict[str, ImageState] = {}
        self.active_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, image_id: object) -> bool:
        return image_id in self._states

    def __iter__(self) -> Iterator[ImageState]:
        return iter(list(self._states.values()))

    @property
    def states(self) -> Tuple[ImageState, ...]:
        return tuple(self._states.values())

    @property
    def images(self) -> Tuple[ImageRecord, ...]:
        return tuple(state.image for state in self._states.values())

    @property
    def active(self) -> Optional[ImageState]:
        if self.active_id is None:
            return None
        return self._states.get(self.active_id)

    def get(self, image_id: str) -> ImageState:
        return self._states[image_id]

    def _clamp_rows(self, rows: int) -> int:
        return max(1, min(self.max_rows, int(rows)))

    def _clamp_cols(self, cols: int) -> int:
        return max(1, min(self.max_cols, int(cols)))

    def _update(self, image_id: str, **changes) -> ImageState:
        current = self._states[image_id]
        updated = replace(current, **changes)
        if not updated.same_geometry(current):
            updated = replace(updated, excluded=frozenset(), winners=frozenset())
        self._states[image_id] = updated
        return updated

    def add_image(
        self,
        image: ImageRecord,
        *,
        rows: Optional[int] = None,
        cols: Optional[int] = None,
        selection: Optional[Rect] = None,
        excluded: Iterable[int] = (),
    ) -> ImageState:
        rows = self.default_rows if rows is None else self._clamp_rows(rows)
        cols = self.default_cols if cols is None else self._clamp_cols(cols)
        cells = rows * cols
        state = ImageState(
            image=image,
            selection=selection.normalized() if selection is not None else None,
            grid_rows=rows,
            grid_cols=cols,
            excluded=frozenset(index for index in excluded if 0 <= index < cells),
        )
        self._states[image.id] = state
        if self.active_id is None:
            self.active_id = image.id
        return state

    def remove_image(self, image_id: str) -> None:
        if image_id not in self._states:
            return
        del self._states[image_id]
        if self.active_id == image_id:
            self.active_id = next(iter(self._states), None)

    def set_active(self, image_id: Optional[str]) -> None:
        if image_id is not None and image_id not in self._states:
            raise KeyError(image_id)
        self.active_id = image_id

    def set_selection(self, image_id: str, rect: Optional[Rect]) -> ImageState:
        return self._update(image_id, selection=rect.normalized() if rect is not None else None)

    def set_grid(self, image_id: str, rows: int, cols: int) -> ImageState:
        return self._update(image_id, grid_rows=self._clamp_rows(rows), grid_cols=self._clamp_cols(cols))

    def toggle_excluded(self, image_id: str, index: int) -> bool:
        state = self._states[image_id]
        if state.selection is None or not 0 <= index < state.cell_count:
            return False
        if index in state.excluded:
            excluded = state.excluded - {index}
        else:
            excluded = state.excluded | {index}
        winners = state.winners - {index}
        self._update(image_id, excluded=excluded, winners=winners)
        return True

    def clear_results(self, image_id: Optional[str] = None) -> None:
        targets = list(self._states) if image_id is None else [image_id]
        for target in targets:
            self._update(target, winners=frozenset())

    def set_winners(self, winners: Mapping[str, Iterable[int]]) -> None:
        for image_id, indices in winners.items():
            if image_id not in self._states:
                logger.debug("Dropping winners for removed image %s", image_id)
                continue
            cells = self._states[image_id].cell_count
            self._update(image_id, winners=frozenset(i for i in indices if 0 <= i < cells))

    def put_state(self, state: ImageState) -> None:
        """Put back a previously captured state of an image that is still present."""
        if state.image_id not in self._states:
            raise KeyError(state.image_id)
        self._states[state.image_id] = state

    def eligible_count(self) -> int:
        return sum(state.eligible_count for state in self._states.values())

    def snapshot(self) -> Snapshot:
        return tuple(replace(state, winners=frozenset()) for state in self._states.values())

    def load(self, snapshot: Sequence[ImageState]) -> None:
        """Replace every image with ``snapshot``.

        Winners survive for images whose selection and grid are unchanged.
        """
        previous = self._states
        states: Dict[str, ImageState] = {}
        for state in snapshot:
            winners: FrozenSet[int] = frozenset()
            old = previous.get(state.image_id)
            if old is not None and old.same_geometry(state):
                winners = old.winners - state.excluded
            states[state.image_id] = replace(state, winners=winners)
        self._states = states
        if self.active_id not in states:
            self.active_id = next(iter(states), None)
