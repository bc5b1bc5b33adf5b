from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from gridraffle.core.selection import ImageState, SelectionModel
from gridraffle.exceptions import DrawRejectedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

FLASH_INTERVAL = 0.08


@dataclass(frozen=True)
class Ticket:
    image_id: str
    cell_index: int
    image_number: int

    @property
    def label(self) -> str:
        return f"image {self.image_number} #{self.cell_index + 1}"


class DrawState(Enum):
    IDLE = "idle"
    RUNNING = "running"


def build_pool(states: Iterable[ImageState]) -> List[Ticket]:
    pool = []
    for number, state in enumerate(states, start=1):
        for index in state.eligible_cells():
            pool.append(Ticket(state.image_id, index, number))
    return pool


def fisher_yates(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    rng = rng or random.Random()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = int(rng.random() * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def pick_winners(pool: Sequence[Ticket], count: int, rng: Optional[random.Random] = None) -> List[Ticket]:
    return fisher_yates(pool, rng)[: min(count, len(pool))]


def group_by_image(tickets: Iterable[Ticket]) -> Dict[str, List[int]]:
    grouped: Dict[str, List[int]] = {}
    for ticket in tickets:
        grouped.setdefault(ticket.image_id, []).append(ticket.cell_index)
    return grouped


class DrawEngine:
    """Runs one draw at a time; a driver calls :meth:`tick` once per frame."""

    def __init__(
        self,
        model: SelectionModel,
        *,
        rng: Optional[random.Random] = None,
        flash_rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        flash_interval: float = FLASH_INTERVAL,
        on_complete: Optional[Callable[[Tuple[Ticket, ...]], None]] = None,
    ) -> None:
        self.model = model
        self.rng = rng or random.Random()
        self.flash_rng = flash_rng or random.Random()
        self.clock = clock
        self.flash_interval = flash_interval
        self.on_complete = on_complete
        self.state = DrawState.IDLE
        self.flasher: Optional[Ticket] = None
        self.results: Tuple[Ticket, ...] = ()
        self._pool: List[Ticket] = []
        self._winner_count = 0
        self._duration = 0.0
        self._started_at = 0.0
        self._last_flash: Optional[float] = None

    @property
    def running(self) -> bool:
        return self.state is DrawState.RUNNING

    def check(self, winner_count: int) -> List[Ticket]:
        """Return the eligible pool, or raise if a draw of ``winner_count`` cannot start."""
        if self.running:
            raise DrawRejectedError("A draw is already running", reason="running")
        if winner_count < 1:
            raise DrawRejectedError("Winner count must be at least 1", reason="winner_count")
        pool = build_pool(self.model.states)
        if not pool:
            raise DrawRejectedError(
                "No eligible cells: draw a selection and check excluded cells",
                reason="empty_pool",
            )
        if winner_count > len(pool):
            raise DrawRejectedError(
                f"Winner count {winner_count} exceeds the {len(pool)} eligible cells",
                reason="too_many_winners",
            )
        return pool

    def start(self, winner_count: int, duration: float) -> None:
        try:
            pool = self.check(winner_count)
        except DrawRejectedError as exc:
            logger.warning("Draw rejected: %s", exc)
            raise
        self.model.clear_results()
        self.results = ()
        self.flasher = None
        self._pool = pool
        self._winner_count = winner_count
        self._duration = max(0.0, float(duration))
        self._started_at = self.clock()
        self._last_flash = None
        self.state = DrawState.RUNNING
        logger.info(
            "Draw started: %d winner(s) from %d cell(s) over %.1fs",
            winner_count,
            len(pool),
            self._duration,
        )

    def tick(self, now: Optional[float] = None) -> bool:
        """Advance the draw; returns True while it is still running."""
        if not self.running:
            return False
        now = self.clock() if now is None else now
        if now - self._started_at >= self._duration:
            self._finish()
            return False
        if self._last_flash is None or now - self._last_flash >= self.flash_interval:
            self.flasher = self.flash_rng.choice(self._pool)
            self._last_flash = now
        return True

    def _finish(self) -> None:
        winners = pick_winners(self._pool, self._winner_count, self.rng)
        self.model.set_winners(group_by_image(winners))
        self.results = tuple(winners)
        self.flasher = None
        self._pool = []
        self.state = DrawState.IDLE
        logger.info("Draw finished: %s", ", ".join(ticket.label for ticket in winners))
        if self.on_complete is not None:
            self.on_complete(self.results)
