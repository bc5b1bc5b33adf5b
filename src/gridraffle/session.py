from __future__ import annotations

import logging
import random
import time
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from gridraffle.config import DEFAULT_CONFIG, coerce_float, coerce_int, section
from gridraffle.core.draw import DrawEngine, Ticket
from gridraffle.core.geometry import Size, View
from gridraffle.core.history import HistoryLog
from gridraffle.core.interaction import InteractionMachine
from gridraffle.core.layout import ImageRecord, LayoutEntry
from gridraffle.core.selection import ImageState, SelectionModel
from gridraffle.exceptions import DrawRejectedError, SnapshotError
from gridraffle.settings import DrawSettings
from gridraffle.snapshot import Decoder, apply_snapshot, dumps, export_filename

logger = logging.getLogger(__name__)


class RaffleSession:
    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        rng: Optional[random.Random] = None,
        flash_rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        config = config if config is not None else DEFAULT_CONFIG
        canvas = section(config, "canvas")
        grid = section(config, "grid")
        draw = section(config, "draw")
        history = section(config, "history")

        self.settings = DrawSettings.from_config(config)
        self.max_duration = coerce_float(draw.get("max_duration_seconds"), 10.0, minimum=0.0)
        self.fit_padding = coerce_float(canvas.get("fit_padding"), 40.0, minimum=0.0)
        self.fit_max_scale = coerce_float(canvas.get("fit_max_scale"), 2.0, minimum=0.1)

        self.model = SelectionModel(
            default_rows=coerce_int(grid.get("default_rows"), 1, minimum=1),
            default_cols=coerce_int(grid.get("default_cols"), 5, minimum=1),
            max_rows=coerce_int(grid.get("max_rows"), 50, minimum=1),
            max_cols=coerce_int(grid.get("max_cols"), 50, minimum=1),
        )
        self.history = HistoryLog(self.model, limit=coerce_int(history.get("limit"), 50, minimum=1), now=now)
        self.draw = DrawEngine(
            self.model,
            rng=rng,
            flash_rng=flash_rng,
            clock=clock,
            flash_interval=coerce_int(draw.get("flash_interval_ms"), 80, minimum=0) / 1000,
        )
        self.machine = InteractionMachine(
            self.model,
            image_gap=coerce_float(canvas.get("image_gap"), 100.0, minimum=0.0),
            min_selection_size=coerce_float(canvas.get("min_selection_size"), 10.0, minimum=0.0),
            drag_threshold=coerce_float(canvas.get("drag_threshold"), 5.0, minimum=0.0),
            handle_size=coerce_float(canvas.get("handle_size"), 8.0, minimum=1.0),
            min_scale=coerce_float(canvas.get("min_scale"), 0.1, minimum=0.01),
            max_scale=coerce_float(canvas.get("max_scale"), 5.0, minimum=0.01),
            wheel_zoom_step=coerce_float(canvas.get("wheel_zoom_step"), 0.05, minimum=0.0),
            is_locked=lambda: self.draw.running,
            on_action=self.history.record,
        )
        self.history.record("start")

    # -- read-only state ------------------------------------------------------

    @property
    def view(self) -> View:
        return self.machine.view

    @property
    def entries(self) -> Tuple[LayoutEntry, ...]:
        return tuple(self.machine.entries)

    @property
    def running(self) -> bool:
        return self.draw.running

    @property
    def flasher(self) -> Optional[Ticket]:
        return self.draw.flasher

    @property
    def results(self) -> Tuple[Ticket, ...]:
        return self.draw.results

    @property
    def eligible_count(self) -> int:
        return self.model.eligible_count()

    # -- images -----------------------------------------------------------------

    def add_image(self, image: ImageRecord, *, viewport: Optional[Size] = None) -> ImageState:
        first = len(self.model) == 0
        state = self.model.add_image(image)
        self.history.record("add image")
        logger.info("Added image %s (%dx%d)", image.id, image.width, image.height)
        if first and viewport is not None:
            self.fit_to(image.id, viewport)
        return state

    def remove_image(self, image_id: str) -> bool:
        if self.running or image_id not in self.model:
            return False
        self.model.remove_image(image_id)
        self.draw.results = tuple(ticket for ticket in self.draw.results if ticket.image_id != image_id)
        self.history.record("remove image")
        logger.info("Removed image %s", image_id)
        return True

    def select_image(self, image_id: str, *, viewport: Optional[Size] = None) -> None:
        self.model.set_active(image_id)
        if viewport is not None:
            self.fit_to(image_id, viewport)

    def fit_to(self, image_id: str, viewport: Size) -> bool:
        return self.machine.fit_to(image_id, viewport, padding=self.fit_padding, max_scale=self.fit_max_scale)

    # -- configuration ------------------------------------------------------------

    def set_grid(self, rows: int, cols: int, image_id: Optional[str] = None) -> bool:
        image_id = image_id or self.model.active_id
        if image_id is None or self.running:
            return False
        before = self.model.get(image_id)
        after = self.model.set_grid(image_id, rows, cols)
        if after.same_geometry(before):
            return False
        self.history.record(f"grid {after.grid_rows}x{after.grid_cols}")
        return True

    def set_winner_count(self, count: int) -> None:
        self.settings = self.settings.with_winner_count(count)

    def set_duration(self, seconds: float) -> None:
        self.settings = self.settings.with_duration(min(float(seconds), self.max_duration))

    # -- draw -------------------------------------------------------------------------

    def start_draw(self) -> None:
        if self.machine.editing:
            raise DrawRejectedError("Finish editing the selection first", reason="editing")
        self.draw.start(self.settings.winner_count, self.settings.duration)

    def tick(self, now: Optional[float] = None) -> bool:
        return self.draw.tick(now)

    # -- history ----------------------------------------------------------------------

    def undo(self) -> bool:
        if self.running or self.machine.editing:
            return False
        return self.history.undo()

    def redo(self) -> bool:
        if self.running or self.machine.editing:
            return False
        return self.history.redo()

    def restore(self, index: int) -> bool:
        if self.running or self.machine.editing:
            return False
        self.history.restore(index)
        return True

    # -- import / export --------------------------------------------------------------

    def export_text(self) -> str:
        return dumps(self.model, self.settings)

    def export_to(self, directory: Path, *, day: Optional[date] = None) -> Path:
        path = directory / export_filename(day)
        path.write_text(self.export_text(), encoding="utf-8")
        logger.info("Exported configuration to %s", path)
        return path

    def import_text(self, source: Any, *, decode: Optional[Decoder] = None) -> None:
        if self.running:
            raise SnapshotError("Cannot import while a draw is running")
        try:
            settings = apply_snapshot(self.model, source, decode=decode, fallback=self.settings)
        except SnapshotError as exc:
            logger.warning("Import failed: %s", exc)
            raise
        self.settings = settings.with_duration(min(settings.duration, self.max_duration))
        self.draw.results = ()
        self.history.record("import configuration")

    def import_file(self, path: Path, *, decode: Optional[Decoder] = None) -> None:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SnapshotError(f"Cannot read {path}: {exc}") from exc
        self.import_text(text, decode=decode)
