from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pygame

from gridraffle.config import load_config
from gridraffle.core.geometry import View, world_to_screen
from gridraffle.core.interaction import Handle
from gridraffle.core.layout import LayoutEntry
from gridraffle.core.selection import ImageState, Rect
from gridraffle.exceptions import GridRaffleError
from gridraffle.logging_config import setup_logging
from gridraffle.paths import ensure_directories, get_data_root
from gridraffle.session import RaffleSession
from gridraffle.ui.common import (
    Button,
    MouseButtonFilter,
    create_window,
    decode_surface,
    ignore_system_shortcut,
    is_primary_pointer_event,
    load_image_record,
    parse_color,
    pointer_event_pos,
    translate_pointer_event,
)

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]

ACCENT: Color = (7, 193, 96)
WINNER: Color = (255, 0, 0)
MASK = (0, 0, 0, 128)
EXCLUDED_FILL = (100, 100, 100, 178)
FLASH_FILL = (255, 0, 0, 76)
SIDEBAR_WIDTH = 300
HISTORY_ROWS = 6

WINDOWLEAVE = getattr(pygame, "WINDOWLEAVE", None)

_CURSORS = {
    "grab": "SYSTEM_CURSOR_HAND",
    "move": "SYSTEM_CURSOR_SIZEALL",
    "crosshair": "SYSTEM_CURSOR_CROSSHAIR",
    "default": "SYSTEM_CURSOR_ARROW",
    "nw-resize": "SYSTEM_CURSOR_SIZENWSE",
    "se-resize": "SYSTEM_CURSOR_SIZENWSE",
    "ne-resize": "SYSTEM_CURSOR_SIZENESW",
    "sw-resize": "SYSTEM_CURSOR_SIZENESW",
    "n-resize": "SYSTEM_CURSOR_SIZENS",
    "s-resize": "SYSTEM_CURSOR_SIZENS",
    "e-resize": "SYSTEM_CURSOR_SIZEWE",
    "w-resize": "SYSTEM_CURSOR_SIZEWE",
}


def _screen_rect(rect: Rect, entry: LayoutEntry, view: View, offset: Tuple[int, int]) -> pygame.Rect:
    left, top = world_to_screen(view, (entry.world_x + rect.x, entry.world_y + rect.y))
    right, bottom = world_to_screen(view, (entry.world_x + rect.right, entry.world_y + rect.bottom))
    return pygame.Rect(
        int(round(left)) + offset[0],
        int(round(top)) + offset[1],
        max(0, int(round(right - left))),
        max(0, int(round(bottom - top))),
    )


def _visible_source(image_rect: pygame.Rect, clip: pygame.Rect, size: Tuple[int, int]) -> Optional[Tuple[pygame.Rect, pygame.Rect]]:
    """Source and destination rects for the part of a scaled image inside ``clip``."""
    visible = image_rect.clip(clip)
    if visible.width <= 0 or visible.height <= 0 or image_rect.width <= 0 or image_rect.height <= 0:
        return None
    sx = size[0] / image_rect.width
    sy = size[1] / image_rect.height
    left = int((visible.left - image_rect.left) * sx)
    top = int((visible.top - image_rect.top) * sy)
    right = min(size[0], int(round((visible.right - image_rect.left) * sx)) + 1)
    bottom = min(size[1], int(round((visible.bottom - image_rect.top) * sy)) + 1)
    source = pygame.Rect(left, top, max(1, right - left), max(1, bottom - top))
    dest = pygame.Rect(
        image_rect.left + int(source.left / sx),
        image_rect.top + int(source.top / sy),
        max(1, int(round(source.width / sx))),
        max(1, int(round(source.height / sy))),
    )
    return source, dest


class RaffleApp:
    def __init__(
        self,
        *,
        image_paths: Sequence[Path] = (),
        import_path: Optional[Path] = None,
        windowed: bool = False,
        seed: Optional[int] = None,
    ) -> None:
        self.config = load_config()
        self.data_root = get_data_root(self.config)
        dirs = ensure_directories(self.data_root)
        self.exports_dir = dirs["exports"]

        self.screen, self.screen_rect = create_window(windowed=windowed)
        self.clock = pygame.time.Clock()
        self.font = pygame.font.SysFont("sans", 16)
        self.small_font = pygame.font.SysFont("sans", 13)
        self._label_fonts: Dict[int, pygame.font.Font] = {}

        rng = random.Random(seed) if seed is not None else None
        self.session = RaffleSession(self.config, rng=rng)
        self.mouse_filter = MouseButtonFilter()
        self.status = ""
        self.buttons: Dict[str, Button] = {}
        self.image_buttons: List[Tuple[str, Button, Button]] = []
        self.history_buttons: List[Tuple[int, Button]] = []
        self._layout_panels()

        for path in image_paths:
            self._add_image(path)
        if import_path is not None:
            self._import(import_path)

    # -- layout ---------------------------------------------------------------

    def _layout_panels(self) -> None:
        self.sidebar_rect = pygame.Rect(0, 0, SIDEBAR_WIDTH, self.screen_rect.height)
        self.canvas_rect = pygame.Rect(
            SIDEBAR_WIDTH,
            0,
            self.screen_rect.width - SIDEBAR_WIDTH,
            self.screen_rect.height,
        )
        self._build_ui()

    @property
    def viewport(self) -> Tuple[float, float]:
        return (float(self.canvas_rect.width), float(self.canvas_rect.height))

    def _build_ui(self) -> None:
        self.buttons.clear()
        pad = 12
        gap = 6
        row_h = 30
        small_w = 36
        left = self.sidebar_rect.left + pad
        inner_w = self.sidebar_rect.width - pad * 2
        top = pad + 28

        for idx, key in enumerate(("rows", "cols", "winners", "duration")):
            y = top + idx * (row_h + gap)
            self.buttons[f"{key}-"] = Button(pygame.Rect(left + inner_w - 2 * small_w - gap, y, small_w, row_h), "-", fill=(235, 235, 235))
            self.buttons[f"{key}+"] = Button(pygame.Rect(left + inner_w - small_w, y, small_w, row_h), "+", fill=(235, 235, 235))
        self.value_rows_top = top

        y = top + 4 * (row_h + gap) + gap
        third = (inner_w - 2 * gap) // 3
        for idx, key in enumerate(("undo", "redo", "export")):
            self.buttons[key] = Button(pygame.Rect(left + idx * (third + gap), y, third, row_h), key.title(), fill=(245, 245, 245))
        y += row_h + gap
        for idx, key in enumerate(("pan", "fit", "zoom")):
            label = {"pan": "Pan", "fit": "Fit", "zoom": "100%"}[key]
            self.buttons[key] = Button(pygame.Rect(left + idx * (third + gap), y, third, row_h), label, fill=(245, 245, 245))
        y += row_h + gap
        self.buttons["draw"] = Button(pygame.Rect(left, y, inner_w, row_h + 10), "Start draw", fill=ACCENT)
        self.images_top = y + row_h + 10 + pad + 18
        self.results_top = self.sidebar_rect.bottom - pad - HISTORY_ROWS * (row_h - 8 + 2) - 150

    def _rebuild_lists(self) -> None:
        pad = 12
        left = self.sidebar_rect.left + pad
        inner_w = self.sidebar_rect.width - pad * 2
        row_h = 26
        self.image_buttons = []
        y = self.images_top
        for number, state in enumerate(self.session.model.states, start=1):
            if y + row_h > self.results_top - 4:
                break
            active = state.image_id == self.session.model.active_id
            select = Button(
                pygame.Rect(left, y, inner_w - row_h - 4, row_h),
                f"Image {number}  {state.grid_rows}x{state.grid_cols}",
                fill=(210, 240, 220) if active else (245, 245, 245),
            )
            remove = Button(pygame.Rect(left + inner_w - row_h, y, row_h, row_h), "x", fill=(245, 225, 225))
            remove.enabled = not self.session.running
            self.image_buttons.append((state.image_id, select, remove))
            y += row_h + 4

        self.history_buttons = []
        entries = self.session.history.entries
        first = max(0, len(entries) - HISTORY_ROWS)
        y = self.sidebar_rect.bottom - pad - HISTORY_ROWS * (row_h - 6)
        for index in range(first, len(entries)):
            button = Button(pygame.Rect(left, y, inner_w, row_h - 8), entries[index].label)
            button.enabled = not self.session.running
            self.history_buttons.append((index, button))
            y += row_h - 6

    # -- actions ----------------------------------------------------------------

    def _add_image(self, path: Path) -> None:
        record = load_image_record(path)
        if record is None:
            self.status = f"Could not load {path.name}"
            return
        self.session.add_image(record, viewport=self.viewport)

    def _import(self, path: Path) -> None:
        try:
            self.session.import_file(path, decode=decode_surface)
        except GridRaffleError as exc:
            self.status = f"Import failed: {exc}"
            return
        active = self.session.model.active_id
        if active is not None:
            self.session.fit_to(active, self.viewport)
        self.status = "Configuration imported"

    def _export(self) -> None:
        try:
            path = self.session.export_to(self.exports_dir)
        except OSError as exc:
            logger.warning("Export failed: %s", exc)
            self.status = "Export failed"
            return
        self.status = f"Exported {path.name}"

    def _start_draw(self) -> None:
        try:
            self.session.start_draw()
        except GridRaffleError as exc:
            self.status = str(exc)
            return
        self.status = "Drawing..."

    def _adjust(self, key: str, delta: int) -> None:
        session = self.session
        active = session.model.active
        try:
            if key == "rows" and active is not None:
                session.set_grid(active.grid_rows + delta, active.grid_cols)
            elif key == "cols" and active is not None:
                session.set_grid(active.grid_rows, active.grid_cols + delta)
            elif key == "winners":
                limit = max(1, session.eligible_count)
                session.set_winner_count(max(1, min(limit, session.settings.winner_count + delta)))
            elif key == "duration":
                session.set_duration(max(0.0, session.settings.duration + 0.5 * delta))
        except GridRaffleError as exc:
            self.status = str(exc)

    def _fit(self) -> None:
        active = self.session.model.active_id
        if active is None:
            self.session.machine.reset_view()
        else:
            self.session.fit_to(active, self.viewport)

    def _handle_sidebar_down(self, pos: Tuple[int, int]) -> None:
        for key in ("rows", "cols", "winners", "duration"):
            if self.buttons[f"{key}-"].hit(pos):
                self._adjust(key, -1)
                return
            if self.buttons[f"{key}+"].hit(pos):
                self._adjust(key, 1)
                return
        actions = {
            "undo": self.session.undo,
            "redo": self.session.redo,
            "export": self._export,
            "fit": self._fit,
            "zoom": self.session.machine.reset_view,
            "draw": self._start_draw,
        }
        for key, action in actions.items():
            if self.buttons[key].hit(pos):
                action()
                return
        if self.buttons["pan"].hit(pos):
            self.session.machine.pan_tool = not self.session.machine.pan_tool
            return
        for image_id, select, remove in self.image_buttons:
            if remove.hit(pos):
                self.session.remove_image(image_id)
                return
            if select.hit(pos):
                self.session.select_image(image_id, viewport=self.viewport)
                return
        for index, button in self.history_buttons:
            if button.hit(pos):
                self.session.restore(index)
                return

    def _handle_key(self, event: pygame.event.Event) -> bool:
        mods = event.mod
        ctrl = bool(mods & (pygame.KMOD_CTRL | pygame.KMOD_META))
        if event.key == pygame.K_ESCAPE:
            return False
        if ctrl and event.key == pygame.K_z:
            if mods & pygame.KMOD_SHIFT:
                self.session.redo()
            else:
                self.session.undo()
        elif ctrl and event.key == pygame.K_y:
            self.session.redo()
        elif ctrl and event.key == pygame.K_s:
            self._export()
        elif event.key == pygame.K_SPACE:
            self._start_draw()
        elif event.key == pygame.K_p:
            self.session.machine.pan_tool = not self.session.machine.pan_tool
        elif event.key in (pygame.K_PLUS, pygame.K_EQUALS, pygame.K_KP_PLUS):
            self.session.machine.zoom_by(self.session.machine.wheel_zoom_step, self.viewport)
        elif event.key in (pygame.K_MINUS, pygame.K_KP_MINUS):
            self.session.machine.zoom_by(-self.session.machine.wheel_zoom_step, self.viewport)
        elif event.key == pygame.K_f:
            self._fit()
        return True

    def _handle_pointer(self, event: pygame.event.Event) -> None:
        machine = self.session.machine
        pan_modifier = bool(pygame.key.get_mods() & pygame.KMOD_SHIFT)
        translated = translate_pointer_event(event, self.screen_rect, self.canvas_rect, pan_modifier=pan_modifier)
        if translated is None:
            return
        kind, pointer = translated
        if kind == "down":
            pos = pointer_event_pos(event, self.screen_rect)
            if pos is not None and not self.canvas_rect.collidepoint(pos):
                if is_primary_pointer_event(event, is_down=True):
                    self._handle_sidebar_down((int(pos[0]), int(pos[1])))
                return
            if self.mouse_filter.accept(kind, pointer):
                machine.pointer_down(pointer)
        elif kind == "move":
            machine.pointer_move(pointer)
            pos = pointer_event_pos(event, self.screen_rect)
            if machine.pointer_count == 0 and pos is not None and self.canvas_rect.collidepoint(pos):
                self._update_cursor(machine.cursor_hint(pointer.position))
        elif self.mouse_filter.accept(kind, pointer):
            machine.pointer_up(pointer)

    def _update_cursor(self, hint: str) -> None:
        name = _CURSORS.get(hint, "SYSTEM_CURSOR_ARROW")
        cursor = getattr(pygame, name, None)
        if cursor is None:
            return
        try:
            pygame.mouse.set_cursor(cursor)
        except pygame.error as exc:
            logger.debug("Cursor %s unavailable: %s", hint, exc)

    # -- rendering --------------------------------------------------------------

    def _label_font(self, size: int) -> pygame.font.Font:
        size = max(14, min(96, size))
        font = self._label_fonts.get(size)
        if font is None:
            font = pygame.font.SysFont("sans", size, bold=True)
            self._label_fonts[size] = font
        return font

    def _render_image(self, entry: LayoutEntry, state: ImageState, view: View, overlay: pygame.Surface) -> None:
        offset = self.canvas_rect.topleft
        image_rect = _screen_rect(Rect(0, 0, entry.width, entry.height), entry, view, offset)
        surface = state.image.source
        if surface is not None:
            visible = _visible_source(image_rect, self.canvas_rect, surface.get_size())
            if visible is not None:
                source, dest = visible
                piece = surface.subsurface(source)
                self.screen.blit(pygame.transform.smoothscale(piece, dest.size), dest.topleft)
        else:
            pygame.draw.rect(self.screen, (180, 180, 180), image_rect)

        local = image_rect.move(-offset[0], -offset[1])
        active = state.image_id == self.session.model.active_id
        if active:
            pygame.draw.rect(self.screen, ACCENT, image_rect.inflate(4, 4), width=3)

        if state.selection is None:
            overlay.fill(MASK, local)
            return

        sel = _screen_rect(state.selection, entry, view, offset)
        sel_local = sel.move(-offset[0], -offset[1])
        overlay.fill(MASK, local)
        overlay.fill((0, 0, 0, 0), sel_local.clip(local))

        grid_color = parse_color(self.session.settings.grid_color)
        for col in range(1, state.grid_cols):
            x = sel_local.left + sel_local.width * col / state.grid_cols
            pygame.draw.line(overlay, grid_color, (x, sel_local.top), (x, sel_local.bottom))
        for row in range(1, state.grid_rows):
            y = sel_local.top + sel_local.height * row / state.grid_rows
            pygame.draw.line(overlay, grid_color, (sel_local.left, y), (sel_local.right, y))

        for index in state.excluded:
            cell = _screen_rect(state.cell_rect(index), entry, view, (0, 0))
            overlay.fill(EXCLUDED_FILL, cell)
            inset = cell.inflate(-cell.width * 0.4, -cell.height * 0.4)
            pygame.draw.line(overlay, (255, 255, 255), inset.topleft, inset.bottomright, 2)
            pygame.draw.line(overlay, (255, 255, 255), inset.topright, inset.bottomleft, 2)

        cell_w = sel.width / state.grid_cols
        cell_h = sel.height / state.grid_rows
        border = max(3, int(min(cell_w, cell_h) * 0.08))

        flasher = self.session.flasher
        if flasher is not None and flasher.image_id == state.image_id:
            cell = _screen_rect(state.cell_rect(flasher.cell_index), entry, view, (0, 0))
            overlay.fill(FLASH_FILL, cell)
            pygame.draw.rect(overlay, WINNER, cell, width=border)

        if state.winners:
            label_font = self._label_font(int(min(cell_w, cell_h) * 0.4))
            for index in state.winners:
                cell = _screen_rect(state.cell_rect(index), entry, view, (0, 0))
                pygame.draw.rect(overlay, WINNER, cell, width=border)
                text = label_font.render(f"#{index + 1}", True, WINNER)
                overlay.blit(text, text.get_rect(center=cell.center))

        if active and not self.session.running:
            pygame.draw.rect(overlay, ACCENT, sel_local, width=2)
            for handle in Handle:
                hx, hy = handle.position(Rect(sel_local.x, sel_local.y, sel_local.width, sel_local.height))
                knob = pygame.Rect(0, 0, 8, 8)
                knob.center = (int(hx), int(hy))
                pygame.draw.rect(overlay, (255, 255, 255), knob)
                pygame.draw.rect(overlay, ACCENT, knob, width=1)

    def _render_sidebar(self) -> None:
        session = self.session
        pygame.draw.rect(self.screen, (238, 234, 226), self.sidebar_rect)
        left = self.sidebar_rect.left + 12
        title = self.font.render(f"Eligible cells: {session.eligible_count}", True, (30, 30, 30))
        self.screen.blit(title, (left, 12))

        active = session.model.active
        values = [
            ("Rows", str(active.grid_rows) if active else "-"),
            ("Columns", str(active.grid_cols) if active else "-"),
            ("Winners", str(session.settings.winner_count)),
            ("Duration", f"{session.settings.duration:.1f}s"),
        ]
        for idx, (label, value) in enumerate(values):
            y = self.value_rows_top + idx * 36 + 6
            text = self.font.render(f"{label}: {value}", True, (30, 30, 30))
            self.screen.blit(text, (left, y))

        self.buttons["undo"].enabled = session.history.can_undo and not session.running
        self.buttons["redo"].enabled = session.history.can_redo and not session.running
        self.buttons["draw"].enabled = not session.running and session.eligible_count > 0
        self.buttons["draw"].label = "Drawing..." if session.running else "Start draw"
        self.buttons["pan"].fill = (210, 240, 220) if session.machine.pan_tool else (245, 245, 245)
        self.buttons["zoom"].label = f"{int(round(session.view.scale * 100))}%"
        for button in self.buttons.values():
            button.draw(self.screen, self.font)

        self.screen.blit(self.small_font.render("Images", True, (90, 90, 90)), (left, self.images_top - 18))
        for _, select, remove in self.image_buttons:
            select.draw(self.screen, self.small_font)
            remove.draw(self.screen, self.small_font)

        y = self.results_top
        self.screen.blit(self.small_font.render("Results", True, (90, 90, 90)), (left, y))
        for ticket in session.results[:6]:
            y += 18
            self.screen.blit(self.small_font.render(ticket.label, True, WINNER), (left, y))

        history_top = self.history_buttons[0][1].rect.top if self.history_buttons else self.sidebar_rect.bottom
        self.screen.blit(self.small_font.render("History", True, (90, 90, 90)), (left, history_top - 18))
        for _, button in self.history_buttons:
            button.draw(self.screen, self.small_font)

        if self.status:
            status = self.small_font.render(self.status, True, (160, 40, 40))
            self.screen.blit(status, (left, self.results_top - 20))

    def _render(self) -> None:
        self.screen.fill((229, 231, 235))
        overlay = pygame.Surface(self.canvas_rect.size, pygame.SRCALPHA)
        view = self.session.view
        model = self.session.model
        self.screen.set_clip(self.canvas_rect)
        for entry in self.session.entries:
            self._render_image(entry, model.get(entry.image_id), view, overlay)
        self.screen.blit(overlay, self.canvas_rect.topleft)
        self.screen.set_clip(None)

        self._rebuild_lists()
        self._render_sidebar()
        pygame.display.flip()

    # -- loop ---------------------------------------------------------------------

    def run(self, *, quit_on_exit: bool = True) -> None:
        running = True
        self._render()
        while running:
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif ignore_system_shortcut(event):
                    continue
                elif event.type == pygame.KEYDOWN:
                    running = self._handle_key(event)
                elif event.type == pygame.VIDEORESIZE:
                    self.screen_rect = self.screen.get_rect()
                    self._layout_panels()
                elif event.type == pygame.MOUSEWHEEL:
                    if self.canvas_rect.collidepoint(pygame.mouse.get_pos()):
                        self.session.machine.wheel(-event.y, self.viewport)
                elif event.type == WINDOWLEAVE:
                    self.session.machine.cancel_all()
                    self.mouse_filter.reset()
                else:
                    self._handle_pointer(event)

            was_running = self.session.running
            if not self.session.tick() and was_running:
                winners = ", ".join(ticket.label for ticket in self.session.results)
                self.status = f"Winners: {winners}" if winners else ""
            self._render()
            self.clock.tick(60)

        if quit_on_exit:
            pygame.quit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gridraffle", description="Draw winning grid cells across images.")
    parser.add_argument("images", nargs="*", type=Path, help="image files to load")
    parser.add_argument("--import", dest="import_path", type=Path, help="exported configuration to load")
    parser.add_argument("--windowed", action="store_true", help="run in a resizable window")
    parser.add_argument("--seed", type=int, help="seed the winner draw")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    logs_dir = ensure_directories(get_data_root(config))["logs"]
    setup_logging("gridraffle", level=config.get("log_level", "INFO"), log_file=logs_dir / "gridraffle.log")
    try:
        RaffleApp(
            image_paths=args.images,
            import_path=args.import_path,
            windowed=args.windowed,
            seed=args.seed,
        ).run(quit_on_exit=True)
    except Exception:
        logger.exception("gridraffle exited with an error")
        pygame.quit()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
