from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict

from gridraffle.config import DEFAULT_CONFIG, coerce_float, coerce_int, section
from gridraffle.exceptions import ConfigurationError

DEFAULT_GRID_COLOR = DEFAULT_CONFIG["grid"]["color"]


@dataclass(frozen=True)
class DrawSettings:
    winner_count: int = 1
    duration: float = 3.0
    grid_color: str = DEFAULT_GRID_COLOR

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DrawSettings":
        draw = section(config, "draw")
        grid = section(config, "grid")
        max_duration = coerce_float(draw.get("max_duration_seconds"), 10.0, minimum=0.0)
        return cls(
            winner_count=coerce_int(draw.get("winner_count"), 1, minimum=1),
            duration=coerce_float(draw.get("duration_seconds"), 3.0, minimum=0.0, maximum=max_duration),
            grid_color=str(grid.get("color", DEFAULT_GRID_COLOR)),
        )

    def with_winner_count(self, count: int) -> "DrawSettings":
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ConfigurationError(f"winner count must be an integer >= 1, got {count!r}")
        return replace(self, winner_count=count)

    def with_duration(self, seconds: float) -> "DrawSettings":
        try:
            value = float(seconds)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"duration must be a number, got {seconds!r}") from exc
        if not value >= 0:
            raise ConfigurationError(f"duration must be >= 0 seconds, got {seconds!r}")
        return replace(self, duration=value)

    def with_grid_color(self, color: str) -> "DrawSettings":
        return replace(self, grid_color=str(color))
