from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_CONFIG: Dict[str, Any] = {
    "data_root": "~/.gridraffle",
    "log_level": "INFO",
    "canvas": {
        "image_gap": 100,
        "min_selection_size": 10,
        "drag_threshold": 5,
        "handle_size": 8,
        "min_scale": 0.1,
        "max_scale": 5.0,
        "wheel_zoom_step": 0.05,
        "fit_padding": 40,
        "fit_max_scale": 2.0,
    },
    "grid": {
        "default_rows": 1,
        "default_cols": 5,
        "max_rows": 50,
        "max_cols": 50,
        "color": "rgba(255, 255, 255, 0.6)",
    },
    "draw": {
        "winner_count": 1,
        "duration_seconds": 3.0,
        "max_duration_seconds": 10.0,
        "flash_interval_ms": 80,
    },
    "history": {
        "limit": 50,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _candidate_config_paths() -> list[Path]:
    env_path = os.environ.get("GRIDRAFFLE_CONFIG")
    paths = []
    if env_path:
        paths.append(Path(env_path))
    paths.extend([
        Path("config.yaml"),
        Path("~/.config/gridraffle/config.yaml").expanduser(),
    ])
    return paths


def load_config() -> Dict[str, Any]:
    config = dict(DEFAULT_CONFIG)
    for path in _candidate_config_paths():
        if path.exists():
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            if isinstance(data, dict):
                config = _deep_merge(config, data)
            break
    return config


def coerce_int(value: object, default: int, *, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        result = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if minimum is not None:
        result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


def coerce_float(
    value: object,
    default: float,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if result != result:
        return default
    if minimum is not None:
        result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


def section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name, {})
    if isinstance(value, dict):
        return value
    return {}
