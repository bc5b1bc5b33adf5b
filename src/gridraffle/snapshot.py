from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from gridraffle.core.layout import ImageRecord
from gridraffle.core.selection import ImageState, Rect, SelectionModel
from gridraffle.exceptions import ConfigurationError, SnapshotError
from gridraffle.settings import DrawSettings

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"

Decoder = Callable[[bytes], Any]


@dataclass(frozen=True)
class ImportedImage:
    data: bytes
    width: int
    height: int
    selection: Optional[Rect]
    grid_rows: int
    grid_cols: int
    excluded: Tuple[int, ...]


@dataclass(frozen=True)
class ParsedSnapshot:
    version: str
    settings: DrawSettings
    images: Tuple[ImportedImage, ...]


def export_filename(day: Optional[date] = None) -> str:
    day = day or date.today()
    return f"lottery-config-{day.isoformat()}.json"


def sniff_mime_type(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as image:
            mime = image.get_format_mimetype()
    except (UnidentifiedImageError, OSError):
        return "application/octet-stream"
    return mime or "application/octet-stream"


def encode_data_url(data: bytes) -> str:
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{sniff_mime_type(data)};base64,{payload}"


def decode_data_url(url: str) -> bytes:
    if not isinstance(url, str) or not url.startswith("data:") or "," not in url:
        raise SnapshotError("image data must be a data: URL")
    header, payload = url.split(",", 1)
    if not header.endswith(";base64"):
        raise SnapshotError("image data URL must be base64 encoded")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SnapshotError("image data URL is not valid base64") from exc


def _rect_to_json(rect: Optional[Rect]) -> Optional[Dict[str, float]]:
    if rect is None:
        return None
    return {"x": rect.x, "y": rect.y, "w": rect.w, "h": rect.h}


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise SnapshotError(f"{name} must be a number, got {value!r}")
    return float(value)


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotError(f"{name} must be a positive integer, got {value!r}")
    if not math.isfinite(value) or int(value) != value or value < 1:
        raise SnapshotError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def _parse_rect(value: Any) -> Optional[Rect]:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise SnapshotError(f"selection must be an object or null, got {value!r}")
    try:
        rect = Rect(*(_number(value[key], f"selection.{key}") for key in ("x", "y", "w", "h")))
    except KeyError as exc:
        raise SnapshotError(f"selection is missing {exc.args[0]!r}") from exc
    return rect.normalized()


def _parse_image(raw: Any, position: int) -> ImportedImage:
    if not isinstance(raw, Mapping):
        raise SnapshotError(f"images[{position}] must be an object")
    data = decode_data_url(raw.get("dataUrl"))
    excluded = raw.get("excludedCells", [])
    if not isinstance(excluded, list) or not all(
        isinstance(index, int) and not isinstance(index, bool) for index in excluded
    ):
        raise SnapshotError(f"images[{position}].excludedCells must be a list of integers")
    return ImportedImage(
        data=data,
        width=_positive_int(raw.get("naturalWidth"), f"images[{position}].naturalWidth"),
        height=_positive_int(raw.get("naturalHeight"), f"images[{position}].naturalHeight"),
        selection=_parse_rect(raw.get("selection")),
        grid_rows=_positive_int(raw.get("gridRows", 1), f"images[{position}].gridRows"),
        grid_cols=_positive_int(raw.get("gridCols", 1), f"images[{position}].gridCols"),
        excluded=tuple(excluded),
    )


def _parse_settings(raw: Any, fallback: DrawSettings) -> DrawSettings:
    if raw is None:
        return fallback
    if not isinstance(raw, Mapping):
        raise SnapshotError("settings must be an object")
    settings = fallback
    try:
        if "winnerCount" in raw:
            settings = settings.with_winner_count(_positive_int(raw["winnerCount"], "settings.winnerCount"))
        if "animationDuration" in raw:
            settings = settings.with_duration(_number(raw["animationDuration"], "settings.animationDuration"))
    except ConfigurationError as exc:
        raise SnapshotError(str(exc)) from exc
    if "gridColor" in raw:
        settings = settings.with_grid_color(raw["gridColor"])
    return settings


def parse_snapshot(source: Any, *, fallback: Optional[DrawSettings] = None) -> ParsedSnapshot:
    """Validate a snapshot given as JSON text, bytes, or an already-decoded dict."""
    if isinstance(source, (str, bytes, bytearray)):
        try:
            source = json.loads(source)
        except (ValueError, UnicodeDecodeError) as exc:
            raise SnapshotError(f"configuration is not valid JSON: {exc}") from exc
    if not isinstance(source, Mapping):
        raise SnapshotError("configuration must be a JSON object")
    version = source.get("version")
    images = source.get("images")
    if not version or images is None:
        raise SnapshotError("Invalid configuration file format: missing version or images")
    if not isinstance(images, list):
        raise SnapshotError("images must be a list")
    return ParsedSnapshot(
        version=str(version),
        settings=_parse_settings(source.get("settings"), fallback or DrawSettings()),
        images=tuple(_parse_image(raw, position) for position, raw in enumerate(images)),
    )


def export_snapshot(model: SelectionModel, settings: DrawSettings) -> Dict[str, Any]:
    images = []
    for state in model.states:
        images.append({
            "dataUrl": encode_data_url(state.image.data),
            "naturalWidth": state.image.width,
            "naturalHeight": state.image.height,
            "selection": _rect_to_json(state.selection),
            "gridRows": state.grid_rows,
            "gridCols": state.grid_cols,
            "excludedCells": sorted(state.excluded),
        })
    return {
        "version": SNAPSHOT_VERSION,
        "settings": {
            "winnerCount": settings.winner_count,
            "animationDuration": settings.duration,
            "gridColor": settings.grid_color,
        },
        "images": images,
    }


def dumps(model: SelectionModel, settings: DrawSettings) -> str:
    return json.dumps(export_snapshot(model, settings), indent=2)


def build_states(
    parsed: ParsedSnapshot,
    model: SelectionModel,
    decode: Optional[Decoder] = None,
) -> List[ImageState]:
    """Turn parsed images into fresh image states without touching ``model``."""
    states = []
    for position, item in enumerate(parsed.images):
        source = None
        if decode is not None:
            try:
                source = decode(item.data)
            except Exception as exc:
                raise SnapshotError(f"images[{position}] could not be decoded: {exc}") from exc
        record = ImageRecord(width=item.width, height=item.height, source=source, data=item.data)
        rows = max(1, min(model.max_rows, item.grid_rows))
        cols = max(1, min(model.max_cols, item.grid_cols))
        cells = rows * cols
        states.append(ImageState(
            image=record,
            selection=item.selection,
            grid_rows=rows,
            grid_cols=cols,
            excluded=frozenset(index for index in item.excluded if 0 <= index < cells),
        ))
    return states


def apply_snapshot(
    model: SelectionModel,
    source: Any,
    *,
    decode: Optional[Decoder] = None,
    fallback: Optional[DrawSettings] = None,
) -> DrawSettings:
    """Replace the model's images with an imported snapshot and return its settings.

    The model is left untouched when the snapshot is malformed.
    """
    parsed = parse_snapshot(source, fallback=fallback)
    states = build_states(parsed, model, decode)
    model.load(states)
    model.set_active(states[0].image_id if states else None)
    logger.info("Imported configuration v%s with %d image(s)", parsed.version, len(states))
    return parsed.settings
