import io
import json
from datetime import date

import pytest
from PIL import Image

from gridraffle.core.layout import ImageRecord
from gridraffle.core.selection import Rect, SelectionModel
from gridraffle.exceptions import SnapshotError
from gridraffle.settings import DrawSettings
from gridraffle.snapshot import (
    apply_snapshot,
    decode_data_url,
    dumps,
    encode_data_url,
    export_filename,
    export_snapshot,
    parse_snapshot,
    sniff_mime_type,
)


def _png(width=4, height=3, color=(200, 10, 10)):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _model():
    model = SelectionModel()
    model.add_image(
        ImageRecord(width=4, height=3, id="one", data=_png()),
        rows=2,
        cols=3,
        selection=Rect(0, 0, 4, 3),
        excluded=[1, 4],
    )
    model.add_image(ImageRecord(width=8, height=8, id="two", data=_png(8, 8)))
    return model


def test_export_filename_uses_date():
    assert export_filename(date(2026, 3, 9)) == "lottery-config-2026-03-09.json"


def test_data_url_round_trip_sniffs_png():
    data = _png()
    url = encode_data_url(data)
    assert url.startswith("data:image/png;base64,")
    assert decode_data_url(url) == data
    assert sniff_mime_type(b"not an image") == "application/octet-stream"


def test_export_layout():
    payload = export_snapshot(_model(), DrawSettings(winner_count=2, duration=4.5))

    assert payload["version"] == "1.0"
    assert payload["settings"] == {
        "winnerCount": 2,
        "animationDuration": 4.5,
        "gridColor": "rgba(255, 255, 255, 0.6)",
    }
    first, second = payload["images"]
    assert first["naturalWidth"] == 4
    assert first["selection"] == {"x": 0, "y": 0, "w": 4, "h": 3}
    assert (first["gridRows"], first["gridCols"]) == (2, 3)
    assert first["excludedCells"] == [1, 4]
    assert second["selection"] is None
    assert "winners" not in first


def test_import_restores_configuration_without_winners():
    source = _model()
    source.set_winners({"one": [0]})
    text = dumps(source, DrawSettings(winner_count=3, duration=1.0, grid_color="#ff0000"))

    target = SelectionModel()
    target.add_image(ImageRecord(width=1, height=1, id="old"))
    settings = apply_snapshot(target, text, decode=lambda data: Image.open(io.BytesIO(data)).size)

    assert settings == DrawSettings(winner_count=3, duration=1.0, grid_color="#ff0000")
    assert len(target) == 2
    assert "old" not in target
    first, second = target.states
    assert first.image.source == (4, 3)
    assert first.selection == Rect(0, 0, 4, 3)
    assert (first.grid_rows, first.grid_cols) == (2, 3)
    assert first.excluded == {1, 4}
    assert first.winners == frozenset()
    assert second.selection is None
    assert target.active_id == first.image_id
    assert first.image_id not in ("one", "two")


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        "[]",
        json.dumps({"images": []}),
        json.dumps({"version": "1.0"}),
        json.dumps({"version": "1.0", "images": [{"dataUrl": "http://example.com/x.png"}]}),
        json.dumps({"version": "1.0", "images": [], "settings": {"winnerCount": 0}}),
        json.dumps({"version": "1.0", "images": [], "settings": {"animationDuration": -1}}),
    ],
)
def test_malformed_import_leaves_model_untouched(payload):
    model = _model()
    before = model.snapshot()

    with pytest.raises(SnapshotError):
        apply_snapshot(model, payload)

    assert model.snapshot() == before
    assert model.active_id == "one"


def test_bad_image_dimensions_are_rejected():
    image = {
        "dataUrl": encode_data_url(_png()),
        "naturalWidth": 0,
        "naturalHeight": 3,
        "selection": None,
        "gridRows": 1,
        "gridCols": 1,
        "excludedCells": [],
    }
    with pytest.raises(SnapshotError):
        parse_snapshot({"version": "1.0", "images": [image]})


def test_decode_failure_is_reported_as_snapshot_error():
    model = _model()
    text = dumps(model, DrawSettings())

    def broken(_data):
        raise ValueError("corrupt")

    target = SelectionModel()
    with pytest.raises(SnapshotError):
        apply_snapshot(target, text, decode=broken)
    assert len(target) == 0


def test_out_of_range_excluded_cells_and_grid_are_clamped():
    image = {
        "dataUrl": encode_data_url(_png()),
        "naturalWidth": 4,
        "naturalHeight": 3,
        "selection": {"x": 4, "y": 3, "w": -4, "h": -3},
        "gridRows": 1,
        "gridCols": 80,
        "excludedCells": [0, 49, 50, 200],
    }
    model = SelectionModel()
    apply_snapshot(model, {"version": "1.0", "images": [image]})

    state = model.states[0]
    assert state.selection == Rect(0, 0, 4, 3)
    assert state.grid_cols == 50
    assert state.excluded == {0, 49}


def test_missing_settings_fall_back():
    fallback = DrawSettings(winner_count=4)
    parsed = parse_snapshot({"version": "1.0", "images": []}, fallback=fallback)
    assert parsed.settings == fallback
