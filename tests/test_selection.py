from dataclasses import replace

import pytest

from gridraffle.core.layout import ImageRecord
from gridraffle.core.selection import Rect, SelectionModel, cell_index_at


def _model_with_image(rows=2, cols=2):
    model = SelectionModel()
    image = ImageRecord(width=400, height=300, id="img")
    model.add_image(image, rows=rows, cols=cols, selection=Rect(0, 0, 200, 100))
    return model


def test_rect_normalizes_negative_extents():
    rect = Rect(50, 40, -30, -20).normalized()
    assert rect == Rect(20, 20, 30, 20)
    assert Rect.from_corners((50, 40), (20, 20)) == rect


def test_cell_index_at_row_major_and_outside():
    rect = Rect(0, 0, 200, 100)
    assert cell_index_at(rect, 2, 2, (10, 10)) == 0
    assert cell_index_at(rect, 2, 2, (150, 10)) == 1
    assert cell_index_at(rect, 2, 2, (10, 60)) == 2
    assert cell_index_at(rect, 2, 2, (199, 99)) == 3
    assert cell_index_at(rect, 2, 2, (200, 50)) is None
    assert cell_index_at(rect, 2, 2, (-1, 50)) is None
    assert cell_index_at(Rect(0, 0, 0, 10), 1, 1, (0, 0)) is None


def test_first_image_becomes_active():
    model = _model_with_image()
    assert model.active_id == "img"
    model.add_image(ImageRecord(width=10, height=10, id="second"))
    assert model.active_id == "img"


def test_default_grid_is_one_by_five():
    model = SelectionModel()
    state = model.add_image(ImageRecord(width=10, height=10))
    assert (state.grid_rows, state.grid_cols) == (1, 5)


def test_geometry_change_clears_exclusions_and_winners():
    model = _model_with_image()
    model.toggle_excluded("img", 1)
    model.set_winners({"img": [0]})

    model.set_selection("img", Rect(10, 0, 200, 100))

    state = model.get("img")
    assert state.excluded == frozenset()
    assert state.winners == frozenset()


def test_grid_change_clears_exclusions_and_clamps():
    model = _model_with_image()
    model.toggle_excluded("img", 0)

    state = model.set_grid("img", 0, 99)

    assert (state.grid_rows, state.grid_cols) == (1, 50)
    assert state.excluded == frozenset()


def test_same_geometry_keeps_exclusions():
    model = _model_with_image()
    model.toggle_excluded("img", 3)
    model.set_grid("img", 2, 2)
    model.set_selection("img", Rect(200, 100, -200, -100))
    assert model.get("img").excluded == {3}


def test_toggle_excluded_out_of_range_is_noop():
    model = _model_with_image()
    assert model.toggle_excluded("img", 4) is False
    assert model.toggle_excluded("img", -1) is False
    assert model.get("img").excluded == frozenset()

    model.set_selection("img", None)
    assert model.toggle_excluded("img", 0) is False


def test_toggle_excluded_twice_restores():
    model = _model_with_image()
    assert model.toggle_excluded("img", 2)
    assert model.get("img").eligible_count == 3
    assert model.toggle_excluded("img", 2)
    assert model.get("img").excluded == frozenset()


def test_excluding_a_winner_drops_only_that_winner():
    model = _model_with_image()
    model.set_winners({"img": [1, 2]})

    model.toggle_excluded("img", 1)
    assert model.get("img").winners == {2}

    model.set_winners({"img": [2]})
    model.toggle_excluded("img", 0)
    assert model.get("img").winners == {2}


def test_eligible_count_across_images():
    model = _model_with_image()
    model.toggle_excluded("img", 1)
    model.add_image(ImageRecord(width=50, height=50, id="b"), rows=1, cols=3, selection=Rect(0, 0, 30, 30))
    model.add_image(ImageRecord(width=50, height=50, id="c"))
    assert model.eligible_count() == 6


def test_remove_active_image_moves_focus():
    model = _model_with_image()
    model.add_image(ImageRecord(width=50, height=50, id="b"))
    model.remove_image("img")
    assert model.active_id == "b"
    assert "img" not in model
    model.remove_image("b")
    assert model.active_id is None


def test_set_active_unknown_raises():
    model = _model_with_image()
    with pytest.raises(KeyError):
        model.set_active("nope")


def test_snapshot_strips_winners_and_load_keeps_them_when_unchanged():
    model = _model_with_image()
    snapshot = model.snapshot()
    model.set_winners({"img": [0, 3]})
    assert all(not state.winners for state in model.snapshot())

    model.load(snapshot)
    assert model.get("img").winners == {0, 3}

    model.load((replace(snapshot[0], excluded=frozenset({3})),))
    assert model.get("img").winners == {0}

    model.load((replace(snapshot[0], selection=Rect(1, 1, 50, 50)),))
    assert model.get("img").winners == frozenset()


def test_load_fixes_active_image():
    model = _model_with_image()
    other = SelectionModel()
    other.add_image(ImageRecord(width=5, height=5, id="other"))
    model.load(other.snapshot())
    assert model.active_id == "other"
    assert list(model.states)[0].image_id == "other"
