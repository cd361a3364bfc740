import json
import random

import numpy as np
import pytest

from canvas import MapCanvas
from helpers import image_data_uri
from mapsketch.errors import ProjectError, SnapshotError


@pytest.fixture
def canvas():
    return MapCanvas(200, 120, name="Test Realm", rng=random.Random(5))


def _sculpt(canvas, points, size=15):
    canvas.execute({"action": "set_tool", "tool": "sculpt"})
    canvas.execute({"action": "set_config", "changes": {"brush_size": size, "edge_roughness": 0}})
    canvas.execute({"action": "stroke", "points": points})


def test_new_canvas_shows_ocean(canvas):
    pixels = canvas.get_pixels_rgb(0, 0, 3, 2)
    assert pixels == [[[30, 58, 138]] * 3] * 2


def test_sculpt_stroke_raises_land_and_halo(canvas):
    _sculpt(canvas, [[60, 60], [120, 60]])
    layers = canvas.engine.layers
    assert layers.land_mask.alpha[60, 90] == 1.0
    assert layers.shallow_water.alpha[60, 40] > 0
    r, g, b = canvas.get_pixels_rgb(90, 60, 1, 1)[0][0]
    assert (r, g, b) == (0xed, 0xc9, 0xaf)


def test_tools_map_to_paint_modes(canvas):
    for tool, mode in (("sculpt", "terrain"), ("river", "river"), ("paint", "texture"),
                       ("path", "path"), ("text", "none"), ("move", "none")):
        canvas.execute({"action": "set_tool", "tool": tool})
        assert canvas.config.paint_mode == mode
    with pytest.raises(ValueError):
        canvas.execute({"action": "set_tool", "tool": "lasso"})


def test_unknown_action_raises(canvas):
    with pytest.raises(ValueError):
        canvas.execute({"action": "explode"})


def test_path_stroke_draws_marks(canvas):
    canvas.execute({"action": "set_tool", "tool": "path"})
    canvas.execute({"action": "set_config", "changes": {"brush_size": 4}})
    canvas.execute({"action": "stroke", "points": [[10, 10], [110, 10]]})
    path = canvas.engine.layers.path.alpha
    assert path[10, 10] == 1.0
    assert path[10, 20] == 1.0
    assert path[10, 15] == 0.0


def test_undo_redo_stroke(canvas):
    _sculpt(canvas, [[100, 60]])
    painted = canvas.engine.layers.land_mask.alpha.copy()

    assert canvas.execute({"action": "undo"}) is True
    assert canvas.engine.layers.land_mask.alpha.max() == 0.0
    assert canvas.engine.layers.shallow_water.alpha.max() == 0.0

    assert canvas.execute({"action": "redo"}) is True
    assert np.allclose(canvas.engine.layers.land_mask.alpha, painted, atol=0.5 / 255 + 1e-6)
    assert canvas.execute({"action": "redo"}) is False


def test_new_operation_clears_redo(canvas):
    _sculpt(canvas, [[50, 50]])
    canvas.undo()
    _sculpt(canvas, [[150, 50]])
    assert not canvas.redo()


def test_undo_history_is_capped(canvas):
    for _ in range(MapCanvas.MAX_UNDO + 5):
        canvas.execute({"action": "clear"})
    assert len(canvas._undo_stack) == MapCanvas.MAX_UNDO


def test_empty_stroke_is_not_recorded(canvas):
    canvas.execute({"action": "stroke", "points": []})
    assert canvas.undo() is False


def test_place_select_update_remove_asset(canvas):
    src = image_data_uri((255, 0, 0, 255), (10, 10))
    first = canvas.execute({"action": "place_asset", "src": src, "x": 50, "y": 50})
    second = canvas.execute({"action": "place_asset", "src": src, "x": 150, "y": 50})
    assert (first, second) == (1, 2)
    assert (canvas.assets[0].width, canvas.assets[0].height) == (10, 10)

    assert canvas.execute({"action": "select_asset", "x": 152, "y": 48}) == 2
    assert canvas.execute({"action": "select_asset", "x": 100, "y": 100}) is None

    canvas.execute({"action": "update_asset", "id": 1, "x": 60, "scale": 2.0})
    assert (canvas.assets[0].x, canvas.assets[0].scale) == (60, 2.0)

    canvas.execute({"action": "remove_asset", "id": 1})
    assert [a.id for a in canvas.assets] == [2]
    with pytest.raises(ValueError):
        canvas.execute({"action": "remove_asset", "id": 1})

    canvas.undo()
    assert [a.id for a in canvas.assets] == [1, 2]


def test_scatter_places_batches(canvas):
    src = image_data_uri((0, 128, 0, 255), (6, 6))
    canvas.execute({"action": "place_asset", "src": src, "x": 5, "y": 5})
    count = canvas.execute({"action": "scatter_assets", "sources": [src],
                            "points": [[100, 60]], "density": 4, "brush_radius": 20,
                            "place_on_top": False})
    assert count == 2
    assert len(canvas.assets) == 3
    # Scattered assets go underneath existing ones
    assert canvas.assets[-1].id == 1
    for asset in canvas.assets[:2]:
        assert np.hypot(asset.x - 100, asset.y - 60) <= 20
        assert asset.scale >= 0.1


def test_scatter_respects_travel_threshold(canvas):
    src = image_data_uri((0, 128, 0, 255), (6, 6))
    points = [[10 + i, 60] for i in range(30)]
    count = canvas.execute({"action": "scatter_assets", "sources": [src], "points": points,
                            "density": 2, "brush_radius": 5})
    # threshold 25px, one asset per batch: at x=10 and x=35
    assert count == 2


def test_labels_add_update_select_remove(canvas):
    canvas.execute({"action": "set_tool", "tool": "text"})
    ident = canvas.execute({"action": "add_label", "text": "Port", "x": 100, "y": 60})
    assert canvas.engine.layers.labels.alpha.max() > 0
    canvas.execute({"action": "update_label", "id": ident, "curvature": 30, "size": 20})
    assert canvas.labels[0].curvature == 30
    assert canvas.execute({"action": "select_label", "x": 110, "y": 65}) == ident
    assert canvas.execute({"action": "select_label", "x": 10, "y": 10}) is None
    canvas.execute({"action": "remove_label", "id": ident})
    assert canvas.labels == []
    assert canvas.engine.layers.labels.alpha.max() == 0.0


def test_clear_removes_everything(canvas):
    _sculpt(canvas, [[100, 60]])
    canvas.execute({"action": "add_label", "text": "X", "x": 10, "y": 10})
    canvas.execute({"action": "clear"})
    assert canvas.labels == []
    assert all(layer.alpha.max() == 0.0 for layer in canvas.engine.layers.all_layers())


def test_new_map_resizes_and_drops_history(canvas):
    _sculpt(canvas, [[100, 60]])
    canvas.execute({"action": "new_map", "width": 64, "height": 32, "name": "Tiny"})
    assert (canvas.width, canvas.height, canvas.name) == (64, 32, "Tiny")
    assert canvas.get_display_surface().get_size() == (64, 32)
    assert canvas.undo() is False


def test_project_save_and_load(canvas, tmp_path):
    _sculpt(canvas, [[100, 60]])
    src = image_data_uri((255, 0, 0, 255), (8, 8))
    canvas.execute({"action": "place_asset", "src": src, "x": 30, "y": 30})
    canvas.execute({"action": "add_label", "text": "Home", "x": 100, "y": 60})
    canvas.execute({"action": "set_config", "changes": {"terrain_color": "#aabbcc"}})
    path = tmp_path / "realm.json"
    canvas.execute({"action": "save_project", "path": str(path)})

    data = json.loads(path.read_text())
    assert data["meta"]["name"] == "Test Realm"
    assert data["state"]["terrainColor"] == "#aabbcc"
    assert len(data["state"]["assets"]) == 1

    other = MapCanvas(64, 64, rng=random.Random(0))
    message = other.execute({"action": "load_project", "path": str(path)})
    assert "Test Realm" in message
    assert (other.width, other.height) == (200, 120)
    assert other.config.terrain_color == "#aabbcc"
    assert [label.text for label in other.labels] == ["Home"]
    assert np.allclose(other.engine.layers.land_mask.alpha,
                       canvas.engine.layers.land_mask.alpha, atol=0.5 / 255 + 1e-6)
    # Ids continue after the loaded ones
    assert other.execute({"action": "add_label", "text": "New", "x": 0, "y": 0}) == 3


def test_failed_load_keeps_current_map(canvas, tmp_path):
    _sculpt(canvas, [[100, 60]])
    before = canvas.engine.layers.land_mask.alpha.copy()
    path = tmp_path / "broken.json"
    path.write_text('{"meta": {"width": 10}}')
    with pytest.raises(ProjectError):
        canvas.execute({"action": "load_project", "path": str(path)})
    assert canvas.name == "Test Realm"
    assert np.array_equal(canvas.engine.layers.land_mask.alpha, before)


def test_export_image_writes_jpeg(canvas, tmp_path, monkeypatch):
    _sculpt(canvas, [[100, 60]])
    target = tmp_path / "out.jpg"
    assert str(target) in canvas.execute({"action": "export_image", "path": str(target)})
    assert target.read_bytes()[:2] == b"\xff\xd8"

    monkeypatch.chdir(tmp_path)
    canvas.execute({"action": "export_image"})
    assert (tmp_path / "Test_Realm_export.jpg").exists()


def test_display_surface_is_cached_until_a_command(canvas):
    first = canvas.get_display_surface()
    assert canvas.get_display_surface() is first
    canvas.execute({"action": "set_tool", "tool": "river"})
    assert canvas.get_display_surface() is not first


def test_get_pixels_clamps_region(canvas):
    pixels = canvas.get_pixels_rgb(195, 115, 50, 50)
    assert len(pixels) == 5
    assert len(pixels[0]) == 5


def test_rejected_color_leaves_config_and_history_working(canvas):
    with pytest.raises(ValueError):
        canvas.execute({"action": "set_config",
                        "changes": {"shallow_water_color": "not-a-color", "brush_size": 40}})
    assert canvas.config.shallow_water_color == "#38bdf8"
    assert canvas.config.brush_size == 15

    _sculpt(canvas, [[100, 60]])
    assert canvas.execute({"action": "undo"}) is True
    assert canvas.engine.layers.land_mask.alpha.max() == 0.0
    assert canvas.execute({"action": "redo"}) is True
    assert canvas.engine.layers.shallow_water.alpha.max() > 0


def test_named_colors_are_accepted(canvas):
    canvas.execute({"action": "set_config", "changes": {"terrain_color": "red"}})
    _sculpt(canvas, [[100, 60]])
    assert canvas.get_pixels_rgb(100, 60, 1, 1)[0][0] == [255, 0, 0]


def test_bad_label_color_is_rejected_before_recording(canvas):
    with pytest.raises(ValueError):
        canvas.execute({"action": "add_label", "text": "X", "x": 10, "y": 10,
                        "color": "not-a-color"})
    assert canvas.labels == []
    assert canvas.undo() is False


def test_failed_undo_keeps_history(canvas, monkeypatch):
    _sculpt(canvas, [[100, 60]])

    def broken_restore(*args, **kwargs):
        raise SnapshotError("boom")

    monkeypatch.setattr(canvas.engine, "restore", broken_restore)
    with pytest.raises(SnapshotError):
        canvas.undo()
    assert len(canvas._undo_stack) == 1
    assert canvas._redo_stack == []


def test_project_with_bad_color_is_rejected(canvas, tmp_path):
    path = tmp_path / "realm.json"
    canvas.execute({"action": "save_project", "path": str(path)})
    data = json.loads(path.read_text())
    data["state"]["oceanColor"] = "not-a-color"
    path.write_text(json.dumps(data))
    with pytest.raises(ProjectError):
        canvas.execute({"action": "load_project", "path": str(path)})
    assert canvas.config.ocean_color == "#1e3a8a"
