import random

import numpy as np
import pytest

from helpers import solid_image
from mapsketch.engine import MapEngine
from mapsketch.errors import SnapshotError
from mapsketch.snapshot import Snapshot

TOLERANCE = 1 / 255 + 1e-6


def _paint_scene(engine, config):
    config.update(paint_mode="terrain", brush_size=25, edge_roughness=30, brush_opacity=80)
    engine.begin_stroke(60, 60)
    for x in range(60, 140, 5):
        engine.apply_paint(x, 60, config)
    config.update(paint_mode="path", brush_size=4)
    engine.begin_stroke(20, 20)
    engine.draw_path_segment(20, 20, 180, 100, config)
    engine.textures.set_pattern(solid_image((200, 50, 50, 255)))
    config.update(paint_mode="texture", brush_size=15, brush_opacity=60)
    engine.apply_paint(100, 60, config)


def _arrays(engine):
    layers = engine.layers
    return {
        "land": layers.land_mask.alpha.copy(),
        "texture_mask": layers.texture_mask.alpha.copy(),
        "terrain_a": layers.terrain.alpha.copy(),
        "terrain_rgb": layers.terrain.rgb.copy(),
        "path_a": layers.path.alpha.copy(),
        "texture_a": layers.texture.alpha.copy(),
    }


def test_capture_restore_round_trip(engine, config):
    _paint_scene(engine, config)
    before = _arrays(engine)
    snapshot = engine.capture()

    engine.clear()
    assert engine.layers.land_mask.alpha.max() == 0.0
    engine.restore(snapshot)

    after = _arrays(engine)
    for key in ("land", "texture_mask", "terrain_a", "path_a", "texture_a"):
        assert np.allclose(after[key], before[key], atol=TOLERANCE), key
    shown = before["terrain_a"] > 0
    assert np.allclose(after["terrain_rgb"][shown], before["terrain_rgb"][shown], atol=TOLERANCE)


def test_snapshot_is_png(engine):
    snapshot = engine.capture()
    for blob in (snapshot.land_mask, snapshot.terrain, snapshot.path, snapshot.texture_mask):
        assert blob.startswith(b"\x89PNG")


def test_malformed_snapshot_leaves_layers_untouched(engine, config):
    _paint_scene(engine, config)
    before = _arrays(engine)
    good = engine.capture()
    bad = Snapshot(land_mask=good.land_mask, terrain=good.terrain, path=b"not an image",
                   texture_mask=good.texture_mask)

    with pytest.raises(SnapshotError):
        engine.restore(bad, 400, 300)
    assert engine.size == (200, 120)
    after = _arrays(engine)
    for key, value in before.items():
        assert np.array_equal(after[key], value), key


def test_empty_blob_is_rejected(engine):
    good = engine.capture()
    with pytest.raises(SnapshotError):
        engine.restore(Snapshot(land_mask=b"", terrain=good.terrain, path=good.path))


def test_restore_resizes_to_snapshot_dimensions(config):
    source = MapEngine(random.Random(2))
    source.init(160, 90)
    _paint_scene(source, config)
    snapshot = source.capture()

    target = MapEngine(random.Random(3))
    target.init(80, 40)
    target.restore(snapshot, 160, 90)
    assert target.size == (160, 90)
    assert np.allclose(target.layers.land_mask.alpha, source.layers.land_mask.alpha,
                       atol=TOLERANCE)


def test_restore_before_init_initialises(engine, config):
    _paint_scene(engine, config)
    snapshot = engine.capture()
    fresh = MapEngine(random.Random(0))
    fresh.restore(snapshot)
    assert not fresh.initialized
    fresh.restore(snapshot, 200, 120)
    assert fresh.size == (200, 120)
    assert fresh.layers.land_mask.alpha.max() == 1.0


def test_legacy_snapshot_without_texture_mask(engine, config):
    _paint_scene(engine, config)
    snapshot = engine.capture()
    legacy = Snapshot(land_mask=snapshot.land_mask, terrain=snapshot.terrain,
                      path=snapshot.path)
    engine.restore(legacy)
    assert engine.layers.texture_mask.alpha.max() == 0.0
    assert engine.layers.texture.alpha.max() == 0.0
    assert engine.layers.land_mask.alpha.max() == 1.0


def test_bad_snapshot_before_init_stays_uninitialised(engine):
    good = engine.capture()
    fresh = MapEngine(random.Random(0))
    with pytest.raises(SnapshotError):
        fresh.restore(Snapshot(land_mask=good.land_mask, terrain=b"junk", path=good.path),
                      200, 120)
    assert not fresh.initialized
    assert fresh.size == (0, 0)
