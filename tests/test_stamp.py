import math
import random

import numpy as np
import pytest

from mapsketch.layers import MaskLayer, RasterLayer
from mapsketch.stamp import StampGenerator, StampKey, StampRenderer, stamp_size


def _distances(size: int) -> np.ndarray:
    ys, xs = np.mgrid[0:size, 0:size]
    center = size / 2
    return np.hypot(xs + 0.5 - center, ys + 0.5 - center)


def test_stamp_size_leaves_room_for_jitter():
    assert stamp_size(15) == 75
    assert stamp_size(1) == 5


def test_generate_reuses_cached_mask():
    gen = StampGenerator(random.Random(1))
    first = gen.generate(10, 40, 50)
    assert gen.generate(10, 40, 50) is first
    assert gen.key == StampKey(10, 40, 50)


def test_generate_rebuilds_on_any_key_change():
    gen = StampGenerator(random.Random(1))
    first = gen.generate(10, 40, 50)
    for args in ((11, 40, 50), (10, 41, 50), (10, 40, 51)):
        other = gen.generate(*args)
        assert other is not first
        first = other


def test_generate_rejects_non_positive_radius():
    gen = StampGenerator()
    with pytest.raises(ValueError):
        gen.generate(0, 40, 50)


def test_hard_edge_rough_stamp_is_binary_and_bounded():
    gen = StampGenerator(random.Random(7))
    mask = gen.generate(15, 40, 100)
    assert mask.shape == (75, 75)
    assert set(np.unique(mask)) <= {0.0, 1.0}
    dist = _distances(75)
    assert mask[37, 37] == 1.0
    assert dist[mask > 0].max() <= 15 * 1.5
    # Rough but never smaller than the minimum jittered radius
    assert mask[dist <= 15 - 4.5 - 1].min() == 1.0


def test_round_stamp_has_radial_gradient():
    gen = StampGenerator(random.Random(0))
    mask = gen.generate(10, 0, 50)
    dist = _distances(mask.shape[0])
    assert np.all(mask[dist > 10] == 0)
    c = mask.shape[0] // 2
    assert mask[c, c] > mask[c, c + 4] > mask[c, c + 8] > 0
    assert mask.max() <= 1.0


def test_round_hard_stamp_is_a_disc():
    gen = StampGenerator(random.Random(0))
    mask = gen.generate(10, 0, 95)
    dist = _distances(mask.shape[0])
    assert np.array_equal(mask > 0, dist <= 10)


def test_draw_stamp_centres_and_scales_by_opacity():
    layer = MaskLayer("mask", 100, 100)
    renderer = StampRenderer(StampGenerator(random.Random(0)), random.Random(0))
    rect = renderer.draw_stamp(layer, 50, 50, 10, "white", 0.5, 0, 100, rotation=0.0)
    assert rect == (25, 25, 75, 75)
    assert layer.alpha[50, 50] == pytest.approx(0.5)
    assert layer.alpha[50, 65] == 0.0
    assert layer.alpha[50, 45] == pytest.approx(0.5)


def test_draw_stamp_overrides_win_over_config():
    gen = StampGenerator(random.Random(0))
    renderer = StampRenderer(gen, random.Random(0))
    layer = MaskLayer("mask", 100, 100)
    renderer.draw_stamp(layer, 50, 50, 10, "white", 1.0, 60, 20,
                        roughness_override=0, falloff_override=100, rotation=0.0)
    assert gen.key == StampKey(10, 0, 100)


def test_draw_stamp_tints_raster_layers():
    layer = RasterLayer("terrain", 60, 60)
    renderer = StampRenderer(StampGenerator(random.Random(0)), random.Random(0))
    renderer.draw_stamp(layer, 30, 30, 8, "#ff0000", 1.0, 0, 100, rotation=0.0)
    assert np.allclose(layer.rgb[30, 30], (1.0, 0.0, 0.0))
    assert layer.alpha[30, 30] == pytest.approx(1.0)


def test_draw_stamp_off_canvas_returns_none():
    layer = MaskLayer("mask", 40, 40)
    renderer = StampRenderer(StampGenerator(random.Random(0)), random.Random(0))
    assert renderer.draw_stamp(layer, -200, -200, 5, "white", 1.0, 0, 100) is None
    assert layer.alpha.max() == 0.0


def test_rotation_turns_the_footprint():
    gen = StampGenerator(random.Random(3))
    renderer = StampRenderer(gen, random.Random(0))
    a = MaskLayer("a", 120, 120)
    b = MaskLayer("b", 120, 120)
    renderer.draw_stamp(a, 60, 60, 20, "white", 1.0, 80, 100, rotation=0.0)
    renderer.draw_stamp(b, 60, 60, 20, "white", 1.0, 80, 100, rotation=math.pi)
    # Same cached blob, half a turn apart
    assert not np.array_equal(a.alpha > 0.5, b.alpha > 0.5)
    assert (a.alpha > 0.5).sum() == pytest.approx((b.alpha > 0.5).sum(), rel=0.05)
