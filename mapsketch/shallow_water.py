"""Soft colored halo hugging the coastline.

The halo is a blurred copy of the land silhouette, laid down in two bands:
a solid shelf (three stacked passes of a moderate blur) and a faint outer
fade (one wide blur at lower opacity). Blur radii follow the 2D canvas
shadow-blur convention, where a blur of ``b`` is a Gaussian of sigma ``b/2``.
"""

import logging
from dataclasses import dataclass

import numpy as np

from mapsketch.compositing import SOURCE_OVER, composite_rgba, gaussian_blur, parse_color
from mapsketch.layers import LayerStack

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShallowWaterSettings:
    shelf_blur: float = 35
    shelf_passes: int = 3
    shelf_opacity: float = 1.0
    fade_blur: float = 80
    fade_opacity: float = 0.4


class ShallowWaterSynthesizer:
    def __init__(self, layers: LayerStack, settings: ShallowWaterSettings = ShallowWaterSettings()):
        self.layers = layers
        self.settings = settings

    def update(self, glow_color: str, enabled: bool):
        layer = self.layers.shallow_water
        layer.clear()
        if not enabled:
            return

        land = self.layers.land_mask.alpha
        r, g, b, a = parse_color(glow_color)
        color = np.array((r, g, b), dtype=np.float32)
        s = self.settings

        shelf = gaussian_blur(land, s.shelf_blur / 2) * (s.shelf_opacity * a)
        fade = gaussian_blur(land, s.fade_blur / 2) * (s.fade_opacity * a)
        passes = [shelf] * s.shelf_passes + [fade]

        rgb, alpha = layer.rgb, layer.alpha
        with layer.compositing(SOURCE_OVER):
            for band in passes:
                rgb, alpha = composite_rgba(layer.composite, rgb, alpha, color, band)
        layer.rgb[:] = rgb
        layer.alpha[:] = alpha
        logger.debug("Shallow water updated (%s)", glow_color)
