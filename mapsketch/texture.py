"""Rebuilds the visible texture fill from pattern x texture mask x land mask."""

import logging
import math
from typing import Optional

import numpy as np
import pygame

from mapsketch.compositing import clip_rect, tile_pattern
from mapsketch.layers import LayerStack, surface_to_arrays

logger = logging.getLogger(__name__)


class TextureCompositor:
    def __init__(self, layers: LayerStack):
        self.layers = layers
        self._pattern: Optional[tuple[np.ndarray, np.ndarray]] = None

    @property
    def has_pattern(self) -> bool:
        return self._pattern is not None

    def set_pattern(self, image: Optional[pygame.Surface]):
        """Use image as the repeating fill; None (or an empty image) disables it."""
        if image is None or image.get_width() == 0 or image.get_height() == 0:
            self._pattern = None
        else:
            self._pattern = surface_to_arrays(image)

    def dirty_rect(self, x: Optional[float] = None, y: Optional[float] = None,
                   radius: Optional[float] = None):
        """Canvas rect to recompute: the whole map, or a square around a dab."""
        width, height = self.layers.width, self.layers.height
        if x is None or y is None or radius is None:
            return 0, 0, width, height
        left = math.floor(x - radius)
        top = math.floor(y - radius)
        size = math.ceil(radius * 2)
        return clip_rect(left, top, size, size, width, height)

    def render(self, x: Optional[float] = None, y: Optional[float] = None,
               radius: Optional[float] = None):
        """Recompute the texture layer, optionally only around (x, y).

        Returns the recomputed rect, or None when the dirty square is off-canvas.
        """
        rect = self.dirty_rect(x, y, radius)
        if rect is None:
            return None
        if x is None:
            logger.debug("Full texture recompute (%dx%d)", rect[2], rect[3])
        layer = self.layers.texture
        layer.clear(rect)
        if self._pattern is None:
            return rect

        x0, y0, x1, y1 = rect
        rgb, alpha = tile_pattern(*self._pattern, x0, y0, x1, y1)
        alpha = (alpha
                 * self.layers.texture_mask.alpha[y0:y1, x0:x1]
                 * self.layers.land_mask.alpha[y0:y1, x0:x1])
        layer.rgb[y0:y1, x0:x1] = rgb
        layer.alpha[y0:y1, x0:x1] = alpha
        return rect
