"""The fixed stack of raster layers that make up a map."""

from contextlib import contextmanager

import numpy as np
import pygame

from mapsketch.compositing import (
    OPERATIONS, SOURCE_OVER, composite_alpha, composite_rgba, clip_rect,
)


class _Layer:
    def __init__(self, name: str, width: int, height: int):
        self.name = name
        self.width = width
        self.height = height
        self.composite = SOURCE_OVER

    @contextmanager
    def compositing(self, op: str):
        """Temporarily switch the compositing operation, like ctx.save/restore."""
        if op not in OPERATIONS:
            raise ValueError(f"Unknown compositing operation: {op}")
        previous = self.composite
        self.composite = op
        try:
            yield self
        finally:
            self.composite = previous


class MaskLayer(_Layer):
    """Single-channel coverage raster (1.0 = covered)."""

    def __init__(self, name: str, width: int, height: int):
        super().__init__(name, width, height)
        self.alpha = np.zeros((height, width), dtype=np.float32)

    def resize(self, width: int, height: int):
        self.width, self.height = width, height
        self.alpha = np.zeros((height, width), dtype=np.float32)

    def clear(self, rect=None):
        if rect is None:
            self.alpha[:] = 0
        else:
            x0, y0, x1, y1 = rect
            self.alpha[y0:y1, x0:x1] = 0

    def apply(self, src_a: np.ndarray, x: int, y: int, color=None):
        """Composite an alpha patch with its top-left corner at (x, y).

        ``color`` is accepted for symmetry with :class:`RasterLayer`; masks
        only record coverage. Returns the touched rect or None.
        """
        h, w = src_a.shape
        rect = clip_rect(x, y, w, h, self.width, self.height)
        if rect is None:
            return None
        x0, y0, x1, y1 = rect
        patch = src_a[y0 - y:y1 - y, x0 - x:x1 - x]
        region = self.alpha[y0:y1, x0:x1]
        self.alpha[y0:y1, x0:x1] = composite_alpha(self.composite, region, patch)
        return rect

    def to_surface(self) -> pygame.Surface:
        """White surface whose alpha channel carries the mask."""
        rgba = np.empty((self.height, self.width, 4), dtype=np.uint8)
        rgba[..., :3] = 255
        rgba[..., 3] = np.round(np.clip(self.alpha, 0, 1) * 255).astype(np.uint8)
        return pygame.image.frombytes(rgba.tobytes(), (self.width, self.height), "RGBA")

    def load_surface(self, surface: pygame.Surface):
        """Replace the mask with the alpha channel of a surface drawn at the origin."""
        _, alpha = surface_to_arrays(surface)
        self.clear()
        h = min(self.height, alpha.shape[0])
        w = min(self.width, alpha.shape[1])
        self.alpha[:h, :w] = alpha[:h, :w]


class RasterLayer(_Layer):
    """RGBA raster stored as float arrays; converted to a pygame Surface on demand."""

    def __init__(self, name: str, width: int, height: int):
        super().__init__(name, width, height)
        self.rgb = np.zeros((height, width, 3), dtype=np.float32)
        self.alpha = np.zeros((height, width), dtype=np.float32)

    def resize(self, width: int, height: int):
        self.width, self.height = width, height
        self.rgb = np.zeros((height, width, 3), dtype=np.float32)
        self.alpha = np.zeros((height, width), dtype=np.float32)

    def clear(self, rect=None):
        if rect is None:
            self.rgb[:] = 0
            self.alpha[:] = 0
        else:
            x0, y0, x1, y1 = rect
            self.rgb[y0:y1, x0:x1] = 0
            self.alpha[y0:y1, x0:x1] = 0

    def apply(self, src_a: np.ndarray, x: int, y: int, color=(1.0, 1.0, 1.0), src_rgb=None):
        """Composite a patch with its top-left corner at (x, y).

        The patch is ``src_a`` tinted with a flat ``color``, or the full-color
        ``src_rgb`` when given. Returns the touched rect or None.
        """
        h, w = src_a.shape
        rect = clip_rect(x, y, w, h, self.width, self.height)
        if rect is None:
            return None
        x0, y0, x1, y1 = rect
        patch_a = src_a[y0 - y:y1 - y, x0 - x:x1 - x]
        if src_rgb is None:
            patch_rgb = np.asarray(color[:3], dtype=np.float32)
        else:
            patch_rgb = src_rgb[y0 - y:y1 - y, x0 - x:x1 - x]
        rgb, alpha = composite_rgba(self.composite,
                                    self.rgb[y0:y1, x0:x1], self.alpha[y0:y1, x0:x1],
                                    patch_rgb, patch_a)
        self.rgb[y0:y1, x0:x1] = rgb
        self.alpha[y0:y1, x0:x1] = alpha
        return rect

    def blit(self, surface: pygame.Surface, x: int, y: int):
        """Composite a pygame surface (text, images) onto the layer."""
        rgb, alpha = surface_to_arrays(surface)
        if alpha.size == 0:
            return None
        return self.apply(alpha, x, y, src_rgb=rgb)

    def to_surface(self) -> pygame.Surface:
        rgba = np.empty((self.height, self.width, 4), dtype=np.uint8)
        rgba[..., :3] = np.round(np.clip(self.rgb, 0, 1) * 255).astype(np.uint8)
        rgba[..., 3] = np.round(np.clip(self.alpha, 0, 1) * 255).astype(np.uint8)
        return pygame.image.frombytes(rgba.tobytes(), (self.width, self.height), "RGBA")

    def load_surface(self, surface: pygame.Surface):
        """Clear, then draw a decoded image at the origin."""
        rgb, alpha = surface_to_arrays(surface)
        self.clear()
        h = min(self.height, alpha.shape[0])
        w = min(self.width, alpha.shape[1])
        self.rgb[:h, :w] = rgb[:h, :w]
        self.alpha[:h, :w] = alpha[:h, :w]


def surface_to_arrays(surface: pygame.Surface) -> tuple[np.ndarray, np.ndarray]:
    """Return float (rgb, alpha) arrays in row-major (H, W) order."""
    w, h = surface.get_size()
    if w == 0 or h == 0:
        return (np.zeros((h, w, 3), dtype=np.float32),
                np.zeros((h, w), dtype=np.float32))
    raw = np.frombuffer(pygame.image.tobytes(surface, "RGBA"), dtype=np.uint8)
    rgba = raw.reshape((h, w, 4)).astype(np.float32) / 255.0
    return rgba[..., :3], rgba[..., 3]


class LayerStack:
    """All layers of one map, allocated and resized together."""

    # Visible layers in export z-order (bottom first).
    VISIBLE_ORDER = ("shallow_water", "terrain", "texture", "path", "assets", "labels")

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.land_mask = MaskLayer("land_mask", width, height)
        self.texture_mask = MaskLayer("texture_mask", width, height)
        self.terrain = RasterLayer("terrain", width, height)
        self.texture = RasterLayer("texture", width, height)
        self.shallow_water = RasterLayer("shallow_water", width, height)
        self.path = RasterLayer("path", width, height)
        self.assets = RasterLayer("assets", width, height)
        self.labels = RasterLayer("labels", width, height)

    def all_layers(self) -> list:
        return [self.land_mask, self.texture_mask] + list(self.visible())

    def visible(self):
        for name in self.VISIBLE_ORDER:
            yield getattr(self, name)

    def resize(self, width: int, height: int):
        """Reallocate every layer. Content is discarded."""
        self.width, self.height = width, height
        for layer in self.all_layers():
            layer.resize(width, height)

    def clear(self):
        for layer in self.all_layers():
            layer.clear()
