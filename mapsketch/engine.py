"""MapEngine: binds the layer stack to the brushes and renderers.

Every draw call made before :meth:`MapEngine.init` is a silent no-op, so a
caller racing initialization never crashes.
"""

import logging
import random
import re
from typing import Iterable, Optional

import numpy as np
import pygame

from mapsketch.annotations import Asset, AssetAndLabelRenderer, Label
from mapsketch.compositing import SOURCE_OVER, composite_rgba, parse_color, tile_pattern
from mapsketch.config import ToolConfig
from mapsketch.images import ImageCache, encode_image
from mapsketch.layers import LayerStack, surface_to_arrays
from mapsketch.paint import PaintEngine, RiverSettings
from mapsketch.paths import PathTracer
from mapsketch.shallow_water import ShallowWaterSynthesizer
from mapsketch.snapshot import Snapshot, SnapshotCodec
from mapsketch.stamp import StampGenerator, StampRenderer
from mapsketch.texture import TextureCompositor

logger = logging.getLogger(__name__)


def export_filename(name: str) -> str:
    stem = re.sub(r"\s+", "_", name)
    return f"{stem}_export.jpg"


class MapEngine:
    def __init__(self, rng: Optional[random.Random] = None,
                 river_settings: RiverSettings = RiverSettings()):
        self.rng = rng or random.Random()
        self.river_settings = river_settings
        self.images = ImageCache()
        self.stamps = StampRenderer(StampGenerator(self.rng), self.rng)
        self.layers: Optional[LayerStack] = None
        self.textures: Optional[TextureCompositor] = None
        self.painter: Optional[PaintEngine] = None
        self.paths: Optional[PathTracer] = None
        self.water: Optional[ShallowWaterSynthesizer] = None
        self.annotations: Optional[AssetAndLabelRenderer] = None
        self.codec: Optional[SnapshotCodec] = None
        self._texture_src: Optional[str] = None

    @property
    def initialized(self) -> bool:
        return self.layers is not None

    @property
    def size(self) -> tuple[int, int]:
        if self.layers is None:
            return 0, 0
        return self.layers.width, self.layers.height

    def init(self, width: int, height: int):
        """Allocate all layers (cleared) at the given map size."""
        self.layers = LayerStack(width, height)
        self.textures = TextureCompositor(self.layers)
        if self._texture_src:
            self.textures.set_pattern(self.images.load(self._texture_src))
        self.painter = PaintEngine(self.layers, self.stamps, self.textures, self.rng,
                                   self.river_settings)
        self.paths = PathTracer(self.layers.path)
        self.water = ShallowWaterSynthesizer(self.layers)
        self.annotations = AssetAndLabelRenderer(self.layers.assets, self.layers.labels,
                                                 self.images)
        self.codec = SnapshotCodec(self.layers, self.textures)
        logger.info("Map initialised at %dx%d", width, height)

    def resize(self, width: int, height: int):
        """Resize every layer; content is lost and must be restored by the caller."""
        if self.layers is not None:
            self.layers.resize(width, height)

    def clear(self):
        if self.layers is not None:
            self.layers.clear()

    # --- Painting ---

    def begin_stroke(self, x: float = 0.0, y: float = 0.0):
        if self.layers is None:
            return
        self.paths.reset()
        self.painter.river.reset(x, y)

    def end_stroke(self):
        if self.layers is None:
            return
        self.paths.reset()

    def apply_paint(self, x: float, y: float, config: ToolConfig):
        if self.layers is None:
            return
        self.painter.apply_paint(x, y, config)

    def draw_path_segment(self, x1: float, y1: float, x2: float, y2: float,
                          config: ToolConfig) -> list:
        if self.layers is None:
            return []
        return self.paths.draw_segment(x1, y1, x2, y2, config)

    # --- Derived layers ---

    def set_texture(self, src: Optional[str]):
        """Select the pattern used by texture painting (None disables it)."""
        self._texture_src = src
        if self.layers is None:
            return
        self.textures.set_pattern(self.images.load(src) if src else None)
        self.textures.render()

    def update_shallow_water(self, color: str, enabled: bool):
        if self.layers is None:
            return
        self.water.update(color, enabled)

    def load_asset_image(self, src: str) -> pygame.Surface:
        return self.images.load(src)

    def draw_assets(self, assets: Iterable[Asset], selected_id=None, active_tool: str = None):
        if self.layers is None:
            return
        self.annotations.draw_assets(assets, selected_id, active_tool)

    def draw_labels(self, labels: Iterable[Label], selected_id=None, active_tool: str = None):
        if self.layers is None:
            return
        self.annotations.draw_labels(labels, selected_id, active_tool)

    # --- Snapshots ---

    def capture(self) -> Optional[Snapshot]:
        if self.layers is None:
            return None
        return self.codec.capture()

    def restore(self, snapshot: Snapshot, width: Optional[int] = None,
                height: Optional[int] = None):
        """Restore paint layers; raises SnapshotError and keeps state on bad data."""
        if self.layers is None:
            if not (width and height):
                return
            # Decode before allocating so a bad snapshot leaves the engine uninitialised
            decoded = SnapshotCodec.decode(snapshot)
            self.init(width, height)
            self.codec.apply(decoded, width, height)
            return
        self.codec.restore(snapshot, width, height)

    # --- Output ---

    def composite(self, ocean_color: str, ocean_texture: Optional[str] = None) -> pygame.Surface:
        """Flatten all visible layers over the ocean into an opaque surface."""
        width, height = self.size
        r, g, b, _ = parse_color(ocean_color)
        rgb = np.empty((height, width, 3), dtype=np.float32)
        rgb[:] = (r, g, b)
        alpha = np.ones((height, width), dtype=np.float32)

        if ocean_texture:
            image = self.images.load(ocean_texture)
            if image.get_width() and image.get_height():
                p_rgb, p_a = tile_pattern(*surface_to_arrays(image), 0, 0, width, height)
                rgb, alpha = composite_rgba(SOURCE_OVER, rgb, alpha, p_rgb, p_a)

        if self.layers is not None:
            for layer in self.layers.visible():
                rgb, alpha = composite_rgba(SOURCE_OVER, rgb, alpha, layer.rgb, layer.alpha)

        out = np.round(np.clip(rgb, 0, 1) * 255).astype(np.uint8)
        return pygame.image.frombytes(out.tobytes(), (width, height), "RGB")

    def export_image(self, ocean_color: str, ocean_texture: Optional[str] = None) -> Optional[bytes]:
        """JPEG bytes of the flattened map, or None before init."""
        if self.layers is None:
            return None
        return encode_image(self.composite(ocean_color, ocean_texture), "jpg")
