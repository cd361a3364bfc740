"""Brush dabs for the terrain, river and texture paint modes."""

import math
import random
from dataclasses import dataclass
from typing import Optional

from mapsketch.compositing import DESTINATION_OUT, SOURCE_ATOP, SOURCE_OVER
from mapsketch.config import ToolConfig
from mapsketch.layers import LayerStack
from mapsketch.stamp import StampRenderer
from mapsketch.texture import TextureCompositor


@dataclass(frozen=True)
class RiverSettings:
    """Tuning constants for organic river width."""
    min_factor: float = 0.6
    max_factor: float = 1.1
    min_interval: float = 20.0
    max_interval: float = 60.0
    blend_rate: float = 0.15


@dataclass
class RiverState:
    current_width_factor: float = 1.0
    target_width_factor: float = 1.0
    distance_to_next_change: float = 0.0
    traveled_since_change: float = 0.0
    last_x: float = 0.0
    last_y: float = 0.0

    def reset(self, x: float = 0.0, y: float = 0.0):
        """Start a new stroke at (x, y); the next dab picks a fresh target."""
        self.current_width_factor = 1.0
        self.target_width_factor = 1.0
        self.distance_to_next_change = 0.0
        self.traveled_since_change = 0.0
        self.last_x, self.last_y = x, y

    def advance(self, x: float, y: float, rng: random.Random,
                settings: RiverSettings = RiverSettings()) -> float:
        """Step the smoothed random walk for a dab at (x, y); returns the width factor."""
        self.traveled_since_change += math.hypot(x - self.last_x, y - self.last_y)
        if self.traveled_since_change >= self.distance_to_next_change:
            self.target_width_factor = rng.uniform(settings.min_factor, settings.max_factor)
            self.distance_to_next_change = rng.uniform(settings.min_interval,
                                                       settings.max_interval)
            self.traveled_since_change = 0.0
        self.current_width_factor += ((self.target_width_factor - self.current_width_factor)
                                      * settings.blend_rate)
        return self.current_width_factor


class PaintEngine:
    """Applies one dab per pointer sample to the land/texture masks and visible layers."""

    # Dirty square half-size, in brush radii; covers the stamp's widest jitter.
    DIRTY_SCALE = 3

    def __init__(self, layers: LayerStack, stamps: StampRenderer,
                 textures: TextureCompositor, rng: Optional[random.Random] = None,
                 river_settings: RiverSettings = RiverSettings()):
        self.layers = layers
        self.stamps = stamps
        self.textures = textures
        self.rng = rng or random.Random()
        self.river_settings = river_settings
        self.river = RiverState()

    def apply_paint(self, x: float, y: float, config: ToolConfig):
        mode = config.paint_mode
        radius = config.brush_size
        if radius > 0:
            if mode == "terrain":
                self._paint_terrain(x, y, radius, config)
            elif mode == "river":
                self._paint_river(x, y, radius, config)
            elif mode == "texture":
                self._paint_texture(x, y, radius, config)
        self.river.last_x, self.river.last_y = x, y

    def _paint_terrain(self, x: float, y: float, radius: float, config: ToolConfig):
        # One angle for both draws, or the mask and the visible land drift apart
        rotation = self.rng.random() * math.pi * 2
        with self.layers.land_mask.compositing(SOURCE_OVER):
            self.stamps.draw_stamp(self.layers.land_mask, x, y, radius, "white", 1.0,
                                   config.edge_roughness, config.falloff_width,
                                   falloff_override=95, rotation=rotation)
        with self.layers.terrain.compositing(SOURCE_OVER):
            self.stamps.draw_stamp(self.layers.terrain, x, y, radius, config.terrain_color,
                                   config.opacity, config.edge_roughness, config.falloff_width,
                                   falloff_override=95, rotation=rotation)
        self.textures.render(x, y, radius * self.DIRTY_SCALE)

    def _paint_river(self, x: float, y: float, radius: float, config: ToolConfig):
        if config.organic_river:
            radius *= self.river.advance(x, y, self.rng, self.river_settings)
        rotation = self.rng.random() * math.pi * 2
        for layer in (self.layers.land_mask, self.layers.terrain):
            with layer.compositing(DESTINATION_OUT):
                self.stamps.draw_stamp(layer, x, y, radius, "black", 1.0,
                                       config.edge_roughness, config.falloff_width,
                                       falloff_override=100, rotation=rotation)
        self.textures.render(x, y, radius * self.DIRTY_SCALE)

    def _paint_texture(self, x: float, y: float, radius: float, config: ToolConfig):
        if self.textures.has_pattern:
            op = DESTINATION_OUT if config.texture_eraser else SOURCE_OVER
            with self.layers.texture_mask.compositing(op):
                self.stamps.draw_stamp(self.layers.texture_mask, x, y, radius, "white",
                                       config.opacity, config.edge_roughness,
                                       config.falloff_width,
                                       roughness_override=0, falloff_override=100)
            self.textures.render(x, y, radius * self.DIRTY_SCALE)
        else:
            # Flat color straight onto existing land; no mask involved
            with self.layers.terrain.compositing(SOURCE_ATOP):
                self.stamps.draw_stamp(self.layers.terrain, x, y, radius, config.flat_color,
                                       config.opacity, config.edge_roughness,
                                       config.falloff_width, roughness_override=0)
