"""Procedural brush stamps ("stochastic" blobs) and the renderer that tints them."""

import logging
import math
import random
from typing import NamedTuple, Optional

import numpy as np
import pygame

from mapsketch.compositing import DESTINATION_IN, composite_rgba, parse_color, rotate_alpha

logger = logging.getLogger(__name__)


class StampKey(NamedTuple):
    radius: float
    roughness: float
    falloff_width: float


def stamp_size(radius: float) -> int:
    """Side of the square stamp canvas; leaves room for the largest jitter."""
    return math.ceil((radius * 1.5 + radius) * 2)


class StampGenerator:
    """Builds the alpha mask for one brush footprint.

    Only the most recent stamp is kept: strokes draw hundreds of dabs with the
    same parameters, so a single slot is all the cache ever needs.
    """

    POINTS = 40           # vertices around a rough blob
    HOLD = 3              # a new radius is drawn on every third vertex
    HARD_EDGE = 95        # falloff percentages at or above this have no gradient

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self._cached: Optional[tuple[StampKey, np.ndarray]] = None

    @property
    def key(self) -> Optional[StampKey]:
        return self._cached[0] if self._cached else None

    def generate(self, radius: float, roughness: float, falloff_width: float) -> np.ndarray:
        """Return the stamp mask for these parameters, regenerating only on a key change.

        roughness and falloff_width are percentages in [0, 100]; they are not
        clamped here.
        """
        if radius <= 0:
            raise ValueError(f"Stamp radius must be positive, got {radius}")
        key = StampKey(radius, roughness, falloff_width)
        if self._cached is not None and self._cached[0] == key:
            return self._cached[1]
        mask = self._build(key)
        self._cached = (key, mask)
        logger.debug("Regenerated stamp %s (%dpx)", key, mask.shape[0])
        return mask

    def _build(self, key: StampKey) -> np.ndarray:
        radius = key.radius
        size = stamp_size(radius)
        center = size / 2

        # Distance of every pixel centre from the stamp centre
        ys, xs = np.mgrid[0:size, 0:size].astype(np.float32)
        dist = np.hypot(xs + 0.5 - center, ys + 0.5 - center)

        if key.roughness > 0:
            jitter = (key.roughness / 100) * radius * 1.5
            coverage = self._blob_coverage(size, center, radius, jitter)
            edge = radius + jitter / 2
        else:
            coverage = (dist <= radius).astype(np.float32)
            edge = radius

        if key.falloff_width >= self.HARD_EDGE:
            return coverage
        # Radial gradient: opaque at the centre, transparent at the edge radius
        gradient = np.clip(1.0 - dist / edge, 0.0, 1.0)
        return (coverage * gradient).astype(np.float32)

    def _blob_coverage(self, size: int, center: float, radius: float,
                       jitter: float) -> np.ndarray:
        """Rasterize the irregular outline into a 0/1 coverage array."""
        points = []
        r = radius
        for i in range(self.POINTS + 1):
            angle = (i / self.POINTS) * math.pi * 2
            # Coarse jitter: hold each sampled radius for the next two vertices
            if i % self.HOLD == 0:
                r = radius + (self.rng.random() - 0.5) * jitter
            points.append((center + math.cos(angle) * r, center + math.sin(angle) * r))

        surface = pygame.Surface((size, size), pygame.SRCALPHA)
        pygame.draw.polygon(surface, (255, 255, 255, 255), points)
        alpha = pygame.surfarray.array_alpha(surface)  # (W, H)
        return (alpha.T > 0).astype(np.float32)


class StampRenderer:
    """Tints the current stamp and composites it onto a layer.

    The target layer's ``composite`` operation is used as-is; callers switch
    it (e.g. to destination-out for erasing) around the call.
    """

    def __init__(self, generator: Optional[StampGenerator] = None,
                 rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.generator = generator or StampGenerator(self.rng)
        self._tint_rgb = np.zeros((0, 0, 3), dtype=np.float32)
        self._tint_a = np.zeros((0, 0), dtype=np.float32)

    def _tint_buffer(self, size: int):
        # Grows only; smaller stamps reuse the top-left corner
        if self._tint_a.shape[0] < size:
            self._tint_rgb = np.zeros((size, size, 3), dtype=np.float32)
            self._tint_a = np.zeros((size, size), dtype=np.float32)
        return self._tint_rgb[:size, :size], self._tint_a[:size, :size]

    def draw_stamp(self, target, x: float, y: float, radius: float, color,
                   opacity: float, roughness: float, falloff_width: float,
                   roughness_override: Optional[float] = None,
                   falloff_override: Optional[float] = None,
                   rotation: Optional[float] = None):
        """Draw one dab centred at (x, y). Returns the touched rect or None.

        rotation is in radians; a random angle is used when it is None.
        """
        rough = roughness if roughness_override is None else roughness_override
        falloff = falloff_width if falloff_override is None else falloff_override
        mask = self.generator.generate(radius, rough, falloff)
        size = mask.shape[0]

        r, g, b, a = parse_color(color)
        tint_rgb, tint_a = self._tint_buffer(size)
        tint_rgb[:] = (r, g, b)
        tint_a[:] = a
        # Keep the color only where the stamp is
        _, masked = composite_rgba(DESTINATION_IN, tint_rgb, tint_a, tint_rgb, mask)

        if rotation is None:
            rotation = self.rng.random() * math.pi * 2
        stamp_alpha = rotate_alpha(masked, rotation) * opacity

        left = int(math.floor(x - size / 2 + 0.5))
        top = int(math.floor(y - size / 2 + 0.5))
        return target.apply(stamp_alpha, left, top, color=(r, g, b))
