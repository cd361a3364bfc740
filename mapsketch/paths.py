"""Dotted and dashed path strokes with even spacing across pointer segments."""

import math

import numpy as np

from mapsketch.compositing import SOURCE_OVER, parse_color
from mapsketch.config import ToolConfig
from mapsketch.layers import RasterLayer


class PathTracer:
    MIN_SEGMENT = 0.5     # shorter pointer moves are ignored
    DASH_THICKNESS = 2.5  # dash thickness = brush size / this

    def __init__(self, layer: RasterLayer):
        self.layer = layer
        # Distance into the next segment where the following mark lands
        self.remainder = 0.0

    def reset(self):
        self.remainder = 0.0

    def draw_segment(self, x1: float, y1: float, x2: float, y2: float,
                     config: ToolConfig) -> list[tuple[float, float]]:
        """Place marks along the segment and return their centres."""
        dx, dy = x2 - x1, y2 - y1
        dist = math.hypot(dx, dy)
        if dist < self.MIN_SEGMENT:
            return []

        spacing = max(1.0, config.brush_size * config.path_spacing)
        nx, ny = dx / dist, dy / dist
        angle = math.atan2(dy, dx)
        color = parse_color(config.path_color)
        opacity = config.opacity * color[3]

        placed = []
        current = self.remainder
        while current <= dist:
            cx, cy = x1 + nx * current, y1 + ny * current
            self._mark(cx, cy, angle, config, color, opacity)
            placed.append((cx, cy))
            current += spacing

        self.remainder = current - dist
        return placed

    def _mark(self, cx: float, cy: float, angle: float, config: ToolConfig,
              color: tuple, opacity: float):
        size = config.brush_size
        if config.path_style == "dashed":
            half_w = size / 2
            half_h = size / self.DASH_THICKNESS / 2
        else:
            half_w = half_h = size / 2
        # A rotated dash reaches out to its corner
        extent = int(math.ceil(math.hypot(half_w, half_h))) + 1

        left = int(math.floor(cx)) - extent
        top = int(math.floor(cy)) - extent
        span = 2 * extent + 1
        ys, xs = np.mgrid[top:top + span, left:left + span].astype(np.float32)
        # Pixel centres relative to the mark centre
        px = xs + 0.5 - cx
        py = ys + 0.5 - cy

        if config.path_style == "dashed":
            # Rotate into the dash's local frame
            cos_d, sin_d = math.cos(angle), math.sin(angle)
            lx = px * cos_d + py * sin_d
            ly = -px * sin_d + py * cos_d
            inside = (np.abs(lx) <= half_w) & (np.abs(ly) <= half_h)
        else:
            inside = px * px + py * py <= half_w * half_w

        coverage = inside.astype(np.float32) * opacity
        with self.layer.compositing(SOURCE_OVER):
            self.layer.apply(coverage, left, top, color=color)
