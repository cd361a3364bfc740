"""Decorative image assets and (optionally curved) text labels.

Both layers are redrawn from scratch from the lists the caller owns; the
renderer keeps no copy of them between calls.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import pygame

from mapsketch.compositing import parse_color
from mapsketch.images import ImageCache
from mapsketch.layers import RasterLayer

SELECTION_COLOR = (59, 130, 246)
OUTLINE_COLOR = (0, 0, 0)


@dataclass
class Asset:
    id: float
    src: str
    x: float
    y: float
    rotation: float = 0.0   # degrees, clockwise on screen
    scale: float = 1.0
    flip_x: bool = False
    width: int = 0          # 0 until the image has been loaded
    height: int = 0

    def to_dict(self) -> dict:
        return {"id": self.id, "src": self.src, "x": self.x, "y": self.y,
                "rotation": self.rotation, "scale": self.scale, "flipX": self.flip_x,
                "w": self.width, "h": self.height}

    @classmethod
    def from_dict(cls, d: dict) -> "Asset":
        return cls(id=d["id"], src=d["src"], x=d["x"], y=d["y"],
                   rotation=d.get("rotation", 0.0), scale=d.get("scale", 1.0),
                   flip_x=d.get("flipX", False), width=d.get("w", 0), height=d.get("h", 0))

    def contains(self, px: float, py: float) -> bool:
        """Hit test against the scaled, unrotated bounding box."""
        half_w = self.width * self.scale / 2
        half_h = self.height * self.scale / 2
        return (self.x - half_w <= px <= self.x + half_w
                and self.y - half_h <= py <= self.y + half_h)


@dataclass
class Label:
    id: float
    text: str
    x: float
    y: float
    rotation: float = 0.0   # degrees
    curvature: float = 0.0  # 0 = straight baseline
    size: int = 15
    color: str = "#ffffff"
    has_outline: bool = True

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "x": self.x, "y": self.y,
                "rotation": self.rotation, "curvature": self.curvature, "size": self.size,
                "color": self.color, "hasOutline": self.has_outline}

    @classmethod
    def from_dict(cls, d: dict) -> "Label":
        return cls(id=d["id"], text=d["text"], x=d["x"], y=d["y"],
                   rotation=d.get("rotation", 0.0), curvature=d.get("curvature", 0.0),
                   size=d.get("size", 15), color=d.get("color", "#ffffff"),
                   has_outline=d.get("hasOutline", True))

    @property
    def arc_radius(self) -> Optional[float]:
        if not self.curvature:
            return None
        return 1000 / (self.curvature / 10)


def _rgb(color: str) -> tuple:
    return tuple(round(c * 255) for c in parse_color(color)[:3])


def _rotate_point(px: float, py: float, angle: float) -> tuple[float, float]:
    """Rotate clockwise on screen (y down) by angle radians."""
    c, s = math.cos(angle), math.sin(angle)
    return px * c - py * s, px * s + py * c


def _dashed_rect(surface: pygame.Surface, color, rect: pygame.Rect, width: int, dash: int = 5):
    corners = [rect.topleft, rect.topright, rect.bottomright, rect.bottomleft]
    for (x1, y1), (x2, y2) in zip(corners, corners[1:] + corners[:1]):
        length = math.hypot(x2 - x1, y2 - y1)
        if length == 0:
            continue
        ux, uy = (x2 - x1) / length, (y2 - y1) / length
        pos = 0.0
        while pos < length:
            end = min(pos + dash, length)
            pygame.draw.line(surface, color, (x1 + ux * pos, y1 + uy * pos),
                             (x1 + ux * end, y1 + uy * end), width)
            pos += dash * 2


class AssetAndLabelRenderer:
    def __init__(self, asset_layer: RasterLayer, label_layer: RasterLayer,
                 images: ImageCache):
        self.asset_layer = asset_layer
        self.label_layer = label_layer
        self.images = images
        self._fonts: dict[int, pygame.font.Font] = {}

    # --- Assets ---

    def draw_assets(self, assets: Iterable[Asset], selected_id=None, active_tool: str = None):
        self.asset_layer.clear()
        for asset in assets:
            image = self.images.load(asset.src)
            selected = selected_id == asset.id and active_tool == "asset"
            sprite = self._asset_sprite(asset, image, selected)
            if sprite is None:
                continue
            sw, sh = sprite.get_size()
            self.asset_layer.blit(sprite, int(round(asset.x - sw / 2)), int(round(asset.y - sh / 2)))

    def _asset_sprite(self, asset: Asset, image: pygame.Surface, selected: bool):
        """Image plus optional selection box, flipped, scaled and rotated."""
        w, h = (asset.width, asset.height) if asset.width else image.get_size()
        if w <= 0 or h <= 0 or asset.scale <= 0:
            return None

        # Selection stroke is divided by scale so it ends up 2px on screen
        stroke = max(1, int(round(2 / asset.scale)))
        pad = 5 + stroke + 1
        local = pygame.Surface((w + pad * 2, h + pad * 2), pygame.SRCALPHA)
        local.blit(image, (pad, pad))
        if selected:
            box = pygame.Rect(pad - 5, pad - 5, w + 10, h + 10)
            _dashed_rect(local, SELECTION_COLOR, box, stroke)

        if asset.flip_x:
            local = pygame.transform.flip(local, True, False)
        lw, lh = local.get_size()
        size = (int(round(lw * asset.scale)), int(round(lh * asset.scale)))
        if size[0] <= 0 or size[1] <= 0:
            return None
        if size != (lw, lh):
            local = pygame.transform.smoothscale(local, size)
        return pygame.transform.rotate(local, -asset.rotation)

    # --- Labels ---

    def font(self, size: int) -> pygame.font.Font:
        font = self._fonts.get(size)
        if font is None:
            if not pygame.font.get_init():
                pygame.font.init()
            font = pygame.font.Font(None, max(1, int(size)))
            font.set_bold(True)
            self._fonts[size] = font
        return font

    def draw_labels(self, labels: Iterable[Label], selected_id=None, active_tool: str = None):
        self.label_layer.clear()
        for label in labels:
            font = self.font(label.size)
            angle = math.radians(label.rotation)
            if selected_id == label.id and active_tool == "text":
                self._selection_box(label, font, angle)
            if not label.curvature:
                self._blit_centered(self._glyph(label.text, label, font), label.x, label.y, angle)
            else:
                for glyph, gx, gy, ga in self.layout_curved(label, font):
                    self._blit_centered(glyph, gx, gy, ga)

    def layout_curved(self, label: Label, font: pygame.font.Font = None):
        """Yield (glyph surface, x, y, angle) for each character along the arc.

        The arc's centre sits ``arc_radius`` below the anchor (in the label's
        rotated frame) and the string is centred on the arc.
        """
        font = font or self.font(label.size)
        radius = label.arc_radius
        base = math.radians(label.rotation)
        cx, cy = _rotate_point(0, radius, base)
        cx, cy = label.x + cx, label.y + cy

        per_pixel = 1 / radius
        current = -(font.size(label.text)[0] / 2) * per_pixel
        for ch in label.text:
            char_w = font.size(ch)[0]
            angle = base + current + (char_w / 2) * per_pixel
            ox, oy = _rotate_point(0, -radius, angle)
            yield self._glyph(ch, label, font), cx + ox, cy + oy, angle
            current += char_w * per_pixel

    def _glyph(self, text: str, label: Label, font: pygame.font.Font) -> pygame.Surface:
        fill = font.render(text, True, _rgb(label.color))
        if not label.has_outline:
            return fill
        # Outline of width size/4, i.e. size/8 on each side of the glyph edge
        pad = max(1, int(math.ceil(label.size / 8)))
        outline = font.render(text, True, OUTLINE_COLOR)
        fw, fh = fill.get_size()
        glyph = pygame.Surface((fw + pad * 2, fh + pad * 2), pygame.SRCALPHA)
        for r in range(1, pad + 1):
            for step in range(16):
                a = step * math.pi / 8
                glyph.blit(outline, (pad + round(math.cos(a) * r), pad + round(math.sin(a) * r)))
        glyph.blit(fill, (pad, pad))
        return glyph

    def _selection_box(self, label: Label, font: pygame.font.Font, angle: float):
        tw = font.size(label.text)[0] + 10
        box = pygame.Surface((tw + 2, label.size + 2), pygame.SRCALPHA)
        pygame.draw.rect(box, SELECTION_COLOR, pygame.Rect(1, 1, tw, label.size), 1)
        self._blit_centered(box, label.x, label.y, angle)

    def _blit_centered(self, surface: pygame.Surface, x: float, y: float, angle: float):
        if surface.get_width() == 0 or surface.get_height() == 0:
            return
        if angle:
            surface = pygame.transform.rotate(surface, -math.degrees(angle))
        sw, sh = surface.get_size()
        self.label_layer.blit(surface, int(round(x - sw / 2)), int(round(y - sh / 2)))
