"""Per-pixel compositing on float arrays.

Colors are stored non-premultiplied in ``[0, 1]``: RGB arrays have shape
``(H, W, 3)`` and alpha arrays ``(H, W)``. The operators follow the
Porter-Duff rules used by 2D canvas APIs, so brush code can pick an
operation by name the same way a canvas context would.
"""

import math

import numpy as np
import pygame
from scipy import ndimage

SOURCE_OVER = "source-over"
DESTINATION_OUT = "destination-out"
DESTINATION_IN = "destination-in"
SOURCE_ATOP = "source-atop"
OPERATIONS = (SOURCE_OVER, DESTINATION_OUT, DESTINATION_IN, SOURCE_ATOP)


def parse_color(color) -> tuple:
    """Return ``(r, g, b, a)`` floats in [0, 1] for a hex string, color name or tuple.

    Raises ValueError for anything pygame cannot read as a color.
    """
    if isinstance(color, str):
        color = color.strip()
        # Short hex (#rgb, #rgba) is expanded; pygame only reads the long forms
        if color.startswith("#") and len(color) in (4, 5):
            color = "#" + "".join(ch * 2 for ch in color[1:])
    try:
        c = pygame.Color(color)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Unsupported color: {color!r}") from e
    return (c.r / 255, c.g / 255, c.b / 255, c.a / 255)


def composite_rgba(op: str, dst_rgb: np.ndarray, dst_a: np.ndarray,
                   src_rgb, src_a: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Combine a source onto a destination and return the new (rgb, alpha).

    src_rgb may be a full ``(H, W, 3)`` array or a single ``(3,)`` color.
    """
    src_rgb = np.asarray(src_rgb, dtype=np.float32)
    if op == SOURCE_OVER:
        out_a = src_a + dst_a * (1.0 - src_a)
        num = (src_rgb * src_a[..., np.newaxis]
               + dst_rgb * (dst_a * (1.0 - src_a))[..., np.newaxis])
        out_rgb = np.zeros_like(dst_rgb)
        np.divide(num, out_a[..., np.newaxis], out=out_rgb,
                  where=out_a[..., np.newaxis] > 0)
        return out_rgb, out_a
    if op == DESTINATION_OUT:
        return dst_rgb, dst_a * (1.0 - src_a)
    if op == DESTINATION_IN:
        return dst_rgb, dst_a * src_a
    if op == SOURCE_ATOP:
        k = src_a[..., np.newaxis]
        return src_rgb * k + dst_rgb * (1.0 - k), dst_a
    raise ValueError(f"Unknown compositing operation: {op}")


def composite_alpha(op: str, dst_a: np.ndarray, src_a: np.ndarray) -> np.ndarray:
    """Alpha-only version of :func:`composite_rgba` for mask layers."""
    if op == SOURCE_OVER:
        return src_a + dst_a * (1.0 - src_a)
    if op == DESTINATION_OUT:
        return dst_a * (1.0 - src_a)
    if op == DESTINATION_IN:
        return dst_a * src_a
    if op == SOURCE_ATOP:
        return dst_a
    raise ValueError(f"Unknown compositing operation: {op}")


def clip_rect(x: int, y: int, w: int, h: int, width: int, height: int):
    """Intersect a rect with the canvas.

    Returns ``(x0, y0, x1, y1)`` in canvas coordinates, or None if the rect
    lies fully outside.
    """
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(width, x + w), min(height, y + h)
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1, y1


def tile_pattern(rgb: np.ndarray, alpha: np.ndarray,
                 x0: int, y0: int, x1: int, y1: int) -> tuple[np.ndarray, np.ndarray]:
    """Sample a repeating pattern over a canvas sub-rectangle.

    Tiles are anchored at the canvas origin so any sub-rectangle lines up
    with its neighbours.
    """
    th, tw = alpha.shape
    rows = np.arange(y0, y1) % th
    cols = np.arange(x0, x1) % tw
    idx = np.ix_(rows, cols)
    return rgb[idx], alpha[idx]


def rotate_alpha(alpha: np.ndarray, angle: float) -> np.ndarray:
    """Rotate a square alpha stencil about its centre, keeping its size.

    Bilinear; samples outside the source read as transparent. Positive
    angles turn clockwise on screen (y down), matching canvas ``rotate``.
    """
    # ndimage turns counter-clockwise for rows-down arrays
    out = ndimage.rotate(alpha, -math.degrees(angle), reshape=False, order=1,
                         mode="constant", cval=0.0)
    return np.clip(out, 0.0, 1.0).astype(np.float32)


def gaussian_blur(alpha: np.ndarray, sigma: float) -> np.ndarray:
    """Blur an alpha array; pixels beyond the edge count as transparent."""
    if sigma <= 0:
        return alpha.astype(np.float32, copy=True)
    out = ndimage.gaussian_filter(alpha.astype(np.float64), sigma=sigma, mode="constant")
    return np.clip(out, 0.0, 1.0).astype(np.float32)
