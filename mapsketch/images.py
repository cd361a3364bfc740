"""Image loading, caching and encoding helpers."""

import base64
import binascii
import io
import logging

import pygame

logger = logging.getLogger(__name__)


def encode_image(surface: pygame.Surface, fmt: str = "png") -> bytes:
    buf = io.BytesIO()
    pygame.image.save(surface, buf, f"image.{fmt}")
    return buf.getvalue()


def decode_image(data: bytes, fmt: str = "png") -> pygame.Surface:
    """Decode image bytes; raises pygame.error or ValueError on bad data."""
    if not data:
        raise ValueError("Empty image data")
    return pygame.image.load(io.BytesIO(data), f"image.{fmt}")


def to_data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def from_data_uri(uri: str) -> bytes:
    """Return the payload of a base64 data URI."""
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Not a base64 data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Bad base64 payload: {e}") from e


def blank_image() -> pygame.Surface:
    return pygame.Surface((0, 0), pygame.SRCALPHA)


class ImageCache:
    """Load-once image store keyed by source (file path or data URI).

    A source that fails to load is cached as a blank 0x0 image so a broken
    asset never blocks the rest of a batch.
    """

    def __init__(self):
        self._images: dict[str, pygame.Surface] = {}

    def __contains__(self, src: str) -> bool:
        return src in self._images

    def load(self, src: str) -> pygame.Surface:
        image = self._images.get(src)
        if image is None:
            image = self._read(src)
            self._images[src] = image
        return image

    def dimensions(self, src: str) -> tuple[int, int]:
        return self.load(src).get_size()

    def _read(self, src: str) -> pygame.Surface:
        try:
            if src.startswith("data:"):
                mime = src[5:].split(";", 1)[0]
                fmt = mime.split("/")[-1] or "png"
                return decode_image(from_data_uri(src), fmt)
            return pygame.image.load(src)
        except (pygame.error, ValueError, OSError) as e:
            logger.warning("Could not load image %.60s: %s", src, e)
            return blank_image()
