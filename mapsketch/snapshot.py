"""Capture and restore of the paintable layers, for history and project files."""

import logging
from dataclasses import dataclass
from typing import Optional

import pygame

from mapsketch.errors import SnapshotError
from mapsketch.images import decode_image, encode_image
from mapsketch.layers import LayerStack
from mapsketch.texture import TextureCompositor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """PNG blobs for each paintable layer. Assets and labels are not included."""
    land_mask: bytes
    terrain: bytes
    path: bytes
    texture_mask: Optional[bytes] = None


class SnapshotCodec:
    def __init__(self, layers: LayerStack, textures: TextureCompositor):
        self.layers = layers
        self.textures = textures

    def capture(self) -> Snapshot:
        layers = self.layers
        return Snapshot(
            land_mask=encode_image(layers.land_mask.to_surface()),
            terrain=encode_image(layers.terrain.to_surface()),
            path=encode_image(layers.path.to_surface()),
            texture_mask=encode_image(layers.texture_mask.to_surface()),
        )

    def restore(self, snapshot: Snapshot, width: Optional[int] = None,
                height: Optional[int] = None):
        """Load a snapshot into the layers.

        Every blob is decoded before anything is touched, so a malformed
        snapshot raises SnapshotError and leaves the current layers as they
        were. When width and height differ from the current map size the
        stack is resized first. Layers are then applied one by one and the
        texture layer is recomputed after each mask lands, so an observer
        between the two mask loads can see a half-restored texture fill.
        """
        self.apply(self.decode(snapshot), width, height)

    @classmethod
    def decode(cls, snapshot: Snapshot) -> dict[str, pygame.Surface]:
        """Decode every blob without touching any layer."""
        decoded = {
            "terrain": cls._decode("terrain", snapshot.terrain),
            "path": cls._decode("path", snapshot.path),
            "land_mask": cls._decode("land_mask", snapshot.land_mask),
        }
        if snapshot.texture_mask is not None:
            decoded["texture_mask"] = cls._decode("texture_mask", snapshot.texture_mask)
        return decoded

    def apply(self, decoded: dict[str, pygame.Surface], width: Optional[int] = None,
              height: Optional[int] = None):
        if width and height and (width, height) != (self.layers.width, self.layers.height):
            self.layers.resize(width, height)

        self.layers.terrain.load_surface(decoded["terrain"])
        self.layers.path.load_surface(decoded["path"])
        self.layers.land_mask.load_surface(decoded["land_mask"])
        self.textures.render()
        if "texture_mask" in decoded:
            self.layers.texture_mask.load_surface(decoded["texture_mask"])
            self.textures.render()
        else:
            self.layers.texture_mask.clear()
            self.textures.render()

    @staticmethod
    def _decode(name: str, blob: bytes) -> pygame.Surface:
        try:
            return decode_image(blob)
        except (pygame.error, ValueError, TypeError) as e:
            logger.error("Snapshot layer %s could not be decoded: %s", name, e)
            raise SnapshotError(f"Could not decode {name} layer: {e}") from e
