import io

import pygame

from mapsketch.images import to_data_uri


def solid_image(color, size=(4, 4)) -> pygame.Surface:
    surface = pygame.Surface(size, pygame.SRCALPHA)
    surface.fill(color)
    return surface


def image_data_uri(color, size=(10, 10)) -> str:
    buf = io.BytesIO()
    pygame.image.save(solid_image(color, size), buf, "image.png")
    return to_data_uri(buf.getvalue())
