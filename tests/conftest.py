import os
import random

# Headless SDL; must be set before pygame is imported anywhere
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pygame
import pytest

from mapsketch.config import ToolConfig
from mapsketch.engine import MapEngine


@pytest.fixture(scope="session", autouse=True)
def pygame_session():
    pygame.init()
    yield
    pygame.quit()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def engine(rng):
    eng = MapEngine(rng)
    eng.init(200, 120)
    return eng


@pytest.fixture
def config():
    return ToolConfig()

