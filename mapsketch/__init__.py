"""Layered procedural terrain painting: stamps, masks, paths, halos and labels."""

from mapsketch.annotations import Asset, Label
from mapsketch.config import ToolConfig
from mapsketch.engine import MapEngine
from mapsketch.errors import MapsketchError, ProjectError, SnapshotError
from mapsketch.snapshot import Snapshot

__all__ = [
    "Asset", "Label", "MapEngine", "MapsketchError", "ProjectError",
    "Snapshot", "SnapshotError", "ToolConfig",
]
