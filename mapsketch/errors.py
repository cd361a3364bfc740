"""Exceptions raised by the map engine."""


class MapsketchError(Exception):
    """Base class for engine errors."""


class SnapshotError(MapsketchError):
    """A snapshot blob could not be decoded."""


class ProjectError(MapsketchError):
    """A project document is malformed or of an unsupported shape."""
