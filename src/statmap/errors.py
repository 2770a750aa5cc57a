"""Exception types raised by the map engine."""

from __future__ import annotations


class StatmapError(Exception):
    """Base class for map engine failures."""


class GeometryLoadError(StatmapError):
    """The world topology could not be fetched or decoded."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"Failed to load geometry from {location}: {reason}")
        self.location = location
        self.reason = reason


class ProjectionNotFoundError(StatmapError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown projection: {name!r}")
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0])
