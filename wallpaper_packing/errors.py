"""
errors.py - Exception types raised by the packing core
"""
from typing import Optional


class PackingError(Exception):
    """Base class for all packing errors."""


class DegenerateCell(PackingError, ValueError):
    """Cell parameters violate a, b > 0 and 0 < gamma < pi."""


class DegenerateShape(PackingError, ValueError):
    """Polygon has too few vertices, no area, repeated vertices or crossing edges."""


class InvalidTransform(PackingError, ValueError):
    """Requested transform is not a pure isometry."""


class OverlapDetectedDuringInit(PackingError):
    """The starting configuration already contains overlapping shapes."""

    def __init__(self, message: str, overlaps: Optional[list] = None):
        super().__init__(message)
        self.overlaps = overlaps or []


class OptimizerDivergence(PackingError):
    """Too many consecutive rejections; the run stops early with its best checkpoint."""

    def __init__(self, message: str, consecutive_rejections: int = 0):
        super().__init__(message)
        self.consecutive_rejections = consecutive_rejections


class NumericalError(PackingError):
    """Working state picked up a non-finite value; carries the last valid checkpoint."""

    def __init__(self, message: str, checkpoint=None):
        super().__init__(message)
        self.checkpoint = checkpoint


class UnknownWallpaperGroup(PackingError, KeyError):
    """Name does not match any of the 17 wallpaper groups."""

    def __str__(self):
        return str(self.args[0]) if self.args else ""
