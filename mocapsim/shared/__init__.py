"""
#WHERE
    Imported by every mocapsim module and by tests.

#WHAT
    Shared descriptor constants.
"""

from .constants import (
    COORD_OFFSET,
    COORD_SCALE,
    DEFAULT_DATA_PATH,
    DICE_EPSILON,
    GRID_RESOLUTION,
    SENTINEL_DISTANCE,
    TRACKED_JOINTS,
)

__all__ = [
    "COORD_OFFSET",
    "COORD_SCALE",
    "DEFAULT_DATA_PATH",
    "DICE_EPSILON",
    "GRID_RESOLUTION",
    "SENTINEL_DISTANCE",
    "TRACKED_JOINTS",
]
