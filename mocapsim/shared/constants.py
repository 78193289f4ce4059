"""
#WHERE
    Imported by the encoder, the distance metric, the engine, the loader
    and tests — single source of truth for the descriptor constants.

#WHAT
    Grid resolution, tracked-joint count, world → grid transform and the
    Dice epsilon / sentinel distance.  Edit here, not in individual modules.

#INPUT / #OUTPUT
    Pure constants — no I/O.
"""

import numpy as np

# ── Voxel grid ───────────────────────────────────────────────────────────

GRID_RESOLUTION: int = 20                # cells per axis (20×20×20)
TRACKED_JOINTS:  int = 31                # joints per frame in MoCapSim data

# world → grid:  (p + offset) * scale, then rounded to the nearest cell
COORD_OFFSET: tuple[float, float, float] = (20.0, 20.0, 20.0)
COORD_SCALE:  float = 0.5

# ── Distance ─────────────────────────────────────────────────────────────

DICE_EPSILON: float = 1e-3               # below this dice → sentinel
SENTINEL_DISTANCE: float = float(np.finfo(np.float32).max)

# ── Data ─────────────────────────────────────────────────────────────────

DEFAULT_DATA_PATH = "data/mocap/animations.txt"
