"""Dice-coefficient distance between two occupancy grids.

    tp   = |g1 ∧ g2|          (element-wise minimum)
    fp   = |g1| - tp
    fn   = |g2| - tp
    dice = 2·tp / (2·tp + fp + fn)        ∈ [0, 1]
    dist = 1 / dice, or SENTINEL_DISTANCE when dice < epsilon

Best achievable distance is 1.0 (identical grids), not 0.  Two empty grids
have dice 0 and therefore the sentinel distance.
"""

from __future__ import annotations

import numpy as np

from mocapsim.shared.constants import DICE_EPSILON, SENTINEL_DISTANCE
from .errors import ShapeMismatchError


def _check_shapes(grid1: np.ndarray, grid2: np.ndarray) -> None:
    if np.shape(grid1) != np.shape(grid2):
        raise ShapeMismatchError(
            f"cannot compare grids of shape {np.shape(grid1)} and {np.shape(grid2)}"
        )


def overlap_counts(grid1: np.ndarray, grid2: np.ndarray) -> tuple[int, int, int]:
    """(tp, fp, fn) occupied-cell counts."""
    _check_shapes(grid1, grid2)
    g1 = np.asarray(grid1, dtype=np.int32)
    g2 = np.asarray(grid2, dtype=np.int32)
    tp = np.minimum(g1, g2)
    fp = g1 - tp
    fn = g2 - tp
    return int(np.count_nonzero(tp)), int(np.count_nonzero(fp)), int(np.count_nonzero(fn))


def dice_coefficient(grid1: np.ndarray, grid2: np.ndarray) -> float:
    tp, fp, fn = overlap_counts(grid1, grid2)
    denom = 2 * tp + fp + fn
    if denom == 0:
        return 0.0
    return float(np.float32(2 * tp) / np.float32(denom))


def dice_distance(grid1: np.ndarray, grid2: np.ndarray, epsilon: float = DICE_EPSILON) -> float:
    dice = dice_coefficient(grid1, grid2)
    if dice < epsilon:
        return SENTINEL_DISTANCE
    return float(np.float32(1.0) / np.float32(dice))


class DiceDistance:
    """Stage-2 kernel; callable ``(grid1, grid2) -> distance``."""

    def __init__(self, epsilon: float = DICE_EPSILON) -> None:
        self.epsilon = epsilon

    def __call__(self, grid1: np.ndarray, grid2: np.ndarray) -> float:
        return dice_distance(grid1, grid2, self.epsilon)
