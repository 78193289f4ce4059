"""Synthetic animations shared by the test modules."""

import numpy as np
import pytest

from mocapsim.data import MocapAnimation
from mocapsim.shared.constants import COORD_OFFSET, COORD_SCALE, TRACKED_JOINTS


def cells_to_world(cells) -> np.ndarray:
    """Inverse of the grid transform: integer cells → world positions."""
    cells = np.asarray(cells, dtype=np.float32)
    return cells / COORD_SCALE - np.asarray(COORD_OFFSET, dtype=np.float32)


def make_animation(anim_id: int, cell_path, joints: int = TRACKED_JOINTS, category: int = -1) -> MocapAnimation:
    """Every joint follows the same path of grid cells, one cell per frame."""
    world = cells_to_world(cell_path).reshape(-1, 1, 3)
    positions = np.repeat(world, joints, axis=1)
    return MocapAnimation(anim_id=anim_id, positions=positions, category=category)


def random_walk(anim_id: int, frames: int, seed: int, category: int = -1) -> MocapAnimation:
    rng = np.random.default_rng(seed)
    start = rng.uniform(-10, 10, size=(1, TRACKED_JOINTS, 3))
    steps = rng.normal(scale=1.5, size=(frames - 1, TRACKED_JOINTS, 3))
    positions = np.concatenate([start, start + np.cumsum(steps, axis=0)])
    return MocapAnimation(anim_id=anim_id, positions=positions, category=category)


@pytest.fixture
def diagonal_path():
    return [(0, 0, 0), (5, 5, 5)]


@pytest.fixture
def three_animations():
    """0 and 1 identical, 2 far away from both."""
    near = [(1, 1, 1), (4, 2, 1), (6, 6, 3)]
    far = [(15, 15, 15), (18, 16, 17), (19, 19, 19)]
    return [make_animation(0, near), make_animation(1, near), make_animation(2, far)]
