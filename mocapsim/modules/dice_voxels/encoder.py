"""
#WHERE
    Called by engine.py (stage 1) for every animation; used directly by
    tests and by visualization collaborators that need one descriptor.

#WHAT
    Voxel encoder — sweeps every tracked joint's trajectory through a fixed
    20×20×20 occupancy grid.  Consecutive frames are joined by a rasterized
    3-D line so fast motion does not leave gaps between sampled frames.

#INPUT
    Animation (anim_id, num_frames, position(joint, frame)), VoxelConfig.

#OUTPUT
    Read-only uint8 grid of shape (R, R, R), indexed [x, y, z], values 0/1.

Grid transform
~~~~~~~~~~~~~~
    cell = rint((p + offset) * scale)

``rint`` rounds half to even, the IEEE default rounding mode.  Points
that land outside ``[0, R)`` on any axis are dropped (``"discard"``) or
clamped onto the border cell (``"clip"``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from mocapsim.shared.constants import (
    COORD_OFFSET,
    COORD_SCALE,
    GRID_RESOLUTION,
    TRACKED_JOINTS,
)
from .errors import PreconditionError

log = logging.getLogger(__name__)

_OUT_OF_BOUNDS_MODES = ("discard", "clip")


@dataclass(frozen=True)
class VoxelConfig:
    """Descriptor geometry.  Defaults reproduce the MoCapSim descriptors."""

    resolution: int = GRID_RESOLUTION
    joint_count: int = TRACKED_JOINTS
    offset: Tuple[float, float, float] = COORD_OFFSET
    scale: float = COORD_SCALE
    out_of_bounds: str = "discard"   # "discard" | "clip"

    def __post_init__(self) -> None:
        if self.out_of_bounds not in _OUT_OF_BOUNDS_MODES:
            raise ValueError(
                f"Unknown out_of_bounds mode '{self.out_of_bounds}', "
                f"expected one of {_OUT_OF_BOUNDS_MODES}"
            )
        if self.resolution <= 0:
            raise ValueError(f"resolution must be positive, got {self.resolution}")

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.resolution,) * 3


def empty_grid(config: VoxelConfig | None = None) -> np.ndarray:
    cfg = config or VoxelConfig()
    return np.zeros(cfg.shape, dtype=np.uint8)


def to_grid_coords(points: np.ndarray, config: VoxelConfig | None = None) -> np.ndarray:
    """World-space points (..., 3) → integer grid cells (..., 3)."""
    cfg = config or VoxelConfig()
    offset = np.asarray(cfg.offset, dtype=np.float32)
    scaled = (np.asarray(points, dtype=np.float32) + offset) * np.float32(cfg.scale)
    return np.rint(scaled).astype(np.int64)


def rasterize_segments(starts: np.ndarray, ends: np.ndarray) -> np.ndarray:
    """Rasterize many 3-D integer segments at once.

    Each segment is sampled at ``n + 1`` evenly spaced points, where ``n``
    is its largest per-axis extent, and every sample is rounded to the
    nearest cell.  Both endpoints are always included, and consecutive
    cells of one segment differ by at most 1 on every axis.  A zero-length
    segment yields its single cell.

    Returns an (M, 3) int64 array of cells; duplicates are possible.
    """
    starts = np.asarray(starts, dtype=np.int64).reshape(-1, 3)
    ends = np.asarray(ends, dtype=np.int64).reshape(-1, 3)
    if starts.shape != ends.shape:
        raise PreconditionError(f"segment endpoints differ in shape: {starts.shape} vs {ends.shape}")
    if len(starts) == 0:
        return np.empty((0, 3), dtype=np.int64)

    delta = ends - starts
    steps = np.abs(delta).max(axis=1)
    counts = steps + 1

    seg = np.repeat(np.arange(len(starts)), counts)
    first = np.cumsum(counts) - counts
    k = np.arange(counts.sum()) - np.repeat(first, counts)
    t = k / np.maximum(steps[seg], 1)

    samples = starts[seg] + t[:, None] * delta[seg]
    return np.rint(samples).astype(np.int64)


def rasterize_line(start, end) -> np.ndarray:
    """Cells of the discrete line from *start* to *end* (inclusive), in order."""
    return rasterize_segments(np.asarray(start)[None, :], np.asarray(end)[None, :])


def joint_positions(animation, joint_count: int) -> np.ndarray:
    """(F, joint_count, 3) float32 positions of the first *joint_count* joints.

    Uses the animation's bulk ``positions`` array when it has one and falls
    back to the ``position(joint, frame)`` accessor otherwise.
    """
    positions = getattr(animation, "positions", None)
    if isinstance(positions, np.ndarray) and positions.ndim == 3:
        if positions.shape[0] and positions.shape[1] < joint_count:
            raise PreconditionError(
                f"animation {animation.anim_id} has {positions.shape[1]} joints, "
                f"{joint_count} are tracked"
            )
        return np.asarray(positions[:, :joint_count], dtype=np.float32)

    frames = animation.num_frames
    out = np.empty((frames, joint_count, 3), dtype=np.float32)
    try:
        for f in range(frames):
            for j in range(joint_count):
                out[f, j] = animation.position(j, f)
    except IndexError as exc:
        raise PreconditionError(
            f"animation {animation.anim_id} has fewer than {joint_count} tracked joints"
        ) from exc
    return out


def _fit_to_grid(cells: np.ndarray, cfg: VoxelConfig, anim_id: int) -> np.ndarray:
    if cfg.out_of_bounds == "clip":
        return np.clip(cells, 0, cfg.resolution - 1)
    inside = np.all((cells >= 0) & (cells < cfg.resolution), axis=1)
    dropped = int(len(cells) - inside.sum())
    if dropped:
        log.debug("animation %d: %d out-of-bounds cells discarded", anim_id, dropped)
    return cells[inside]


def encode_animation(animation, config: VoxelConfig | None = None) -> np.ndarray:
    """Occupancy grid of all tracked joints' swept volume.

    For every joint and every frame ``f >= 1`` the cells of frames ``f-1``
    and ``f`` are compared: equal cells mark one voxel, different cells
    mark every voxel on the line between them.  Fewer than two frames
    yield an empty grid.
    """
    cfg = config or VoxelConfig()
    grid = empty_grid(cfg)

    if animation.num_frames >= 2:
        coords = to_grid_coords(joint_positions(animation, cfg.joint_count), cfg)
        cells = rasterize_segments(coords[:-1].reshape(-1, 3), coords[1:].reshape(-1, 3))
        cells = _fit_to_grid(cells, cfg, animation.anim_id)
        grid[cells[:, 0], cells[:, 1], cells[:, 2]] = 1

    grid.setflags(write=False)
    return grid


class VoxelEncoder:
    """Stage-1 kernel: animation → (anim_id, occupancy grid)."""

    def __init__(self, config: VoxelConfig | None = None) -> None:
        self.config = config or VoxelConfig()

    def encode(self, animation) -> np.ndarray:
        return encode_animation(animation, self.config)

    def __call__(self, animation) -> Tuple[int, np.ndarray]:
        return animation.anim_id, self.encode(animation)
