"""
#WHERE
    Used by loader.py, the voxel encoder, the pairwise engine, pipeline.py
    and tests.

#WHAT
    Core data model for one motion-capture animation — a time series of 3-D
    joint positions (F, J, 3) with a stable integer id and a category label.
    ``Animation`` is the read-only interface the descriptor code relies on;
    ``MocapAnimation`` is the concrete in-memory implementation.

#INPUT
    id, category, numpy positions array (frames × joints × xyz).

#OUTPUT
    MocapAnimation dataclass instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class Animation(Protocol):
    """What the descriptor code needs from an animation."""

    @property
    def anim_id(self) -> int: ...

    @property
    def num_frames(self) -> int: ...

    def position(self, joint: int, frame: int) -> np.ndarray: ...


@dataclass
class MocapAnimation:
    anim_id: int
    positions: np.ndarray           # (F, J, 3) float32, world units
    category: int = -1              # dataset class label, -1 when unknown

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float32)
        if self.positions.ndim != 3 or self.positions.shape[2] != 3:
            raise ValueError(
                f"positions must have shape (frames, joints, 3), got {self.positions.shape}"
            )
        if self.anim_id < 0:
            raise ValueError(f"anim_id must be non-negative, got {self.anim_id}")

    @property
    def num_frames(self) -> int:
        return self.positions.shape[0]

    @property
    def num_joints(self) -> int:
        return self.positions.shape[1]

    def position(self, joint: int, frame: int) -> np.ndarray:
        return self.positions[frame, joint]
