"""
Dice-voxel motion descriptors
=============================
Voxelizes every animation's joint trajectories into a 20×20×20 occupancy
grid and compares grids with an inverted Dice coefficient.

Example:
    from mocapsim.modules.dice_voxels import PairwiseDistanceEngine

    with PairwiseDistanceEngine() as engine:
        engine.set_animations(animations)
        matrix = engine.run().result()
"""

from .distance import DiceDistance, dice_coefficient, dice_distance, overlap_counts
from .encoder import (
    VoxelConfig,
    VoxelEncoder,
    encode_animation,
    rasterize_line,
    rasterize_segments,
    to_grid_coords,
)
from .engine import EngineConfig, PairwiseDistanceEngine, order_animations, owned_pairs, owner_of
from .errors import (
    DescriptorNotFoundError,
    IdentifierOrderError,
    OwnershipViolationError,
    PreconditionError,
    ShapeMismatchError,
    StageFailedError,
    StageNotReadyError,
)
from .handles import StageHandle
from .store import DescriptorStore, SelectionSet

__all__ = [
    "DiceDistance",
    "dice_coefficient",
    "dice_distance",
    "overlap_counts",
    "VoxelConfig",
    "VoxelEncoder",
    "encode_animation",
    "rasterize_line",
    "rasterize_segments",
    "to_grid_coords",
    "EngineConfig",
    "PairwiseDistanceEngine",
    "order_animations",
    "owned_pairs",
    "owner_of",
    "DescriptorNotFoundError",
    "IdentifierOrderError",
    "OwnershipViolationError",
    "PreconditionError",
    "ShapeMismatchError",
    "StageFailedError",
    "StageNotReadyError",
    "StageHandle",
    "DescriptorStore",
    "SelectionSet",
]
