"""Exceptions raised by the Dice-voxel descriptor modules."""

from __future__ import annotations

from typing import Any, Dict


class PreconditionError(ValueError):
    """An operation was called with inputs it does not accept."""


class ShapeMismatchError(PreconditionError):
    """Two occupancy grids with different shapes were compared."""


class IdentifierOrderError(PreconditionError):
    """Animation identifiers are not unique and dense over [0, N)."""


class OwnershipViolationError(PreconditionError):
    """A distance-matrix cell was about to be written by a second task."""


class StageNotReadyError(RuntimeError):
    """Stage 2 was requested before stage 1 completed successfully."""


class DescriptorNotFoundError(KeyError):
    """No descriptor has been stored for the requested animation id."""

    def __init__(self, anim_id: int) -> None:
        super().__init__(anim_id)
        self.anim_id = anim_id

    def __str__(self) -> str:
        return f"no descriptor for animation {self.anim_id}"


class StageFailedError(RuntimeError):
    """One or more tasks of a stage raised.

    ``failures`` maps animation id → the exception its task raised;
    ``partial`` is whatever the stage managed to produce (the descriptor
    store for stage 1, the distance matrix for stage 2).
    """

    def __init__(self, stage: str, failures: Dict[int, BaseException], partial: Any = None) -> None:
        ids = sorted(failures)
        shown = ", ".join(str(i) for i in ids[:10])
        more = f" (+{len(ids) - 10} more)" if len(ids) > 10 else ""
        super().__init__(f"{stage}: {len(ids)} task(s) failed for animation ids [{shown}]{more}")
        self.stage = stage
        self.failures = dict(failures)
        self.partial = partial

    @property
    def failed_ids(self) -> list[int]:
        return sorted(self.failures)
