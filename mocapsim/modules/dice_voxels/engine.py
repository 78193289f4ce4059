"""
#WHERE
    Called by pipeline.py and main.py; the single entry point for computing
    descriptors and the pairwise distance matrix of an animation set.

#WHAT
    Pairwise distance engine — two sequenced fan-out/fan-in stages on a
    thread pool:

        stage 1  compute_descriptors()    VoxelEncoder over every animation
                    │                      → DescriptorStore (published once,
                    │                        when every task has finished)
                    ▼  (stage barrier: stage-1 completion callback)
        stage 2  compute_all_distances()  one task per animation id, comparing
                                           it with every smaller id
                                           → DistanceMatrix (N×N float32)

Matrix ownership
~~~~~~~~~~~~~~~~
The unordered pair {i, j} (i ≠ j) belongs to the task of max(i, j), which
writes both [i, j] and [j, i].  No two tasks share a cell, so the
pre-allocated matrix is filled without locks.  The diagonal is never
written and keeps the sentinel value.  With ``verify_ownership`` every
write is checked against a per-cell mask; check and mark happen under one
lock, so a broken partition is reported by exactly one of the colliding
tasks.  Each stage-2 launch clears the mask and refills the matrix with
the sentinel in place.

#INPUT
    Collection of animations whose ids are exactly 0..N-1 (any order).

#OUTPUT
    StageHandle per stage; DescriptorStore; symmetric float32 matrix with a
    sentinel diagonal.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from mocapsim.shared.constants import DICE_EPSILON, SENTINEL_DISTANCE
from .distance import DiceDistance
from .encoder import VoxelConfig, VoxelEncoder
from .errors import (
    IdentifierOrderError,
    OwnershipViolationError,
    PreconditionError,
    StageFailedError,
    StageNotReadyError,
)
from .handles import StageHandle
from .store import DescriptorStore

log = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    voxel: VoxelConfig = field(default_factory=VoxelConfig)
    dice_epsilon: float = DICE_EPSILON
    max_workers: Optional[int] = None   # None → ThreadPoolExecutor default
    verify_ownership: bool = True       # per-cell write-once check in stage 2


def owner_of(id1: int, id2: int) -> int:
    """Id of the stage-2 task that computes the pair {id1, id2}."""
    if id1 == id2:
        raise PreconditionError(f"diagonal cell ({id1}, {id1}) has no owner")
    return max(id1, id2)


def owned_pairs(anim_id: int, ids: Iterable[int]) -> List[Tuple[int, int]]:
    """Pairs (anim_id, other) the task for *anim_id* writes."""
    return [(anim_id, other) for other in ids if other < anim_id]


def order_animations(animations: Iterable[Any]) -> List[Any]:
    """Sort by id and check ids are exactly 0..N-1."""
    ordered = sorted(animations, key=lambda a: a.anim_id)
    ids = [a.anim_id for a in ordered]
    expected = list(range(len(ordered)))
    if ids != expected:
        seen, dupes = set(), set()
        for i in ids:
            (dupes if i in seen else seen).add(i)
        missing = sorted(set(expected) - seen)
        raise IdentifierOrderError(
            f"animation ids must be unique and cover 0..{len(ordered) - 1}; "
            f"duplicates={sorted(dupes)[:10]} missing={missing[:10]}"
        )
    return ordered


class PairwiseDistanceEngine:
    """Computes Dice-voxel descriptors and the full pairwise distance matrix.

    Parameters
    ----------
    config : EngineConfig
        Voxel geometry, Dice epsilon, pool size, ownership checking.
    executor : Executor, optional
        Shared pool to run tasks on.  When omitted the engine owns a
        ``ThreadPoolExecutor`` and shuts it down in ``close()``.
    """

    def __init__(self, config: Optional[EngineConfig] = None, executor: Optional[Executor] = None) -> None:
        self.config = config or EngineConfig()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="mocapsim",
        )
        self._encoder = VoxelEncoder(self.config.voxel)
        self._distance = DiceDistance(self.config.dice_epsilon)

        self._animations: List[Any] = []
        self._descriptors = DescriptorStore()
        self._matrix = np.zeros((0, 0), dtype=np.float32)
        self._written = np.zeros((0, 0), dtype=bool)
        self._written_lock = threading.Lock()
        self._descriptors_ready = False
        self._active: List[StageHandle] = []

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def animations(self) -> Sequence[Any]:
        return tuple(self._animations)

    @property
    def descriptors(self) -> DescriptorStore:
        return self._descriptors

    @property
    def distance_matrix(self) -> np.ndarray:
        return self._matrix

    @property
    def descriptors_ready(self) -> bool:
        return self._descriptors_ready

    def set_animations(self, animations: Iterable[Any]) -> None:
        """Start a new run: validate ids, allocate a fresh store and matrix."""
        if any(not h.done() for h in self._active):
            raise RuntimeError("cannot replace animations while a stage is running")
        self._animations = order_animations(animations)
        n = len(self._animations)
        self._descriptors = DescriptorStore()
        self._matrix = np.full((n, n), SENTINEL_DISTANCE, dtype=np.float32)
        self._written = np.zeros((n, n), dtype=bool)
        self._descriptors_ready = False
        self._active = []
        log.info("[engine] %d animations registered", n)

    def compute_descriptors(self) -> StageHandle:
        """Stage 1.  Resolves to the DescriptorStore once every grid is stored."""
        handle = StageHandle("stage1", len(self._animations))
        self._descriptors_ready = False
        self._launch(handle, self._animations, self._encode_task, self._publish_descriptors)
        return handle

    def compute_all_distances(self) -> StageHandle:
        """Stage 2.  Resolves to the distance matrix.

        Raises StageNotReadyError unless stage 1 has completed successfully
        for every registered animation.
        """
        self._require_descriptors()
        handle = StageHandle("stage2", len(self._animations))
        self._launch_distances(handle)
        return handle

    def run(self, progress: Optional[Callable[[int, int], None]] = None) -> StageHandle:
        """Both stages; stage 2 starts from the stage-1 completion callback.

        The returned handle resolves to the distance matrix.  A failed or
        cancelled stage 1 fails or cancels it without ever starting stage 2.

        *progress*, when given, is attached to the stage-2 handle before any
        work is submitted, so no task completion is missed.
        """
        final = StageHandle("stage2", len(self._animations))
        if progress is not None:
            final.add_progress_callback(progress)
        self._active.append(final)
        first = self.compute_descriptors()
        final.link(first)

        def _continue(stage1: StageHandle) -> None:
            if stage1.cancelled() or final.cancel_requested:
                log.info("[engine] stage 1 cancelled — stage 2 not started")
                final.abort()
                return
            exc = stage1.exception()
            if exc is not None:
                final.fail(exc)
                return
            try:
                self._require_descriptors()
                self._launch_distances(final)
            except Exception as err:
                final.fail(err)

        first.add_done_callback(_continue)
        return final

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "PairwiseDistanceEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── Fan-out / fan-in ──────────────────────────────────────────────────────

    def _launch(
        self,
        handle: StageHandle,
        animations: Sequence[Any],
        task: Callable[[StageHandle, int], Any],
        on_complete: Callable[[StageHandle, float], None],
    ) -> None:
        self._active.append(handle)
        started = time.perf_counter()
        log.info("[%s] %d tasks submitted", handle.stage, len(animations))
        if not animations:
            on_complete(handle, started)
            return

        def _collect(fut, anim_id: int) -> None:
            try:
                value = fut.result()
            except BaseException as exc:
                last = handle.record(anim_id, error=exc)
            else:
                last = handle.record(anim_id, value)
            if last:
                try:
                    on_complete(handle, started)
                except Exception as exc:
                    log.exception("[%s] publishing results failed", handle.stage)
                    handle.fail(exc)

        for index, anim in enumerate(animations):
            fut = self._executor.submit(task, handle, index)
            fut.add_done_callback(lambda f, anim_id=anim.anim_id: _collect(f, anim_id))

    def _report_failures(self, handle: StageHandle, partial: Any) -> bool:
        if not handle.failures:
            return False
        for anim_id, exc in sorted(handle.failures.items()):
            log.warning("[%s] animation %d failed: %s", handle.stage, anim_id, exc)
        handle.fail(StageFailedError(handle.stage, handle.failures, partial))
        return True

    # ── Stage 1 ───────────────────────────────────────────────────────────────

    def _encode_task(self, handle: StageHandle, index: int) -> np.ndarray:
        handle.check_cancelled()
        anim_id, grid = self._encoder(self._animations[index])
        log.debug("[stage1] animation %d: %d voxels", anim_id, int(grid.sum()))
        return grid

    def _publish_descriptors(self, handle: StageHandle, started: float) -> None:
        if handle.cancel_requested:
            log.info("[stage1] cancelled after %d/%d tasks", handle.completed, handle.total)
            handle.abort()
            return
        for anim_id, grid in handle.outcomes.items():
            self._descriptors.put(anim_id, grid)
        if self._report_failures(handle, self._descriptors):
            return
        self._descriptors_ready = True
        log.info("[stage1] %d descriptors in %.2fs", len(self._descriptors), time.perf_counter() - started)
        handle.resolve(self._descriptors)

    # ── Stage 2 ───────────────────────────────────────────────────────────────

    def _require_descriptors(self) -> None:
        if not self._descriptors_ready:
            raise StageNotReadyError("descriptors have not been computed for the current animations")
        missing = [a.anim_id for a in self._animations if not self._descriptors.contains(a.anim_id)]
        if missing:
            raise StageNotReadyError(f"no descriptors for animation ids {missing[:10]}")

    def _launch_distances(self, handle: StageHandle) -> None:
        if any(h.stage == "stage2" and h is not handle and not h.done() for h in self._active):
            raise RuntimeError("stage 2 is already running")
        self._written[...] = False
        self._matrix[...] = SENTINEL_DISTANCE
        self._launch(handle, self._animations, self._distance_task, self._publish_distances)

    def _distance_task(self, handle: StageHandle, index: int) -> int:
        handle.check_cancelled()
        anim_id = self._animations[index].anim_id
        grid = self._descriptors.get(anim_id)
        written = 0
        for other in self._animations[:index]:
            other_id = other.anim_id
            if other_id >= anim_id:
                raise IdentifierOrderError(
                    f"animation {other_id} precedes animation {anim_id} in matrix order"
                )
            dist = self._distance(self._descriptors.get(other_id), grid)
            self._write_pair(anim_id, other_id, dist)
            written += 1
        return written

    def _write_pair(self, anim_id: int, other_id: int, dist: float) -> None:
        if self.config.verify_ownership:
            with self._written_lock:
                if self._written[anim_id, other_id] or self._written[other_id, anim_id]:
                    raise OwnershipViolationError(
                        f"cell ({anim_id}, {other_id}) written twice; "
                        f"only task {owner_of(anim_id, other_id)} may write it"
                    )
                self._written[anim_id, other_id] = self._written[other_id, anim_id] = True
        self._matrix[anim_id, other_id] = self._matrix[other_id, anim_id] = dist

    def _publish_distances(self, handle: StageHandle, started: float) -> None:
        if handle.cancel_requested:
            log.info("[stage2] cancelled after %d/%d tasks", handle.completed, handle.total)
            handle.abort()
            return
        if self._report_failures(handle, self._matrix):
            return
        pairs = sum(handle.outcomes.values())
        log.info("[stage2] %d pairs in %.2fs", pairs, time.perf_counter() - started)
        handle.resolve(self._matrix)
