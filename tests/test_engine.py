"""Tests for the pairwise distance engine — stages, barrier, matrix ownership."""

import itertools
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor

import numpy as np
import pytest

from conftest import make_animation, random_walk
from mocapsim.modules.dice_voxels import (
    EngineConfig,
    IdentifierOrderError,
    OwnershipViolationError,
    PairwiseDistanceEngine,
    PreconditionError,
    ShapeMismatchError,
    StageFailedError,
    StageNotReadyError,
    dice_distance,
    encode_animation,
    order_animations,
    owned_pairs,
    owner_of,
)
from mocapsim.shared.constants import SENTINEL_DISTANCE


@pytest.fixture
def engine():
    with PairwiseDistanceEngine(EngineConfig(max_workers=4)) as eng:
        yield eng


class TestOwnership:

    def test_owner_is_larger_id(self):
        assert owner_of(3, 7) == 7
        assert owner_of(7, 3) == 7

    def test_diagonal_has_no_owner(self):
        with pytest.raises(PreconditionError):
            owner_of(2, 2)

    def test_every_pair_owned_exactly_once(self):
        ids = list(range(9))
        owned = [frozenset(p) for i in ids for p in owned_pairs(i, ids)]
        assert len(owned) == len(set(owned))
        assert set(owned) == {frozenset(p) for p in itertools.combinations(ids, 2)}

    def test_owned_pairs_smaller_ids_only(self):
        assert owned_pairs(3, range(6)) == [(3, 0), (3, 1), (3, 2)]
        assert owned_pairs(0, range(6)) == []


class TestOrderAnimations:

    def test_sorts_by_id(self, diagonal_path):
        anims = [make_animation(i, diagonal_path) for i in (2, 0, 1)]
        assert [a.anim_id for a in order_animations(anims)] == [0, 1, 2]

    def test_duplicate_ids_rejected(self, diagonal_path):
        anims = [make_animation(i, diagonal_path) for i in (0, 0, 1)]
        with pytest.raises(IdentifierOrderError, match="duplicates=\\[0\\]"):
            order_animations(anims)

    def test_gap_rejected(self, diagonal_path):
        anims = [make_animation(i, diagonal_path) for i in (0, 2)]
        with pytest.raises(IdentifierOrderError, match="missing=\\[1\\]"):
            order_animations(anims)


class TestEngineEndToEnd:

    def test_three_animation_scenario(self, engine, three_animations):
        engine.set_animations(three_animations)
        m = engine.run().result(timeout=30)

        assert m.dtype == np.float32
        assert m.shape == (3, 3)
        assert m[0, 1] == m[1, 0] == 1.0
        for i, j in [(0, 2), (2, 0), (1, 2), (2, 1)]:
            assert m[i, j] == SENTINEL_DISTANCE
        assert (np.diag(m) == SENTINEL_DISTANCE).all()

    def test_identical_trajectories_identical_descriptors(self, engine, three_animations):
        engine.set_animations(three_animations)
        engine.run().result(timeout=30)
        store = engine.descriptors
        np.testing.assert_array_equal(store.get(0), store.get(1))
        assert store.ids() == [0, 1, 2]

    def test_matrix_matches_direct_distances(self, engine):
        anims = [random_walk(i, frames=40, seed=i) for i in range(8)]
        engine.set_animations(anims)
        m = engine.run().result(timeout=60)
        grids = {a.anim_id: encode_animation(a) for a in anims}
        for i, j in itertools.combinations(range(8), 2):
            assert m[i, j] == np.float32(dice_distance(grids[i], grids[j]))

    def test_symmetric_with_sentinel_diagonal(self, engine):
        engine.set_animations([random_walk(i, frames=30, seed=10 + i) for i in range(10)])
        m = engine.run().result(timeout=60)
        np.testing.assert_array_equal(m, m.T)
        assert (np.diag(m) == SENTINEL_DISTANCE).all()

    def test_unsorted_input_indexed_by_id(self, engine, three_animations):
        engine.set_animations(list(reversed(three_animations)))
        m = engine.run().result(timeout=30)
        assert [a.anim_id for a in engine.animations] == [0, 1, 2]
        assert m[0, 1] == 1.0
        assert m[0, 2] == SENTINEL_DISTANCE

    def test_empty_collection(self, engine):
        engine.set_animations([])
        m = engine.run().result(timeout=5)
        assert m.shape == (0, 0)

    def test_single_animation(self, engine, diagonal_path):
        engine.set_animations([make_animation(0, diagonal_path)])
        m = engine.run().result(timeout=5)
        assert m.tolist() == [[SENTINEL_DISTANCE]]

    def test_matrix_not_reallocated(self, engine, three_animations):
        engine.set_animations(three_animations)
        before = engine.distance_matrix
        after = engine.run().result(timeout=30)
        assert after is before


class TestStageBarrier:

    def test_distances_before_descriptors_raises(self, engine, three_animations):
        engine.set_animations(three_animations)
        with pytest.raises(StageNotReadyError):
            engine.compute_all_distances()

    def test_explicit_two_stage_run(self, engine, three_animations):
        engine.set_animations(three_animations)
        store = engine.compute_descriptors().result(timeout=30)
        assert engine.descriptors_ready
        assert len(store) == 3
        m = engine.compute_all_distances().result(timeout=30)
        assert m[1, 0] == 1.0

    def test_stage2_from_continuation(self, engine, three_animations):
        engine.set_animations(three_animations)
        finished = threading.Event()
        handles = {}

        def on_descriptors(h):
            handles["stage2"] = engine.compute_all_distances()
            handles["stage2"].add_done_callback(lambda _h: finished.set())

        engine.compute_descriptors().add_done_callback(on_descriptors)
        assert finished.wait(timeout=30)
        assert handles["stage2"].result()[0, 1] == 1.0

    def test_new_animations_reset_readiness(self, engine, three_animations):
        engine.set_animations(three_animations)
        engine.compute_descriptors().result(timeout=30)
        engine.set_animations(three_animations[:2])
        assert not engine.descriptors_ready
        assert len(engine.descriptors) == 0
        with pytest.raises(StageNotReadyError):
            engine.compute_all_distances()

    def test_progress_reaches_total(self, engine):
        engine.set_animations([random_walk(i, frames=10, seed=i) for i in range(6)])
        seen = []
        lock = threading.Lock()
        handle = engine.compute_descriptors()

        def progress(done, total):
            with lock:
                seen.append((done, total))

        handle.add_progress_callback(progress)
        handle.result(timeout=30)
        assert handle.completed == 6
        assert all(total == 6 for _, total in seen)

    def test_stage2_twice_gives_same_matrix(self, engine):
        engine.set_animations([random_walk(i, frames=20, seed=30 + i) for i in range(5)])
        engine.compute_descriptors().result(timeout=30)
        first = engine.compute_all_distances().result(timeout=30).copy()
        second = engine.compute_all_distances().result(timeout=30)
        np.testing.assert_array_equal(first, second)
        assert second is engine.distance_matrix

    def test_distances_after_full_run_and_new_descriptors(self, engine, three_animations):
        engine.set_animations(three_animations)
        engine.run().result(timeout=30)
        engine.compute_descriptors().result(timeout=30)
        m = engine.compute_all_distances().result(timeout=30)
        assert m[0, 1] == m[1, 0] == 1.0
        assert m[2, 0] == SENTINEL_DISTANCE
        assert (np.diag(m) == SENTINEL_DISTANCE).all()

    def test_run_progress_sees_every_task(self, engine):
        engine.set_animations([random_walk(i, frames=8, seed=i) for i in range(7)])
        seen = []
        lock = threading.Lock()

        def progress(done, total):
            with lock:
                seen.append((done, total))

        engine.run(progress=progress).result(timeout=30)
        assert len(seen) == 7
        assert max(done for done, _ in seen) == 7


class TestStageFailures:

    def _broken_set(self, diagonal_path):
        return [
            make_animation(0, diagonal_path),
            make_animation(1, diagonal_path, joints=10),
            make_animation(2, diagonal_path),
        ]

    def test_stage1_failure_reports_ids(self, engine, diagonal_path):
        engine.set_animations(self._broken_set(diagonal_path))
        handle = engine.compute_descriptors()
        with pytest.raises(StageFailedError) as excinfo:
            handle.result(timeout=30)
        err = excinfo.value
        assert err.stage == "stage1"
        assert err.failed_ids == [1]
        assert isinstance(err.failures[1], PreconditionError)
        assert engine.descriptors.ids() == [0, 2]
        assert not engine.descriptors_ready

    def test_failed_stage1_never_starts_stage2(self, engine, diagonal_path):
        engine.set_animations(self._broken_set(diagonal_path))
        handle = engine.run()
        with pytest.raises(StageFailedError):
            handle.result(timeout=30)
        assert (engine.distance_matrix == SENTINEL_DISTANCE).all()
        with pytest.raises(StageNotReadyError):
            engine.compute_all_distances()

    def test_second_write_detected(self, engine, three_animations):
        engine.set_animations(three_animations)
        engine.run().result(timeout=30)
        with pytest.raises(OwnershipViolationError, match="written twice"):
            engine._write_pair(2, 1, 1.0)

    def test_stage2_failure_reports_ids_and_partial_matrix(self, engine, three_animations):
        engine.set_animations(three_animations)
        engine.compute_descriptors().result(timeout=30)
        engine.descriptors.put(2, np.zeros((10, 10, 10), dtype=np.uint8))

        handle = engine.compute_all_distances()
        with pytest.raises(StageFailedError) as excinfo:
            handle.result(timeout=30)
        err = excinfo.value
        assert err.stage == "stage2"
        assert err.failed_ids == [2]
        assert isinstance(err.failures[2], ShapeMismatchError)
        assert err.partial is engine.distance_matrix
        assert err.partial[0, 1] == err.partial[1, 0] == 1.0
        assert err.partial[2, 0] == SENTINEL_DISTANCE

    def test_colliding_writes_reported_once(self, engine, three_animations):
        engine.set_animations(three_animations)
        start = threading.Barrier(8)
        errors = []
        lock = threading.Lock()

        def write():
            start.wait()
            try:
                engine._write_pair(2, 1, 1.0)
            except OwnershipViolationError as exc:
                with lock:
                    errors.append(exc)

        threads = [threading.Thread(target=write) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(errors) == 7
        assert "only task 2 may write it" in str(errors[0])


class TestCancellation:

    def test_cancel_before_start_skips_stage2(self, three_animations):
        gate = threading.Event()
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            pool.submit(gate.wait, 30)
            engine = PairwiseDistanceEngine(executor=pool)
            engine.set_animations(three_animations)
            handle = engine.run()
            assert handle.cancel() is True
            gate.set()
            with pytest.raises(CancelledError):
                handle.result(timeout=30)
            assert handle.cancelled()
            assert not engine.descriptors_ready
            assert (engine.distance_matrix == SENTINEL_DISTANCE).all()
        finally:
            gate.set()
            pool.shutdown(wait=True)

    def test_cancel_after_done_is_noop(self, engine, three_animations):
        engine.set_animations(three_animations)
        handle = engine.run()
        handle.result(timeout=30)
        assert handle.cancel() is False
