"""
#WHERE
    Entry point of the whole system — called by main.py and tests.

#WHAT
    End-to-end similarity pipeline: dataset file → animations → stage 1
    voxel descriptors → stage 2 distance matrix → (optional) neighbours,
    clusters and a saved .npy matrix.

#INPUT
    PipelineConfig, optionally an in-memory animation collection.

#OUTPUT
    Dict with matrix, descriptors, neighbours, clusters, per-stage timings.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from mocapsim.data import MocapLoader
from mocapsim.modules.dice_voxels import EngineConfig, PairwiseDistanceEngine
from mocapsim.modules.retrieval import all_neighbors, cluster_matrix, precision_at_k
from mocapsim.shared.constants import DEFAULT_DATA_PATH

log = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    data_path: str = DEFAULT_DATA_PATH
    max_animations: int = -1             # -1 → whole file
    engine: EngineConfig = field(default_factory=EngineConfig)
    neighbors: int = 0                   # k for k-NN lists; 0 → skip
    clusters: int = 0                    # number of clusters; 0 → skip
    output_path: Optional[str] = None    # .npy dump of the distance matrix
    show_progress: bool = True
    timeout: Optional[float] = None      # seconds to wait for stage 2


class SimilarityPipeline:
    """Animations → Dice-voxel distance matrix.  Engine created lazily."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self._engine: Optional[PairwiseDistanceEngine] = None

    @property
    def engine(self) -> Optional[PairwiseDistanceEngine]:
        return self._engine

    def setup(self) -> None:
        if self._engine is None:
            self._engine = PairwiseDistanceEngine(self.config.engine)
            log.info("[pipeline] engine ready (max_workers=%s)", self.config.engine.max_workers or "auto")

    def close(self) -> None:
        if self._engine is not None:
            self._engine.close()
            self._engine = None

    def load(self) -> List[Any]:
        return MocapLoader(self.config.data_path).load(self.config.max_animations)

    def run(self, animations: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        self.setup()
        timings: Dict[str, float] = {}

        t0 = time.perf_counter()
        if animations is None:
            animations = self.load()
            timings["load"] = time.perf_counter() - t0

        engine = self._engine
        engine.set_animations(animations)

        t0 = time.perf_counter()
        bar = self._progress_bar(len(animations))
        try:
            handle = engine.run(progress=(lambda _done, _total: bar.update(1)) if bar is not None else None)
            matrix = handle.result(timeout=self.config.timeout)
        finally:
            if bar is not None:
                bar.close()
        timings["descriptors+distances"] = time.perf_counter() - t0
        log.info("[pipeline] %d×%d matrix in %.2fs", *matrix.shape, timings["descriptors+distances"])

        result: Dict[str, Any] = {
            "animations": engine.animations,
            "descriptors": engine.descriptors.snapshot(),
            "matrix": matrix,
            "neighbors": {},
            "clusters": None,
            "timings": timings,
        }

        if self.config.neighbors > 0:
            result["neighbors"] = all_neighbors(matrix, self.config.neighbors)
            categories = [getattr(a, "category", -1) for a in engine.animations]
            if any(c != -1 for c in categories):
                result["precision_at_k"] = precision_at_k(matrix, categories, self.config.neighbors)
                log.info("[pipeline] precision@%d = %.3f", self.config.neighbors, result["precision_at_k"])

        if self.config.clusters > 0:
            result["clusters"] = cluster_matrix(matrix, self.config.clusters)

        if self.config.output_path:
            os.makedirs(os.path.dirname(self.config.output_path) or ".", exist_ok=True)
            np.save(self.config.output_path, matrix)
            result["output_path"] = self.config.output_path
            log.info("[pipeline] matrix saved → %s", self.config.output_path)

        return result

    def _progress_bar(self, total: int) -> Optional[tqdm]:
        if not self.config.show_progress or total == 0:
            return None
        return tqdm(total=total, desc="distances", leave=False)
