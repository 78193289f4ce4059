"""Nearest-neighbour ranking and clustering over a pairwise distance matrix.

Cells holding the sentinel distance (the diagonal, pairs with no voxel in
common, pairs never computed) carry no similarity and never rank as
neighbours.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

import numpy as np
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import squareform

from mocapsim.shared.constants import SENTINEL_DISTANCE

log = logging.getLogger(__name__)


def _check_square(matrix: np.ndarray) -> np.ndarray:
    m = np.asarray(matrix)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise ValueError(f"distance matrix must be square, got shape {m.shape}")
    return m


def nearest_neighbors(matrix: np.ndarray, anim_id: int, k: int = 5) -> List[int]:
    """Up to *k* ids closest to *anim_id*, closest first, ties by id."""
    m = _check_square(matrix)
    if not 0 <= anim_id < m.shape[0]:
        raise IndexError(f"animation id {anim_id} outside matrix of size {m.shape[0]}")
    row = m[anim_id].astype(np.float64)
    candidates = np.flatnonzero(row < SENTINEL_DISTANCE)
    candidates = candidates[candidates != anim_id]
    order = np.lexsort((candidates, row[candidates]))
    return [int(i) for i in candidates[order][:k]]


def all_neighbors(matrix: np.ndarray, k: int = 5) -> Dict[int, List[int]]:
    m = _check_square(matrix)
    return {i: nearest_neighbors(m, i, k) for i in range(m.shape[0])}


def precision_at_k(matrix: np.ndarray, categories: Sequence[int], k: int = 5) -> float:
    """Mean share of same-category ids among each animation's k neighbours.

    Animations without any ranked neighbour are left out of the mean;
    returns 0.0 when none has one.
    """
    m = _check_square(matrix)
    if len(categories) != m.shape[0]:
        raise ValueError(f"{len(categories)} categories for a {m.shape[0]}×{m.shape[0]} matrix")
    scores = []
    for i in range(m.shape[0]):
        neighbors = nearest_neighbors(m, i, k)
        if not neighbors:
            continue
        hits = sum(1 for j in neighbors if categories[j] == categories[i])
        scores.append(hits / len(neighbors))
    if not scores:
        return 0.0
    return float(np.mean(scores))


def cluster_matrix(matrix: np.ndarray, n_clusters: int, method: str = "average") -> np.ndarray:
    """Agglomerative clustering; returns one label in 1..n_clusters per id."""
    m = _check_square(matrix).astype(np.float64)
    if n_clusters < 1:
        raise ValueError(f"n_clusters must be >= 1, got {n_clusters}")
    n = m.shape[0]
    if n == 0:
        return np.zeros(0, dtype=np.int32)
    if n == 1:
        return np.ones(1, dtype=np.int32)

    dist = np.minimum(m, m.T)
    np.fill_diagonal(dist, 0.0)
    condensed = squareform(dist, checks=False)
    tree = linkage(condensed, method=method)
    labels = fcluster(tree, t=n_clusters, criterion="maxclust")
    log.info("[cluster] %d animations → %d clusters (%s linkage)", n, len(set(labels)), method)
    return labels.astype(np.int32)
