"""
#WHERE
    Imported by pipeline.py, main.py and tests.

#WHAT
    Downstream consumers of the distance matrix: k-nearest-neighbour
    ranking, category precision@k and hierarchical clustering.
"""

from .ranking import all_neighbors, cluster_matrix, nearest_neighbors, precision_at_k

__all__ = ["all_neighbors", "cluster_matrix", "nearest_neighbors", "precision_at_k"]
