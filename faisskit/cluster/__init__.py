"""Clustering Module: k-means over the engine's clustering kernels."""

from faisskit.cluster.clustering import (
    Clustering,
    ClusteringResult,
    KMeansResult,
    kmeans_clustering,
)

__all__ = [
    "Clustering",
    "ClusteringResult",
    "KMeansResult",
    "kmeans_clustering",
]
