"""
K-Means Clustering

Standalone from the index types: shares only the metric and error models.

    clustering = Clustering(d=64, k=16)
    result = clustering.train(x).unwrap()
    result.centroids.shape   # (16, 64)
    result.objectives        # one value per iteration
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import faiss
import numpy as np

from faisskit.core.config import ClusteringParameters
from faisskit.core.errors import FaissError, Ok, Result, native_call
from faisskit.core.native import VectorData, as_matrix
from faisskit.core.types import MetricType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClusteringResult:
    """
    Outcome of one training run.

    Attributes:
        centroids: float32 array of shape (k, d)
        objectives: Objective value after each iteration (all restarts)
    """
    centroids: np.ndarray
    objectives: tuple[float, ...]

    @property
    def final_objective(self) -> Optional[float]:
        return self.objectives[-1] if self.objectives else None


@dataclass(frozen=True, slots=True)
class KMeansResult:
    """Centroids plus the final quantization error of kmeans_clustering()."""
    centroids: np.ndarray
    quantization_error: float


def _native_parameters(params: ClusteringParameters) -> Any:
    native = faiss.ClusteringParameters()
    native.niter = params.niter
    native.nredo = params.nredo
    native.verbose = params.verbose
    native.spherical = params.spherical
    native.int_centroids = params.int_centroids
    native.update_index = params.update_index
    native.frozen_centroids = params.frozen_centroids
    native.min_points_per_centroid = params.min_points_per_centroid
    native.max_points_per_centroid = params.max_points_per_centroid
    native.seed = params.seed
    native.decode_block_size = params.decode_block_size
    return native


def _assignment_index(d: int, metric: MetricType) -> Any:
    if metric is MetricType.INNER_PRODUCT:
        return faiss.IndexFlatIP(d)
    return faiss.IndexFlatL2(d)


class Clustering:
    """
    K-means over d-dimensional vectors into k centroids.

    Each train() call starts from scratch and replaces the stored result.
    """

    __slots__ = ("_d", "_k", "_params", "_result")

    def __init__(
        self,
        d: int,
        k: int,
        params: Optional[ClusteringParameters] = None,
    ) -> None:
        if d < 1:
            raise ValueError(f"d must be >= 1, got {d}")
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        self._params = params or ClusteringParameters()
        if error := self._params.validate():
            raise ValueError(error)
        self._d = d
        self._k = k
        self._result: Optional[ClusteringResult] = None

    @property
    def d(self) -> int:
        return self._d

    @property
    def k(self) -> int:
        return self._k

    @property
    def params(self) -> ClusteringParameters:
        return self._params

    @property
    def result(self) -> Optional[ClusteringResult]:
        """Latest training outcome, None before the first success."""
        return self._result

    @property
    def centroids(self) -> Optional[np.ndarray]:
        return self._result.centroids if self._result else None

    def train(
        self,
        vectors: VectorData,
        metric: MetricType = MetricType.L2,
    ) -> Result[ClusteringResult, FaissError]:
        """
        Run k-means on vectors, assigning points under metric.

        Fails with NativeFailure when there are fewer points than centroids.
        """
        matrix = as_matrix(vectors, self._d)
        if matrix.is_err():
            return matrix
        x = matrix.unwrap()

        native = faiss.Clustering(self._d, self._k, _native_parameters(self._params))
        index = _assignment_index(self._d, metric)
        trained = native_call(native.train, x, index, operation="clustering_train")
        if trained.is_err():
            return trained

        centroids = faiss.vector_to_array(native.centroids).reshape(self._k, self._d)
        stats = native.iteration_stats
        objectives = tuple(float(stats.at(i).obj) for i in range(stats.size()))
        self._result = ClusteringResult(centroids=centroids.copy(), objectives=objectives)
        logger.debug(
            "k-means d=%d k=%d on %d points: final objective %s",
            self._d, self._k, x.shape[0], self._result.final_objective,
        )
        return Ok(self._result)


def kmeans_clustering(d: int, vectors: VectorData, k: int) -> Result[KMeansResult, FaissError]:
    """
    One-shot k-means with default parameters.

    Raises:
        ValueError: d or k is not positive
    """
    if d < 1:
        raise ValueError(f"d must be >= 1, got {d}")
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    matrix = as_matrix(vectors, d)
    if matrix.is_err():
        return matrix
    x = matrix.unwrap()
    centroids = np.zeros((k, d), dtype=np.float32)
    return native_call(
        faiss.kmeans_clustering,
        d, x.shape[0], k, faiss.swig_ptr(x), faiss.swig_ptr(centroids),
        operation="kmeans_clustering",
    ).map(lambda error: KMeansResult(centroids=centroids, quantization_error=float(error)))
