"""
NativeIndex: Capability Contract Shared by Every Residency

Each public operation:
    1. borrows the engine object (fatal if the handle was consumed)
    2. validates caller buffers (DimensionMismatch never reaches the engine)
    3. issues one engine call through native_call()

Thread Safety:
    Mutations (train, add, remove, reset) and handle consumption hold a
    per-instance re-entrant lock. Searches and introspection do not take it;
    callers must not mutate an index while searching it from other threads.
"""

from __future__ import annotations

import threading
from typing import Any, Sequence, Union

import faiss
import numpy as np

from faisskit.core.errors import (
    Err,
    FaissError,
    NativeFailure,
    Ok,
    Result,
    native_call,
)
from faisskit.core.native import NativeHandle, VectorData, as_ids, as_matrix
from faisskit.core.types import (
    IndexKind,
    IndexStats,
    MetricType,
    RangeSearchResult,
    Residency,
    SearchResult,
)
from faisskit.index.selector import IdSelector


class NativeIndex:
    """
    Base class of IndexImpl (host) and GpuIndexImpl (device).

    Subclasses provide the residency-specific pieces: parameter space,
    host copy for persistence, and stats residency.
    """

    __slots__ = ("_handle", "_lock", "__weakref__")

    residency: Residency = Residency.HOST

    def __init__(self, native: Any) -> None:
        self._handle: NativeHandle[Any] = NativeHandle(native, what=type(self).__name__)
        self._lock = threading.RLock()

    def _native(self) -> Any:
        return self._handle.get()

    # =========================================================================
    # INTROSPECTION
    # =========================================================================
    @property
    def d(self) -> int:
        """Vector dimensionality."""
        return int(self._native().d)

    @property
    def kind(self) -> IndexKind:
        """Variant tag of the engine structure."""
        return IndexKind.from_class_name(type(self._native()).__name__)

    @property
    def alive(self) -> bool:
        """False once the handle was consumed by a migration or released."""
        return self._handle.alive

    def dimensionality(self) -> int:
        return self.d

    def metric_type(self) -> MetricType:
        code = int(self._native().metric_type)
        metric = MetricType.from_code(code)
        if metric is None:
            raise ValueError(f"index uses unsupported metric code {code}")
        return metric

    def is_trained(self) -> bool:
        return bool(self._native().is_trained)

    def ntotal(self) -> int:
        return int(self._native().ntotal)

    def devices(self) -> tuple[int, ...]:
        return ()

    def stats(self) -> IndexStats:
        return IndexStats(
            dimension=self.d,
            ntotal=self.ntotal(),
            metric=self.metric_type(),
            is_trained=self.is_trained(),
            kind=self.kind,
            residency=self.residency,
            devices=self.devices(),
        )

    # =========================================================================
    # MUTATION
    # =========================================================================
    def train(self, vectors: VectorData) -> Result[None, FaissError]:
        """
        Fit data-dependent structures (centroids, codebooks, PCA).

        A no-op for variants that need no training.
        """
        with self._lock:
            native = self._native()
            matrix = as_matrix(vectors, int(native.d))
            if matrix.is_err():
                return matrix
            return native_call(native.train, matrix.unwrap(), operation="train")

    def add(self, vectors: VectorData) -> Result[None, FaissError]:
        """Add vectors; labels continue from the current ntotal."""
        with self._lock:
            native = self._native()
            matrix = as_matrix(vectors, int(native.d))
            if matrix.is_err():
                return matrix
            if not native.is_trained:
                return Err(NativeFailure.not_trained("add"))
            return native_call(native.add, matrix.unwrap(), operation="add")

    def add_with_ids(
        self,
        vectors: VectorData,
        ids: Union[np.ndarray, Sequence[int]],
    ) -> Result[None, FaissError]:
        """
        Add vectors with caller-chosen labels.

        Variants without explicit-id support (Flat, HNSW, ...) fail with
        NativeFailure; wrap them with an "IDMap," description prefix.
        """
        with self._lock:
            native = self._native()
            matrix = as_matrix(vectors, int(native.d))
            if matrix.is_err():
                return matrix
            x = matrix.unwrap()
            labels = as_ids(ids, x.shape[0])
            if labels.is_err():
                return labels
            if not native.is_trained:
                return Err(NativeFailure.not_trained("add_with_ids"))
            return native_call(
                native.add_with_ids, x, labels.unwrap(), operation="add_with_ids"
            )

    def remove_ids(self, selector: IdSelector) -> Result[int, FaissError]:
        """Remove every stored vector whose label the selector accepts."""
        with self._lock:
            native = self._native()
            return native_call(
                native.remove_ids, selector.native, operation="remove_ids"
            ).map(int)

    def reset(self) -> Result[None, FaissError]:
        """Drop all stored vectors. Training state is kept."""
        with self._lock:
            return native_call(self._native().reset, operation="reset")

    # =========================================================================
    # QUERIES
    # =========================================================================
    def search(self, queries: VectorData, k: int) -> Result[SearchResult, FaissError]:
        """
        k nearest neighbours for each query.

        Always returns k slots per query; missing neighbours are NO_MATCH.

        Raises:
            ValueError: k is not positive
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        native = self._native()
        matrix = as_matrix(queries, int(native.d))
        if matrix.is_err():
            return matrix
        metric = self.metric_type()
        return native_call(native.search, matrix.unwrap(), k, operation="search").map(
            lambda out: SearchResult.from_engine(out[0], out[1], metric)
        )

    def assign(self, queries: VectorData, k: int = 1) -> Result[np.ndarray, FaissError]:
        """Labels only of the k nearest neighbours, shape (nq, k)."""
        return self.search(queries, k).map(lambda result: result.labels)

    def range_search(
        self,
        queries: VectorData,
        radius: float,
    ) -> Result[RangeSearchResult, FaissError]:
        """
        All stored vectors within radius of each query.

        For L2 the radius bounds the squared distance from above; for inner
        product it bounds the score from below.
        """
        native = self._native()
        matrix = as_matrix(queries, int(native.d))
        if matrix.is_err():
            return matrix
        return native_call(
            native.range_search, matrix.unwrap(), float(radius), operation="range_search"
        ).map(lambda out: RangeSearchResult.from_engine(out[0], out[1], out[2]))

    def reconstruct(self, key: int) -> Result[np.ndarray, FaissError]:
        """Stored (or decoded) vector for label key."""
        native = self._native()
        return native_call(native.reconstruct, int(key), operation="reconstruct")

    # =========================================================================
    # TUNING
    # =========================================================================
    def _parameter_space(self) -> Any:
        return faiss.ParameterSpace()

    def set_parameter(self, name: str, value: float) -> Result[None, FaissError]:
        """
        Set a runtime search parameter such as "nprobe" or "efSearch".

        Unknown names for the variant fail with NativeFailure.
        """
        with self._lock:
            native = self._native()
            space = self._parameter_space()
            return native_call(
                space.set_index_parameter, native, name, value, operation="set_parameter"
            )

    # =========================================================================
    # PERSISTENCE
    # =========================================================================
    def _host_native(self) -> Result[Any, FaissError]:
        """Engine object in host memory suitable for writing."""
        return Ok(self._native())

    def serialize(self) -> Result[bytes, FaissError]:
        """Independently restorable byte form of this index."""
        from faisskit.index.io import serialize

        return serialize(self)

    # =========================================================================
    # LIFETIME
    # =========================================================================
    def release(self) -> None:
        """Drop the engine object now instead of at garbage collection."""
        with self._lock:
            self._handle.release()

    def __repr__(self) -> str:
        if not self._handle.alive:
            return f"{type(self).__name__}(<{self._handle.state.value}>)"
        return (
            f"{type(self).__name__}(d={self.d}, kind={self.kind.value}, "
            f"metric={self.metric_type().name}, ntotal={self.ntotal()})"
        )

