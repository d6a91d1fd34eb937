"""
Core Type Definitions: Metrics, Index Variants and Search Results

Value types shared by every index variant and residency:
    - MetricType: closed set of similarity measures
    - IndexKind: closed tag of the concrete engine variant behind an index
    - Residency: host or device
    - SearchResult / RangeSearchResult: per-call results owned by the caller
    - IndexStats: introspection snapshot

Result Layout:
    SearchResult holds two (nq, k) arrays. Slots without a neighbour carry
    the NO_MATCH label and the engine's worst-distance placeholder.
    RangeSearchResult holds flat label/distance buffers delimited by an
    offsets array of length nq + 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

import numpy as np


# Label reported for result slots that hold no neighbour.
NO_MATCH = -1


# =============================================================================
# METRIC TYPES
# =============================================================================
class MetricType(Enum):
    """
    Similarity measure an index scores with. Fixed at construction.

    Values are the engine's metric codes.
    """
    INNER_PRODUCT = 0   # Inner product, higher = more similar
    L2 = 1              # Squared Euclidean, lower = more similar

    @property
    def code(self) -> int:
        return self.value

    @classmethod
    def from_code(cls, code: int) -> Optional["MetricType"]:
        """Inverse of `code`; None for codes outside the supported set."""
        for metric in cls:
            if metric.value == code:
                return metric
        return None

    @classmethod
    def parse(cls, text: str) -> "MetricType":
        """Parse a user-facing metric name ("l2", "ip", "inner_product")."""
        name = text.strip().lower()
        if name == "l2":
            return cls.L2
        if name in ("ip", "inner_product", "innerproduct"):
            return cls.INNER_PRODUCT
        raise ValueError(f"Unknown metric: {text!r}")

    def is_similarity(self) -> bool:
        """True if higher values = more similar."""
        return self is MetricType.INNER_PRODUCT

    def is_distance(self) -> bool:
        """True if lower values = more similar."""
        return self is MetricType.L2


# =============================================================================
# INDEX VARIANTS
# =============================================================================
class IndexKind(Enum):
    """Closed tag of the engine structure behind an index handle."""
    FLAT = "flat"
    IVF_FLAT = "ivf_flat"
    IVF_PQ = "ivf_pq"
    IVF_SQ = "ivf_sq"
    PQ = "pq"
    SQ = "sq"
    HNSW = "hnsw"
    LSH = "lsh"
    PRE_TRANSFORM = "pre_transform"
    ID_MAP = "id_map"
    REFINE = "refine"
    OTHER = "other"

    @classmethod
    def from_class_name(cls, name: str) -> "IndexKind":
        """Map an engine class name (CPU or GPU) to its variant tag."""
        return _KIND_BY_CLASS.get(name, cls.OTHER)


_KIND_BY_CLASS: dict[str, IndexKind] = {
    "IndexFlat": IndexKind.FLAT,
    "IndexFlatL2": IndexKind.FLAT,
    "IndexFlatIP": IndexKind.FLAT,
    "GpuIndexFlat": IndexKind.FLAT,
    "GpuIndexFlatL2": IndexKind.FLAT,
    "GpuIndexFlatIP": IndexKind.FLAT,
    "IndexIVFFlat": IndexKind.IVF_FLAT,
    "GpuIndexIVFFlat": IndexKind.IVF_FLAT,
    "IndexIVFPQ": IndexKind.IVF_PQ,
    "IndexIVFPQR": IndexKind.IVF_PQ,
    "IndexIVFPQFastScan": IndexKind.IVF_PQ,
    "GpuIndexIVFPQ": IndexKind.IVF_PQ,
    "IndexIVFScalarQuantizer": IndexKind.IVF_SQ,
    "GpuIndexIVFScalarQuantizer": IndexKind.IVF_SQ,
    "IndexPQ": IndexKind.PQ,
    "IndexPQFastScan": IndexKind.PQ,
    "IndexScalarQuantizer": IndexKind.SQ,
    "IndexHNSW": IndexKind.HNSW,
    "IndexHNSWFlat": IndexKind.HNSW,
    "IndexHNSWPQ": IndexKind.HNSW,
    "IndexHNSWSQ": IndexKind.HNSW,
    "IndexLSH": IndexKind.LSH,
    "IndexPreTransform": IndexKind.PRE_TRANSFORM,
    "IndexIDMap": IndexKind.ID_MAP,
    "IndexIDMap2": IndexKind.ID_MAP,
    "IndexRefine": IndexKind.REFINE,
    "IndexRefineFlat": IndexKind.REFINE,
}


class Residency(Enum):
    """Where an index's memory and compute live."""
    HOST = "host"
    DEVICE = "device"


# =============================================================================
# SEARCH RESULT: K NEAREST NEIGHBOURS PER QUERY
# =============================================================================
@dataclass(slots=True)
class SearchResult:
    """
    k nearest neighbours for each of nq queries.

    Attributes:
        labels: int64 array of shape (nq, k), NO_MATCH in empty slots
        distances: float32 array of shape (nq, k)

    Rows are ordered best-first for the index metric; equal distances are
    ordered by ascending label.
    """
    labels: np.ndarray
    distances: np.ndarray

    @classmethod
    def from_engine(
        cls,
        distances: np.ndarray,
        labels: np.ndarray,
        metric: MetricType,
    ) -> "SearchResult":
        """Build from raw engine output, fixing the order of tied entries."""
        distances = np.asarray(distances, dtype=np.float32)
        labels = np.asarray(labels, dtype=np.int64)
        if labels.size == 0:
            return cls(labels=labels.copy(), distances=distances.copy())

        rank_key = distances if metric.is_distance() else -distances
        # Keys are applied last-to-first: empty slots last, then score, then label.
        order = np.lexsort((labels, rank_key, labels == NO_MATCH), axis=-1)
        return cls(
            labels=np.take_along_axis(labels, order, axis=-1),
            distances=np.take_along_axis(distances, order, axis=-1),
        )

    @property
    def nq(self) -> int:
        return int(self.labels.shape[0])

    @property
    def k(self) -> int:
        return int(self.labels.shape[1]) if self.labels.ndim == 2 else 0

    def row(self, i: int) -> tuple[np.ndarray, np.ndarray]:
        """(labels, distances) for query i."""
        return self.labels[i], self.distances[i]

    def __len__(self) -> int:
        return self.nq

    def __iter__(self) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        for i in range(self.nq):
            yield self.row(i)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON/API response."""
        return {
            "labels": self.labels.tolist(),
            "distances": self.distances.tolist(),
        }


# =============================================================================
# RANGE SEARCH RESULT: VARIABLE-LENGTH HITS PER QUERY
# =============================================================================
@dataclass(slots=True)
class RangeSearchResult:
    """
    Neighbours within a radius, concatenated over all queries.

    Attributes:
        lims: int64 offsets, length nq + 1; query i owns [lims[i], lims[i+1])
        labels: int64 flat buffer of matched labels
        distances: float32 flat buffer aligned with labels
    """
    lims: np.ndarray
    labels: np.ndarray
    distances: np.ndarray

    @classmethod
    def from_engine(
        cls,
        lims: np.ndarray,
        distances: np.ndarray,
        labels: np.ndarray,
    ) -> "RangeSearchResult":
        return cls(
            lims=np.asarray(lims, dtype=np.int64),
            labels=np.asarray(labels, dtype=np.int64),
            distances=np.asarray(distances, dtype=np.float32),
        )

    @property
    def nq(self) -> int:
        return int(len(self.lims) - 1)

    def query(self, i: int) -> tuple[np.ndarray, np.ndarray]:
        """(labels, distances) within the radius of query i."""
        if not 0 <= i < self.nq:
            raise IndexError(f"query {i} out of range [0, {self.nq})")
        start, end = int(self.lims[i]), int(self.lims[i + 1])
        return self.labels[start:end], self.distances[start:end]

    def counts(self) -> np.ndarray:
        """Number of hits per query."""
        return np.diff(self.lims)

    def __len__(self) -> int:
        """Total number of hits over all queries."""
        return int(self.lims[-1]) if len(self.lims) else 0

    def __iter__(self) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        for i in range(self.nq):
            yield self.query(i)


# =============================================================================
# INDEX STATISTICS
# =============================================================================
@dataclass(frozen=True, slots=True)
class IndexStats:
    """
    Introspection snapshot of an index.

    Attributes:
        dimension: Vector dimensionality d
        ntotal: Number of stored vectors
        metric: Scoring metric
        is_trained: Whether the index is ready for add/search
        kind: Engine variant tag
        residency: Host or device
        devices: Device ordinals for device-resident indexes
    """
    dimension: int
    ntotal: int
    metric: MetricType
    is_trained: bool
    kind: IndexKind
    residency: Residency = Residency.HOST
    devices: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON/API response."""
        return {
            "dimension": self.dimension,
            "ntotal": self.ntotal,
            "metric": self.metric.name,
            "is_trained": self.is_trained,
            "kind": self.kind.value,
            "residency": self.residency.value,
            "devices": list(self.devices),
        }
