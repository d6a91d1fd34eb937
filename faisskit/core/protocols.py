"""
Protocol Definitions: The Index Capability Contract

Defines structural interfaces for:
    - IndexProtocol: what every index offers, whatever its variant or residency
    - GpuResourcesProtocol: an accelerator context an index can be bound to
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    TYPE_CHECKING,
    Protocol,
    Sequence,
    runtime_checkable,
)

if TYPE_CHECKING:
    import numpy as np

    from faisskit.core.errors import FaissError, Result
    from faisskit.core.native import VectorData
    from faisskit.core.types import (
        IndexKind,
        IndexStats,
        MetricType,
        RangeSearchResult,
        SearchResult,
    )
    from faisskit.index.selector import IdSelector


# =============================================================================
# INDEX PROTOCOL
# =============================================================================
@runtime_checkable
class IndexProtocol(Protocol):
    """
    Capability contract of every index.

    Implementations:
        - IndexImpl: host-resident index
        - GpuIndexImpl: device-resident index
    """

    @property
    def d(self) -> int:
        """Vector dimensionality."""
        ...

    @property
    def kind(self) -> "IndexKind":
        """Variant tag of the engine structure."""
        ...

    def dimensionality(self) -> int: ...

    def metric_type(self) -> "MetricType": ...

    def is_trained(self) -> bool: ...

    def ntotal(self) -> int: ...

    @abstractmethod
    def train(self, vectors: "VectorData") -> "Result[None, FaissError]":
        """Fit data-dependent structures."""
        ...

    @abstractmethod
    def add(self, vectors: "VectorData") -> "Result[None, FaissError]":
        """Add vectors with implicit sequential labels."""
        ...

    @abstractmethod
    def add_with_ids(
        self,
        vectors: "VectorData",
        ids: "Sequence[int] | np.ndarray",
    ) -> "Result[None, FaissError]":
        """Add vectors with caller-supplied labels."""
        ...

    @abstractmethod
    def search(self, queries: "VectorData", k: int) -> "Result[SearchResult, FaissError]":
        """k nearest neighbours per query."""
        ...

    @abstractmethod
    def range_search(
        self,
        queries: "VectorData",
        radius: float,
    ) -> "Result[RangeSearchResult, FaissError]":
        """Neighbours within radius per query."""
        ...

    @abstractmethod
    def remove_ids(self, selector: "IdSelector") -> "Result[int, FaissError]":
        """Remove selected labels. Returns count removed."""
        ...

    @abstractmethod
    def reset(self) -> "Result[None, FaissError]":
        """Drop all stored vectors."""
        ...

    @abstractmethod
    def serialize(self) -> "Result[bytes, FaissError]":
        """Independently restorable byte form."""
        ...

    @abstractmethod
    def stats(self) -> "IndexStats":
        """Introspection snapshot."""
        ...


# =============================================================================
# GPU RESOURCES PROTOCOL
# =============================================================================
@runtime_checkable
class GpuResourcesProtocol(Protocol):
    """
    Accelerator execution context.

    Implementations:
        - StandardGpuResources
    """

    @property
    def closed(self) -> bool: ...

    @abstractmethod
    def native(self) -> object:
        """Borrow the engine resources object."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release device allocators and streams."""
        ...
