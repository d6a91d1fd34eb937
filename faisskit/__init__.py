"""
faisskit: Typed Index Handles Over the Faiss Similarity-Search Engine

Features:
    - Build any engine index from a description string ("IVF256,PQ16", ...)
    - One capability contract for every variant and residency
    - Results instead of exceptions: every fallible call returns Ok or Err
      with a typed error (NativeFailure, InvalidDescription, InvalidEncoding,
      DimensionMismatch, NullPointer)
    - Move-only GPU migration with explicit resource teardown
    - K-means clustering

Usage:
    from faisskit import MetricType, index_factory

    index = index_factory(8, "Flat", MetricType.L2).unwrap()
    index.add(my_data).unwrap()
    result = index.search(my_queries, 5).unwrap()
    for i, (labels, distances) in enumerate(result):
        print(i, labels, distances)

    # With a GPU build of the engine
    from faisskit import StandardGpuResources

    res = StandardGpuResources.new().unwrap()
    gpu_index = index.to_gpu(res, 0).unwrap()   # `index` is consumed
    index = gpu_index.to_cpu().unwrap()         # `gpu_index` is consumed
    res.close()
"""

from __future__ import annotations

__version__ = "0.1.0"

from faisskit.core.types import (
    NO_MATCH,
    IndexKind,
    IndexStats,
    MetricType,
    RangeSearchResult,
    Residency,
    SearchResult,
)
from faisskit.core.errors import (
    ContractViolation,
    DimensionMismatch,
    Err,
    ErrorCode,
    FaissError,
    InvalidDescription,
    InvalidEncoding,
    NativeFailure,
    NullPointer,
    Ok,
    Result,
)
from faisskit.core.config import (
    ClusteringParameters,
    EngineConfig,
    active_config,
    configure_logging,
)
from faisskit.index import (
    IdSelector,
    IndexImpl,
    IoFlags,
    deserialize,
    index_factory,
    read_index,
    serialize,
    write_index,
)
from faisskit.cluster import Clustering, ClusteringResult, kmeans_clustering


# GPU symbols (lazy-loaded on first access)
def __getattr__(name: str):
    """Lazy import of the accelerator layer."""
    if name == "GpuIndexImpl":
        from faisskit.index.gpu import GpuIndexImpl
        return GpuIndexImpl
    if name in ("GpuResources", "StandardGpuResources", "gpu_available", "num_gpus"):
        from faisskit.gpu import resources
        return getattr(resources, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Version
    "__version__",
    # Types
    "NO_MATCH",
    "IndexKind",
    "IndexStats",
    "MetricType",
    "RangeSearchResult",
    "Residency",
    "SearchResult",
    # Errors
    "ContractViolation",
    "DimensionMismatch",
    "Err",
    "ErrorCode",
    "FaissError",
    "InvalidDescription",
    "InvalidEncoding",
    "NativeFailure",
    "NullPointer",
    "Ok",
    "Result",
    # Config
    "ClusteringParameters",
    "EngineConfig",
    "active_config",
    "configure_logging",
    # Index
    "IdSelector",
    "IndexImpl",
    "IoFlags",
    "index_factory",
    "serialize",
    "deserialize",
    "read_index",
    "write_index",
    # Clustering
    "Clustering",
    "ClusteringResult",
    "kmeans_clustering",
    # GPU (lazy)
    "GpuIndexImpl",
    "GpuResources",
    "StandardGpuResources",
    "gpu_available",
    "num_gpus",
]
