"""
Core Module: Types, Errors, Configuration and Native Handles

Self-contained module with no engine dependency beyond numpy.
Provides the foundational abstractions shared by every index variant.
"""

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
    NativeStatus,
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
from faisskit.core.protocols import (
    GpuResourcesProtocol,
    IndexProtocol,
)

__all__ = [
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
    "NativeStatus",
    "NullPointer",
    "Ok",
    "Result",
    # Config
    "ClusteringParameters",
    "EngineConfig",
    "active_config",
    "configure_logging",
    # Protocols
    "GpuResourcesProtocol",
    "IndexProtocol",
]
