"""
Index Persistence: Byte and File Round-Trips

The byte layout is the engine's native index format. faisskit only
guarantees the programmatic contract:

    deserialize(serialize(index)) reproduces d, metric, ntotal, is_trained
    and search results; truncated or corrupt input is a NativeFailure.

Device-resident indexes are copied to the host by the engine before being
written; the device handle is not consumed.
"""

from __future__ import annotations

import logging
import os
from enum import IntFlag
from typing import Any, Union

import faiss
import numpy as np

from faisskit.core.errors import (
    Err,
    FaissError,
    NativeFailure,
    NativeStatus,
    Ok,
    Result,
    native_call,
    require,
)
from faisskit.core.types import MetricType
from faisskit.index.base import NativeIndex
from faisskit.index.impl import IndexImpl

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class IoFlags(IntFlag):
    """Flags for read_index()."""
    NONE = 0
    MMAP = faiss.IO_FLAG_MMAP
    READ_ONLY = faiss.IO_FLAG_READ_ONLY


def _serialize_native(native: Any) -> Result[bytes, FaissError]:
    return native_call(faiss.serialize_index, native, operation="serialize_index").map(
        lambda buf: np.asarray(buf, dtype=np.uint8).tobytes()
    )


def _wrap_restored(native: Any, operation: str) -> Result[IndexImpl, FaissError]:
    """Adopt a restored engine index if its metric is one faisskit models."""
    code = int(native.metric_type)
    if MetricType.from_code(code) is None:
        return Err(NativeFailure.unsupported(operation, f"index uses unsupported metric code {code}"))
    return Ok(IndexImpl(native))


def serialize(index: NativeIndex) -> Result[bytes, FaissError]:
    """Complete, independently restorable byte form of index."""
    return index._host_native().and_then(_serialize_native)


def deserialize(data: Union[bytes, bytearray, memoryview]) -> Result[IndexImpl, FaissError]:
    """Restore a host index from serialize() output."""
    buf = np.frombuffer(bytes(data), dtype=np.uint8).copy()
    if buf.size == 0:
        return Err(NativeFailure.new(NativeStatus.RUNTIME_ERROR, "empty input", "deserialize_index"))
    restored = (
        native_call(faiss.deserialize_index, buf, operation="deserialize_index")
        .and_then(lambda obj: require(obj, "deserialized index"))
        .and_then(lambda obj: _wrap_restored(obj, "deserialize_index"))
    )
    if restored.is_ok():
        logger.debug("deserialized %d bytes into %r", buf.size, restored.unwrap())
    return restored


def write_index(index: NativeIndex, path: PathLike) -> Result[None, FaissError]:
    """Write index to a file in the engine's native format."""
    target = os.fspath(path)
    return index._host_native().and_then(
        lambda native: native_call(faiss.write_index, native, target, operation="write_index")
    )


def read_index(path: PathLike, flags: IoFlags = IoFlags.NONE) -> Result[IndexImpl, FaissError]:
    """Read an index written by write_index() (or any engine writer)."""
    return (
        native_call(faiss.read_index, os.fspath(path), int(flags), operation="read_index")
        .and_then(lambda obj: require(obj, "index read from file"))
        .and_then(lambda obj: _wrap_restored(obj, "read_index"))
    )
