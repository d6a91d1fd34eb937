"""
Native Handles and Buffer Validation

NativeHandle is the single owner of one engine object. It is never copied;
migration takes the object out (tombstoning the handle) and every later
access raises ContractViolation. Release drops the engine object exactly once.

as_matrix / as_ids validate caller buffers before anything crosses the
engine boundary, so layout errors surface as DimensionMismatch and never
reach the engine.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Generic, Optional, Sequence, TypeVar, Union

import numpy as np

from faisskit.core.errors import (
    ContractViolation,
    DimensionMismatch,
    Err,
    FaissError,
    Ok,
    Result,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

VectorData = Union[np.ndarray, Sequence[float], Sequence[Sequence[float]]]


class HandleState(Enum):
    LIVE = "live"
    CONSUMED = "consumed"
    RELEASED = "released"


class NativeHandle(Generic[T]):
    """
    Single-owner wrapper around an engine object.

    States:
        LIVE -> CONSUMED   take(): ownership moved to a new handle
        LIVE -> RELEASED   release(): engine object dropped
    """

    __slots__ = ("_obj", "_what", "_state")

    def __init__(self, obj: T, what: str = "index") -> None:
        self._obj: Optional[T] = obj
        self._what = what
        self._state = HandleState.LIVE

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def alive(self) -> bool:
        return self._state is HandleState.LIVE

    def get(self) -> T:
        """Borrow the engine object; fatal if the handle is no longer live."""
        if self._state is HandleState.CONSUMED:
            raise ContractViolation.consumed(self._what)
        if self._state is HandleState.RELEASED or self._obj is None:
            raise ContractViolation.released(self._what)
        return self._obj

    def take(self) -> T:
        """Move the engine object out and tombstone this handle."""
        obj = self.get()
        self._obj = None
        self._state = HandleState.CONSUMED
        return obj

    def release(self) -> None:
        """Drop the engine object. Later calls are no-ops."""
        if self._state is not HandleState.LIVE:
            return
        self._obj = None
        self._state = HandleState.RELEASED
        logger.debug("released native %s", self._what)

    def __copy__(self) -> Any:
        raise TypeError("NativeHandle cannot be copied")

    def __deepcopy__(self, memo: dict) -> Any:
        raise TypeError("NativeHandle cannot be copied")

    def __repr__(self) -> str:
        return f"NativeHandle({self._what}, {self._state.value})"


# =============================================================================
# BUFFER VALIDATION
# =============================================================================
def as_matrix(vectors: VectorData, d: int) -> Result[np.ndarray, FaissError]:
    """
    Coerce caller data into a contiguous float32 (n, d) matrix.

    Flat input must have a length that is a multiple of d; 2-D input must
    have rows of width d. On mismatch, `actual` is the flattened length.
    """
    arr = np.asarray(vectors, dtype=np.float32)
    if arr.ndim == 2:
        if arr.shape[1] != d:
            return Err(DimensionMismatch.vectors(d, int(arr.size)))
    else:
        flat = arr.reshape(-1)
        if flat.size % d != 0:
            return Err(DimensionMismatch.vectors(d, int(flat.size)))
        arr = flat.reshape(-1, d)
    return Ok(np.ascontiguousarray(arr))


def as_ids(ids: Union[np.ndarray, Sequence[int]], n: int) -> Result[np.ndarray, FaissError]:
    """Coerce caller labels into a contiguous int64 array of length n."""
    arr = np.ascontiguousarray(np.asarray(ids, dtype=np.int64).reshape(-1))
    if arr.size != n:
        return Err(DimensionMismatch.ids(n, int(arr.size)))
    return Ok(arr)
