"""
Id Selectors: Which Labels an Operation Applies To

Used by remove_ids(). Selectors compose:

    IdSelector.range(0, 100) & ~IdSelector.batch([3, 7])

keeps labels 0..99 except 3 and 7. Composite selectors keep their children
alive because the engine objects only hold pointers to them.
"""

from __future__ import annotations

from typing import Any, Sequence, Union

import faiss
import numpy as np


class IdSelector:
    """Engine id-selector plus the Python objects it points into."""

    __slots__ = ("_native", "_keepalive")

    def __init__(self, native: Any, keepalive: tuple[Any, ...] = ()) -> None:
        self._native = native
        self._keepalive = keepalive

    @property
    def native(self) -> Any:
        return self._native

    # =========================================================================
    # CONSTRUCTORS
    # =========================================================================
    @classmethod
    def range(cls, imin: int, imax: int) -> "IdSelector":
        """Labels in the half-open interval [imin, imax)."""
        if imax < imin:
            raise ValueError(f"range bounds reversed: [{imin}, {imax})")
        return cls(faiss.IDSelectorRange(int(imin), int(imax)))

    @classmethod
    def batch(cls, ids: Union[np.ndarray, Sequence[int]]) -> "IdSelector":
        """Exactly the given labels."""
        arr = np.ascontiguousarray(np.asarray(ids, dtype=np.int64).reshape(-1))
        return cls(faiss.IDSelectorBatch(arr.size, faiss.swig_ptr(arr)), (arr,))

    @classmethod
    def not_(cls, inner: "IdSelector") -> "IdSelector":
        return cls(faiss.IDSelectorNot(inner.native), (inner,))

    @classmethod
    def and_(cls, lhs: "IdSelector", rhs: "IdSelector") -> "IdSelector":
        return cls(faiss.IDSelectorAnd(lhs.native, rhs.native), (lhs, rhs))

    @classmethod
    def or_(cls, lhs: "IdSelector", rhs: "IdSelector") -> "IdSelector":
        return cls(faiss.IDSelectorOr(lhs.native, rhs.native), (lhs, rhs))

    @classmethod
    def xor(cls, lhs: "IdSelector", rhs: "IdSelector") -> "IdSelector":
        return cls(faiss.IDSelectorXOr(lhs.native, rhs.native), (lhs, rhs))

    # =========================================================================
    # OPERATORS
    # =========================================================================
    def __invert__(self) -> "IdSelector":
        return IdSelector.not_(self)

    def __and__(self, other: "IdSelector") -> "IdSelector":
        return IdSelector.and_(self, other)

    def __or__(self, other: "IdSelector") -> "IdSelector":
        return IdSelector.or_(self, other)

    def __xor__(self, other: "IdSelector") -> "IdSelector":
        return IdSelector.xor(self, other)

    def is_member(self, label: int) -> bool:
        return bool(self._native.is_member(int(label)))

    def __contains__(self, label: int) -> bool:
        return self.is_member(label)
