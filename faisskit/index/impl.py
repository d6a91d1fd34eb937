"""
IndexImpl: Host-Resident Index

The handle returned by index_factory(), deserialize() and read_index().
Migration to a device consumes it:

    gpu_index = index.to_gpu(resources, 0).unwrap()
    index.ntotal()   # ContractViolation: the host handle was consumed
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Sequence

import faiss

from faisskit.core.errors import FaissError, Result, native_call, require
from faisskit.core.types import Residency
from faisskit.index.base import NativeIndex

if TYPE_CHECKING:
    from faisskit.gpu.resources import GpuResources
    from faisskit.index.gpu import GpuIndexImpl


class IndexImpl(NativeIndex):
    """
    Host-resident index of any variant.

    The concrete variant is available as `kind`; every variant shares the
    capability set of NativeIndex.
    """

    __slots__ = ()

    residency = Residency.HOST

    def try_clone(self) -> Result["IndexImpl", FaissError]:
        """Deep copy with independent storage."""
        native = self._native()
        return (
            native_call(faiss.clone_index, native, operation="clone_index")
            .and_then(lambda obj: require(obj, "cloned index"))
            .map(IndexImpl)
        )

    # =========================================================================
    # RESIDENCY
    # =========================================================================
    def to_gpu(
        self,
        resources: "GpuResources",
        device: Optional[int] = None,
    ) -> Result["GpuIndexImpl", FaissError]:
        """
        Move this index onto one GPU (default: EngineConfig.default_device).

        On success this handle is consumed and the returned handle owns the
        device copy. On failure this handle stays valid and unchanged.
        """
        from faisskit.index.gpu import index_to_gpu

        return index_to_gpu(self, resources, device)

    to_device = to_gpu

    def to_gpu_multiple(
        self,
        resources: Sequence["GpuResources"],
        devices: Sequence[int],
    ) -> Result["GpuIndexImpl", FaissError]:
        """Move this index onto several GPUs (one resources object per device)."""
        from faisskit.index.gpu import index_to_gpu_multiple

        return index_to_gpu_multiple(self, resources, devices)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================
    @staticmethod
    def deserialize(data: bytes) -> Result["IndexImpl", FaissError]:
        from faisskit.index.io import deserialize

        return deserialize(data)

    def _consume(self) -> Any:
        """Move the engine object out of this handle."""
        with self._lock:
            return self._handle.take()
