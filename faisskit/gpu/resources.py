"""
GPU Resources: Accelerator Contexts and Their Teardown Rules

A GpuResources object owns the device allocators and streams of one engine
resources instance. Device-resident indexes hold only a weak reference to it
and register themselves as dependents, so:

    - an index never keeps its resources alive
    - close() while a dependent index is still live is a ContractViolation
    - using a device index after its resources were closed is a
      ContractViolation

Typical use:

    with StandardGpuResources.new().unwrap() as res:
        gpu_index = index.to_gpu(res, 0).unwrap()
        ...
        index = gpu_index.to_cpu().unwrap()
"""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Any, Optional

import faiss

from faisskit.core.errors import (
    ContractViolation,
    Err,
    FaissError,
    NativeFailure,
    Ok,
    Result,
    native_call,
    require,
)
from faisskit.core.config import active_config
from faisskit.core.native import NativeHandle

logger = logging.getLogger(__name__)

_GPU_SYMBOLS = ("StandardGpuResources", "index_cpu_to_gpu", "index_gpu_to_cpu")


# =============================================================================
# DEVICE QUERIES
# =============================================================================
def num_gpus() -> int:
    """Number of devices visible to the engine (0 on CPU-only builds)."""
    get_num_gpus = getattr(faiss, "get_num_gpus", None)
    if get_num_gpus is None:
        return 0
    return native_call(get_num_gpus, operation="get_num_gpus").map(int).unwrap_or(0)


def gpu_available() -> bool:
    """True when the engine build exposes GPU support and a device exists."""
    return all(hasattr(faiss, name) for name in _GPU_SYMBOLS) and num_gpus() > 0


def check_device(device: int) -> Result[int, FaissError]:
    """Validate a device ordinal against the visible devices."""
    if not gpu_available():
        return Err(NativeFailure.unsupported(
            "to_gpu", "this faiss build has no GPU support or no visible device"
        ))
    count = num_gpus()
    if not 0 <= device < count:
        return Err(NativeFailure.unsupported(
            "to_gpu", f"device {device} out of range [0, {count})"
        ))
    return Ok(device)


# =============================================================================
# RESOURCES
# =============================================================================
class GpuResources:
    """
    Base class for accelerator contexts.

    Tracks the device indexes bound to it through weak references only.
    """

    __slots__ = ("_handle", "_dependents", "_lock", "__weakref__")

    def __init__(self, native: Any) -> None:
        self._handle: NativeHandle[Any] = NativeHandle(native, what=type(self).__name__)
        self._dependents: "weakref.WeakSet[Any]" = weakref.WeakSet()
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return not self._handle.alive

    def native(self) -> Any:
        """Borrow the engine resources object; fatal once closed."""
        return self._handle.get()

    def dependents(self) -> int:
        """Live device indexes currently bound to these resources."""
        with self._lock:
            return self._live_dependents()

    def _live_dependents(self) -> int:
        return sum(1 for index in self._dependents if index.alive)

    def _register(self, index: Any) -> None:
        with self._lock:
            if self.closed:
                raise ContractViolation.released(type(self).__name__)
            self._dependents.add(index)

    def _unregister(self, index: Any) -> None:
        with self._lock:
            self._dependents.discard(index)

    def close(self) -> None:
        """
        Release device allocators and streams.

        Raises:
            ContractViolation: a device index bound to these resources is live
        """
        with self._lock:
            live = self._live_dependents()
            if live:
                raise ContractViolation.resources_in_use(live)
            if not self.closed:
                logger.debug("closing %s", type(self).__name__)
            self._handle.release()

    def __enter__(self) -> "GpuResources":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"{self.dependents()} dependents"
        return f"{type(self).__name__}({state})"


class StandardGpuResources(GpuResources):
    """The engine's default resources: one temp-memory pool plus streams."""

    __slots__ = ()

    @classmethod
    def new(cls, temp_memory: Optional[int] = None) -> Result["StandardGpuResources", FaissError]:
        """
        Create resources for the visible devices.

        Args:
            temp_memory: Scratch memory in bytes (None = the applied
                EngineConfig.gpu_temp_memory, else engine default)
        """
        if temp_memory is None:
            temp_memory = active_config().gpu_temp_memory
        if not gpu_available():
            return Err(NativeFailure.unsupported(
                "StandardGpuResources", "this faiss build has no GPU support or no visible device"
            ))
        created = (
            native_call(faiss.StandardGpuResources, operation="StandardGpuResources")
            .and_then(lambda obj: require(obj, "GPU resources"))
            .map(cls)
        )
        if created.is_ok() and temp_memory is not None:
            resources = created.unwrap()
            return resources.set_temp_memory(temp_memory).map(lambda _: resources)
        return created

    # =========================================================================
    # TUNING
    # =========================================================================
    def no_temp_memory(self) -> Result[None, FaissError]:
        """Disable the scratch pool; allocations go straight to the device."""
        return native_call(self.native().noTempMemory, operation="noTempMemory")

    def set_temp_memory(self, size: int) -> Result[None, FaissError]:
        return native_call(self.native().setTempMemory, int(size), operation="setTempMemory")

    def set_pinned_memory(self, size: int) -> Result[None, FaissError]:
        return native_call(
            self.native().setPinnedMemory, int(size), operation="setPinnedMemory"
        )

    def set_default_null_stream_all_devices(self) -> Result[None, FaissError]:
        return native_call(
            self.native().setDefaultNullStreamAllDevices,
            operation="setDefaultNullStreamAllDevices",
        )
