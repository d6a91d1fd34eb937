"""
GpuIndexImpl: Device-Resident Index and the Residency Transitions

    HostResident --to_gpu()--> DeviceResident --to_cpu()--> HostResident

Both transitions are moves. The engine copy runs first; only when it
succeeds is the source handle consumed, so a failed migration leaves the
source usable and unchanged and a successful one leaves exactly one live
handle.
"""

from __future__ import annotations

import logging
import weakref
from typing import Any, Optional, Sequence

import faiss

from faisskit.core.errors import (
    ContractViolation,
    Err,
    FaissError,
    Ok,
    Result,
    native_call,
    require,
)
from faisskit.core.config import active_config
from faisskit.core.types import Residency
from faisskit.gpu.resources import GpuResources, check_device
from faisskit.index.base import NativeIndex
from faisskit.index.impl import IndexImpl

logger = logging.getLogger(__name__)


class GpuIndexImpl(NativeIndex):
    """
    Device-resident index.

    Holds weak references to the resources it runs on; every call checks
    they are still open.
    """

    __slots__ = ("_resources", "_devices")

    residency = Residency.DEVICE

    def __init__(
        self,
        native: Any,
        resources: Sequence[GpuResources],
        devices: Sequence[int],
    ) -> None:
        super().__init__(native)
        self._resources = tuple(weakref.ref(res) for res in resources)
        self._devices = tuple(int(device) for device in devices)

    def _native(self) -> Any:
        native = self._handle.get()
        for ref in self._resources:
            res = ref()
            if res is None or res.closed:
                raise ContractViolation(
                    "GPU resources backing this index were released before the index"
                )
        return native

    @property
    def device(self) -> int:
        """First (or only) device ordinal."""
        return self._devices[0]

    def devices(self) -> tuple[int, ...]:
        return self._devices

    def _parameter_space(self) -> Any:
        return faiss.GpuParameterSpace()

    def _host_native(self) -> Result[Any, FaissError]:
        """Host copy made by the engine; this handle stays device-resident."""
        return (
            native_call(faiss.index_gpu_to_cpu, self._native(), operation="index_gpu_to_cpu")
            .and_then(lambda obj: require(obj, "host index"))
        )

    def to_cpu(self) -> Result[IndexImpl, FaissError]:
        """
        Move this index back to host memory.

        On success this handle is consumed, device memory is released and the
        returned index is independent of any GPU resources.
        """
        return index_to_cpu(self)

    to_host = to_cpu

    def _detach(self) -> None:
        for ref in self._resources:
            res = ref()
            if res is not None:
                res._unregister(self)
        self._resources = ()

    def release(self) -> None:
        """Free the device copy now; unbinds from the resources."""
        with self._lock:
            self._handle.release()
            self._detach()


# =============================================================================
# TRANSITIONS
# =============================================================================
def index_to_gpu(
    index: IndexImpl,
    resources: GpuResources,
    device: Optional[int] = None,
) -> Result[GpuIndexImpl, FaissError]:
    """Move a host index to one device (default: the applied EngineConfig.default_device)."""
    if device is None:
        device = active_config().default_device
    with index._lock:
        native = index._native()
        checked = check_device(device)
        if checked.is_err():
            return checked
        copied = native_call(
            faiss.index_cpu_to_gpu, resources.native(), device, native,
            operation="index_cpu_to_gpu",
        ).and_then(lambda obj: require(obj, "device index"))
        if copied.is_err():
            return copied

        gpu_index = GpuIndexImpl(copied.unwrap(), (resources,), (device,))
        resources._register(gpu_index)
        index._consume()
        logger.debug("moved %s index to device %d", gpu_index.kind.value, device)
        return Ok(gpu_index)


def index_to_gpu_multiple(
    index: IndexImpl,
    resources: Sequence[GpuResources],
    devices: Sequence[int],
) -> Result[GpuIndexImpl, FaissError]:
    """Move a host index onto several devices, one resources object each."""
    if len(resources) != len(devices) or not devices:
        raise ValueError(
            f"need one resources object per device, got {len(resources)} for {len(devices)}"
        )
    with index._lock:
        native = index._native()
        for device in devices:
            checked = check_device(device)
            if checked.is_err():
                return checked
        copied = native_call(
            faiss.index_cpu_to_gpu_multiple_py,
            [res.native() for res in resources],
            native,
            gpus=list(devices),
            operation="index_cpu_to_gpu_multiple",
        ).and_then(lambda obj: require(obj, "device index"))
        if copied.is_err():
            return copied

        gpu_index = GpuIndexImpl(copied.unwrap(), resources, devices)
        for res in resources:
            res._register(gpu_index)
        index._consume()
        logger.debug("moved index to devices %s", list(devices))
        return Ok(gpu_index)


def index_to_cpu(index: GpuIndexImpl) -> Result[IndexImpl, FaissError]:
    """Move a device index back to the host."""
    with index._lock:
        copied = index._host_native()
        if copied.is_err():
            return copied

        index._handle.take()
        index._detach()
        logger.debug("moved index from devices %s to host", list(index.devices()))
        return Ok(IndexImpl(copied.unwrap()))
