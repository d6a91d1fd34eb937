"""
GPU Module: Accelerator Resources

Importable on CPU-only engine builds; gpu_available() reports whether
migrations can succeed.
"""

from faisskit.gpu.resources import (
    GpuResources,
    StandardGpuResources,
    check_device,
    gpu_available,
    num_gpus,
)

__all__ = [
    "GpuResources",
    "StandardGpuResources",
    "check_device",
    "gpu_available",
    "num_gpus",
]
