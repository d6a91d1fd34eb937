"""
Configuration Classes: Engine, Clustering and Logging Settings

Provides structured configuration with validation for:
    - Engine process-wide settings (threads, default device, GPU scratch memory)
    - K-means clustering parameters
    - Logging setup for applications embedding faisskit
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Optional, TextIO


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================
@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Process-wide engine settings.

    Parameters:
        omp_threads: Worker threads used by engine kernels (None = engine default)
        default_device: GPU ordinal used when none is given
        gpu_temp_memory: Scratch memory per GPU resources object in bytes
            (None = engine default)
        log_level: Name of the level for the faisskit logger
    """
    omp_threads: Optional[int] = None
    default_device: int = 0
    gpu_temp_memory: Optional[int] = None
    log_level: str = "WARNING"

    def validate(self) -> Optional[str]:
        if self.omp_threads is not None and self.omp_threads < 1:
            return f"omp_threads must be >= 1, got {self.omp_threads}"
        if self.default_device < 0:
            return f"default_device must be >= 0, got {self.default_device}"
        if self.gpu_temp_memory is not None and self.gpu_temp_memory < 0:
            return f"gpu_temp_memory must be >= 0, got {self.gpu_temp_memory}"
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            return f"unknown log_level {self.log_level!r}"
        return None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        threads = os.getenv("FAISSKIT_OMP_THREADS")
        temp_memory = os.getenv("FAISSKIT_GPU_TEMP_MEMORY")
        return cls(
            omp_threads=int(threads) if threads else None,
            default_device=int(os.getenv("FAISSKIT_DEVICE", "0")),
            gpu_temp_memory=int(temp_memory) if temp_memory else None,
            log_level=os.getenv("FAISSKIT_LOG_LEVEL", "WARNING"),
        )

    def apply(self) -> None:
        """
        Push settings into the engine and the faisskit logger, and make this
        the config consulted for GPU defaults (see active_config()).
        """
        global _active
        if error := self.validate():
            raise ValueError(error)
        _active = self
        if self.omp_threads is not None:
            import faiss
            faiss.omp_set_num_threads(self.omp_threads)
        logging.getLogger("faisskit").setLevel(self.log_level.upper())


_active = EngineConfig()


def active_config() -> EngineConfig:
    """The most recently applied EngineConfig (defaults until apply() runs)."""
    return _active


# =============================================================================
# CLUSTERING CONFIGURATION
# =============================================================================
@dataclass(frozen=True, slots=True)
class ClusteringParameters:
    """
    K-means training parameters.

    Parameters:
        niter: Clustering iterations
        nredo: Number of restarts; the best run is kept
        spherical: Normalize centroids after each iteration
        int_centroids: Round centroids to integers
        update_index: Re-train the assignment index after each iteration
        frozen_centroids: Keep provided initial centroids fixed
        min_points_per_centroid: Below this the engine warns
        max_points_per_centroid: Above this the training set is subsampled
        seed: Random seed
        decode_block_size: Batch size when decoding codes during training
    """
    niter: int = 25
    nredo: int = 1
    verbose: bool = False
    spherical: bool = False
    int_centroids: bool = False
    update_index: bool = False
    frozen_centroids: bool = False
    min_points_per_centroid: int = 39
    max_points_per_centroid: int = 256
    seed: int = 1234
    decode_block_size: int = 32768

    def validate(self) -> Optional[str]:
        if self.niter < 1:
            return f"niter must be >= 1, got {self.niter}"
        if self.nredo < 1:
            return f"nredo must be >= 1, got {self.nredo}"
        if self.min_points_per_centroid < 0:
            return f"min_points_per_centroid must be >= 0, got {self.min_points_per_centroid}"
        if self.max_points_per_centroid < self.min_points_per_centroid:
            return (
                "max_points_per_centroid must be >= min_points_per_centroid, "
                f"got {self.max_points_per_centroid} < {self.min_points_per_centroid}"
            )
        return None


# =============================================================================
# LOGGING
# =============================================================================
def configure_logging(
    level: str = "INFO",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Attach a plain-text handler to the faisskit logger.

    The library never calls this itself; applications opt in.

    Args:
        level: Minimum log level name
        stream: Output stream (default: stderr)
    """
    root = logging.getLogger("faisskit")
    root.setLevel(level.upper())
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level.upper())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    ))
    root.addHandler(handler)
