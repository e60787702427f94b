"""
ridgetrace - Multiscale ridge detection

A Python package for detecting curvilinear structures (fibres, vessels,
filaments) of varying width in 2D images and 3D stacks.
"""

__version__ = "0.1.0"

from .core.accumulator import ScaleAccumulator
from .core.merging import merge_ridges
from .core.noise import estimate_noise
from .core.tracing import trace_lines
from .processing.config import RidgeDetectionConfig
from .processing.pipeline import RidgeDetector, render_ridges
from .structures.calibration import PixelCalibration
from .structures.ridge import Ridge, RidgePoint

__all__ = [
    "PixelCalibration",
    "Ridge",
    "RidgeDetectionConfig",
    "RidgeDetector",
    "RidgePoint",
    "ScaleAccumulator",
    "estimate_noise",
    "merge_ridges",
    "render_ridges",
    "trace_lines",
]
