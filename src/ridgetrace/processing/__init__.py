"""High-level detection pipeline."""

from .config import RidgeDetectionConfig
from .multiscale import multiscale_accumulate, scale_noise_estimate
from .pipeline import RidgeDetector, main, render_ridges

__all__ = [
    "RidgeDetectionConfig",
    "RidgeDetector",
    "multiscale_accumulate",
    "scale_noise_estimate",
    "render_ridges",
    "main",
]
