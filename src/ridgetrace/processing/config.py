"""
Configuration for multiscale ridge detection.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass
class RidgeDetectionConfig:
    """
    Parameters of a ridge detection run.

    Scales follow a geometric schedule: sigma_start, sigma_start * sigma_scale,
    ... (n_scales values, in pixels). The strength threshold at each scale is
    the propagated noise estimate multiplied by `noise_threshold`.
    """

    sigma_start: float = 1.0
    sigma_scale: float = 1.5
    n_scales: int = 1
    noise_threshold: float = 5.0
    noise_k: float = 3.0
    do_3d: bool = True
    do_merge: bool = True
    angle_threshold: float = 25.0  # degrees
    distance_threshold: float = 1.5  # calibrated units when available
    min_points: int = 1
    remove_isolated_pixels: bool = True
    sqrt_transform: bool = False
    channel: Optional[int] = None  # index along a trailing channel axis
    n_jobs: int = 1
    show_progress: bool = False

    def __post_init__(self):
        if self.sigma_start <= 0:
            raise ValueError(f"sigma_start must be positive, got {self.sigma_start}")
        if self.sigma_scale <= 0:
            raise ValueError(f"sigma_scale must be positive, got {self.sigma_scale}")
        if self.n_scales < 1:
            raise ValueError(f"n_scales must be at least 1, got {self.n_scales}")
        if self.noise_threshold < 0:
            raise ValueError(f"noise_threshold must be non-negative, got {self.noise_threshold}")
        if self.noise_k <= 0:
            raise ValueError(f"noise_k must be positive, got {self.noise_k}")
        if not 0 <= self.angle_threshold <= 180:
            raise ValueError(f"angle_threshold must be in [0, 180], got {self.angle_threshold}")
        if self.distance_threshold < 0:
            raise ValueError(
                f"distance_threshold must be non-negative, got {self.distance_threshold}"
            )
        if self.min_points < 1:
            raise ValueError(f"min_points must be at least 1, got {self.min_points}")
        if self.n_jobs < 1:
            raise ValueError(f"n_jobs must be at least 1, got {self.n_jobs}")
        if self.channel is not None and self.channel < 0:
            raise ValueError(f"channel must be non-negative, got {self.channel}")

    def sigmas(self) -> List[float]:
        """Smoothing scales in increasing order (for sigma_scale > 1)."""
        return [self.sigma_start * self.sigma_scale**i for i in range(self.n_scales)]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
