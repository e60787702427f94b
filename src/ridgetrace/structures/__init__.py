"""Data structures for ridge representation."""

from .calibration import PixelCalibration
from .ridge import Ridge, RidgePoint, oriented_tangent
from .spatial_cache import SpatialCache

__all__ = ["PixelCalibration", "Ridge", "RidgePoint", "SpatialCache", "oriented_tangent"]
