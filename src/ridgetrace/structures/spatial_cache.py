"""
Mutable spatial index over ridge endpoints.
"""

import logging
from typing import Dict, Hashable, List, Optional

import numpy as np
from scipy.spatial import cKDTree

from .calibration import PixelCalibration
from .ridge import RidgePoint

logger = logging.getLogger(__name__)


class SpatialCache:
    """
    Radius queries over a changing set of keyed ridge points.

    Points are indexed by their (x, y) pixel coordinates in a KD-tree that is
    rebuilt lazily after insertions. Removal only drops the key; stale tree
    entries are filtered out when querying. Keys must be hashable and
    mutually orderable (e.g. tuples of ints).
    """

    def __init__(self):
        self._points: Dict[Hashable, RidgePoint] = {}
        self._tree: Optional[cKDTree] = None
        self._tree_keys: List[Hashable] = []
        self._dirty = False

    def __len__(self) -> int:
        return len(self._points)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._points

    def is_empty(self) -> bool:
        return not self._points

    def point(self, key: Hashable) -> RidgePoint:
        return self._points[key]

    def insert(self, key: Hashable, point: RidgePoint) -> None:
        if key in self._points:
            return
        self._points[key] = point
        self._dirty = True

    def remove(self, key: Hashable) -> None:
        self._points.pop(key, None)

    def query(
        self,
        point: RidgePoint,
        radius: float,
        calibration: Optional[PixelCalibration] = None,
    ) -> List[Hashable]:
        """
        Finds the keys of all indexed points within `radius` of `point`.

        The search envelope is expanded to `radius / min(pixel_width, pixel_height)`
        pixels when the calibration has a pixel size; results are then filtered
        by the true (calibrated) distance.

        Args:
            point: Query point.
            radius: Search radius, in calibrated units if available.
            calibration: Optional pixel calibration.

        Returns:
            Keys ordered by increasing distance, ties broken by (z, y, x, key).
        """
        if not self._points:
            return []
        if self._dirty or self._tree is None:
            self._rebuild()

        expansion = radius
        if calibration is not None and calibration.has_pixel_size:
            expansion = radius / calibration.min_pixel_size

        indices = self._tree.query_ball_point([point.x, point.y], r=expansion)
        radius_sq = radius * radius
        matches = []
        for i in indices:
            key = self._tree_keys[i]
            candidate = self._points.get(key)
            if candidate is None:
                continue
            dist_sq = point.distance_sq(candidate, calibration)
            if dist_sq <= radius_sq:
                matches.append((dist_sq, candidate.z, candidate.y, candidate.x, key))
        matches.sort()
        return [m[4] for m in matches]

    def _rebuild(self) -> None:
        self._tree_keys = list(self._points)
        coords = np.array(
            [[self._points[k].x, self._points[k].y] for k in self._tree_keys], dtype=float
        )
        self._tree = cKDTree(coords)
        self._dirty = False
        logger.debug(f"Spatial cache rebuilt with {len(self._tree_keys)} points.")
