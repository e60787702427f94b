"""
Ridge points and the polylines built from them.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np

from .calibration import PixelCalibration


@dataclass(eq=False)
class RidgePoint:
    """
    A single ridge pixel with the measurements of its winning scale.

    Points compare by identity. The orientation (eig_x, eig_y, eig_z) is the
    ridge tangent estimated from the Hessian; its sign is arbitrary and is
    resolved on demand with `oriented_tangent`. `eig_z` is NaN for 2D images.
    """

    x: int
    y: int
    z: int
    strength: float
    scale: float
    eig_x: float
    eig_y: float
    eig_z: float = math.nan

    @property
    def is_3d(self) -> bool:
        return math.isfinite(self.eig_z)

    @property
    def eigenvector(self) -> np.ndarray:
        if self.is_3d:
            return np.array([self.eig_x, self.eig_y, self.eig_z], dtype=float)
        return np.array([self.eig_x, self.eig_y], dtype=float)

    @property
    def index(self) -> Tuple[int, int, int]:
        """Grid index (z, y, x) of the point."""
        return (self.z, self.y, self.x)

    def displacement(
        self, other: "RidgePoint", calibration: Optional[PixelCalibration] = None
    ) -> Tuple[float, float, float]:
        """Displacement (dx, dy, dz) from this point to `other`, calibrated if possible."""
        dx = float(other.x - self.x)
        dy = float(other.y - self.y)
        dz = float(other.z - self.z)
        if calibration is not None and calibration.has_pixel_size:
            dx *= calibration.pixel_width
            dy *= calibration.pixel_height
            if dz != 0 and calibration.has_z_spacing:
                dz *= calibration.z_spacing
        return dx, dy, dz

    def distance_sq(
        self, other: "RidgePoint", calibration: Optional[PixelCalibration] = None
    ) -> float:
        dx, dy, dz = self.displacement(other, calibration)
        return dx * dx + dy * dy + dz * dz

    def distance(
        self, other: "RidgePoint", calibration: Optional[PixelCalibration] = None
    ) -> float:
        return math.sqrt(self.distance_sq(other, calibration))

    def eigenvector_dot(self, other: "RidgePoint") -> float:
        """Dot product of the raw (unoriented) eigenvectors of two points."""
        dot = self.eig_x * other.eig_x + self.eig_y * other.eig_y
        if self.is_3d and other.is_3d:
            dot += self.eig_z * other.eig_z
        return dot

    def displacement_dot(
        self,
        other: "RidgePoint",
        calibration: Optional[PixelCalibration] = None,
        vector: Optional[np.ndarray] = None,
    ) -> float:
        """
        Dot product between an orientation vector and the unit displacement
        from this point towards `other`.

        Args:
            other: Target point.
            calibration: Optional calibration used to scale the displacement.
            vector: Orientation to test (defaults to this point's eigenvector).

        Returns:
            The dot product, or 0 if the points coincide.
        """
        if vector is None:
            vector = self.eigenvector
        dx, dy, dz = self.displacement(other, calibration)
        if len(vector) == 3:
            norm = math.sqrt(dx * dx + dy * dy + dz * dz)
            if norm == 0:
                return 0.0
            return (vector[0] * dx + vector[1] * dy + vector[2] * dz) / norm
        norm = math.sqrt(dx * dx + dy * dy)
        if norm == 0:
            return 0.0
        return (vector[0] * dx + vector[1] * dy) / norm


def oriented_tangent(point: RidgePoint, neighbor: Optional[RidgePoint]) -> np.ndarray:
    """
    Returns the point's eigenvector with its sign chosen to point away from
    `neighbor`, i.e. outwards from the ridge when `point` is an endpoint and
    `neighbor` the next point along it.

    The point itself is never modified.
    """
    vector = point.eigenvector
    if neighbor is None:
        return vector
    # Outward means opposite to the direction of the neighbor (pixel units)
    if point.displacement_dot(neighbor, None, vector) > 0:
        return -vector
    return vector


class Ridge:
    """
    An ordered sequence of ridge points forming an open polyline.

    Ridges are created by tracing a thinned ridge mask and may be extended
    by merging with other ridges. The first and last points are the endpoints.
    """

    def __init__(self, points: Iterable[RidgePoint]):
        self.points: List[RidgePoint] = list(points)
        if not self.points:
            raise ValueError("A ridge must contain at least one point.")

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[RidgePoint]:
        return iter(self.points)

    def __repr__(self) -> str:
        start, end = self.start, self.end
        return (
            f"Ridge(n_points={self.n_points}, start=({start.x}, {start.y}, {start.z}), "
            f"end=({end.x}, {end.y}, {end.z}))"
        )

    @property
    def n_points(self) -> int:
        return len(self.points)

    @property
    def start(self) -> RidgePoint:
        return self.points[0]

    @property
    def end(self) -> RidgePoint:
        return self.points[-1]

    def start_tangent(self) -> np.ndarray:
        """Tangent at the start, pointing away from the rest of the ridge."""
        neighbor = self.points[1] if len(self.points) > 1 else None
        return oriented_tangent(self.points[0], neighbor)

    def end_tangent(self) -> np.ndarray:
        """Tangent at the end, pointing away from the rest of the ridge."""
        neighbor = self.points[-2] if len(self.points) > 1 else None
        return oriented_tangent(self.points[-1], neighbor)

    @property
    def mean_strength(self) -> float:
        return float(np.mean([p.strength for p in self.points]))

    def reverse(self) -> None:
        self.points.reverse()

    def length(self, calibration: Optional[PixelCalibration] = None) -> float:
        """Sum of the distances between consecutive points."""
        return sum(
            p.distance(q, calibration) for p, q in zip(self.points[:-1], self.points[1:])
        )

    def closest_end_point(
        self, point: RidgePoint, calibration: Optional[PixelCalibration] = None
    ) -> RidgePoint:
        if self.start.distance_sq(point, calibration) <= self.end.distance_sq(point, calibration):
            return self.start
        return self.end

    def segments(self, z: int) -> List["Ridge"]:
        """
        Splits the ridge into the runs of points lying on plane `z`.

        Each run is extended by the off-plane point immediately before and
        after it (where present) so that segments stay connected to the
        neighbouring planes when drawn.

        Args:
            z: Index of the plane.

        Returns:
            List of ridges, empty if the ridge never touches the plane.
        """
        segments = []
        current = None
        for i, p in enumerate(self.points):
            if p.z == z:
                if current is None:
                    current = [self.points[i - 1]] if i > 0 else []
                current.append(p)
            elif current is not None:
                current.append(p)
                segments.append(Ridge(current))
                current = None
        if current is not None:
            segments.append(Ridge(current))
        return segments

    def to_array(self) -> np.ndarray:
        """Point coordinates as an (N, 3) integer array of (z, y, x)."""
        return np.array([p.index for p in self.points], dtype=int).reshape(-1, 3)
