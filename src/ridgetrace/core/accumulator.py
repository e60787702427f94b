"""
Scale-space accumulation of ridge responses.

For every pixel, the accumulator keeps the measurements of the scale that
gave the strongest scale-normalized ridge response, together with a ridge
mask obtained by non-maximum suppression across the ridge.
"""

import logging
from typing import Optional

import numpy as np
from scipy import ndimage as ndi

from ..structures.ridge import RidgePoint

logger = logging.getLogger(__name__)


def _strictly_greater(strength: np.ndarray, values: np.ndarray, coords: np.ndarray) -> np.ndarray:
    interpolated = ndi.map_coordinates(strength, coords, order=1, mode="nearest")
    return values > interpolated


def suppress_non_maxima(
    strength: np.ndarray,
    eigenvectors: np.ndarray,
    threshold: float,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Computes a binary ridge mask by non-maximum suppression across the ridge.

    A pixel is kept if its strength exceeds `threshold` and is strictly
    greater than the strength interpolated one unit away on both sides of the
    ridge. In 2D the sampling direction is perpendicular to the stored
    tangent; in 3D both cross-section eigenvectors (offsets 3 and 6) must
    show a strict maximum. The outermost rows and columns are never marked.

    Args:
        strength: Ridge strength, shape (nz, ny, nx).
        eigenvectors: Orientation grid, shape (nz, ny, nx, 2) or (nz, ny, nx, 9).
        threshold: Absolute strength threshold.
        mask: Optional mask; only its non-zero pixels are considered.

    Returns:
        uint8 array shaped like `strength`, 255 at ridge pixels and 0 elsewhere.
    """
    strength = np.asarray(strength)
    if strength.ndim != 3:
        raise ValueError(f"Strength must have shape (nz, ny, nx), got {strength.shape}")
    if eigenvectors.shape[:3] != strength.shape or eigenvectors.shape[3] not in (2, 9):
        raise ValueError(
            f"Eigenvector shape {eigenvectors.shape} does not match strength shape {strength.shape}"
        )

    nz, ny, nx = strength.shape
    output = np.zeros(strength.shape, dtype=np.uint8)
    if ny < 3 or nx < 3:
        return output

    candidates = np.zeros(strength.shape, dtype=bool)
    candidates[:, 1:-1, 1:-1] = strength[:, 1:-1, 1:-1] > threshold
    if mask is not None:
        candidates &= np.asarray(mask) != 0

    z, y, x = np.nonzero(candidates)
    if z.size == 0:
        return output

    values = strength[z, y, x]
    vectors = eigenvectors[z, y, x].astype(np.float64)
    z = z.astype(np.float64)
    y = y.astype(np.float64)
    x = x.astype(np.float64)

    if eigenvectors.shape[3] == 2:
        eig_x, eig_y = vectors[:, 0], vectors[:, 1]
        keep = _strictly_greater(strength, values, np.vstack([z, y - eig_x, x + eig_y]))
        keep &= _strictly_greater(strength, values, np.vstack([z, y + eig_x, x - eig_y]))
    else:
        keep = np.ones(values.shape, dtype=bool)
        for offset in (3, 6):
            eig_x, eig_y, eig_z = vectors[:, offset], vectors[:, offset + 1], vectors[:, offset + 2]
            for sign in (1.0, -1.0):
                coords = np.vstack(
                    [
                        np.clip(z + sign * eig_z, 0, nz - 1),
                        y + sign * eig_y,
                        x + sign * eig_x,
                    ]
                )
                keep &= _strictly_greater(strength, values, coords)

    output[z[keep].astype(int), y[keep].astype(int), x[keep].astype(int)] = 255
    return output


class ScaleAccumulator:
    """
    Keeps track of the maximum ridge response, its orientation, its scale and
    the resulting ridge mask for every pixel.

    Scales must be added sequentially; the grids are created on the first call
    to `add_scale`.
    """

    def __init__(self):
        self.strength: Optional[np.ndarray] = None
        self.eigenvectors: Optional[np.ndarray] = None
        self.scale: Optional[np.ndarray] = None
        self.mask: Optional[np.ndarray] = None
        self.n_scales = 0

    @property
    def is_empty(self) -> bool:
        return self.strength is None

    @property
    def is_3d(self) -> bool:
        return self.eigenvectors is not None and self.eigenvectors.shape[-1] == 9

    @property
    def shape(self):
        return None if self.strength is None else self.strength.shape

    def add_scale(
        self,
        scale: float,
        strength: np.ndarray,
        eigenvectors: np.ndarray,
        threshold: float,
    ) -> None:
        """
        Updates the running best response with the results of one scale.

        The strength and threshold are multiplied by scale**2 so that
        responses at different scales are comparable.

        Args:
            scale: Smoothing scale the features were computed at.
            strength: Ridge strength at this scale, shape (nz, ny, nx).
            eigenvectors: Orientation grid at this scale, (nz, ny, nx, C).
            threshold: Absolute strength threshold at this scale (before normalization).
        """
        if scale < 0:
            raise ValueError(f"Scale must be non-negative, got {scale}")
        strength = np.asarray(strength, dtype=np.float32)
        eigenvectors = np.asarray(eigenvectors, dtype=np.float32)
        if strength.ndim != 3 or strength.size == 0:
            raise ValueError(f"Strength must be a non-empty (nz, ny, nx) grid, got {strength.shape}")
        if self.strength is not None and (
            strength.shape != self.strength.shape or eigenvectors.shape != self.eigenvectors.shape
        ):
            raise ValueError(
                f"Scale {scale} has shape {strength.shape}, expected {self.strength.shape}"
            )

        strength = strength * np.float32(scale * scale)
        threshold = threshold * scale * scale
        logger.debug(f"Adding scale {scale} with normalized threshold {threshold}")

        if self.strength is None:
            self.strength = strength
            self.eigenvectors = eigenvectors.copy()
            self.scale = np.full(strength.shape, scale, dtype=np.float32)
            self.mask = suppress_non_maxima(strength, eigenvectors, threshold)
        else:
            greater = strength > self.strength
            candidate_mask = suppress_non_maxima(strength, eigenvectors, threshold, greater)

            self.strength[greater] = strength[greater]
            self.eigenvectors[greater] = eigenvectors[greater]
            self.mask[greater] = candidate_mask[greater]
            self.scale[greater] = scale

        self.n_scales += 1
        logger.debug(
            f"Scale {scale}: {np.count_nonzero(self.mask)} ridge pixels after {self.n_scales} scale(s)"
        )

    def sample(self, z: int, y: int, x: int) -> RidgePoint:
        """Creates a ridge point from the accumulated values at (z, y, x)."""
        if self.strength is None:
            raise ValueError("No scales have been added to the accumulator.")
        vector = self.eigenvectors[z, y, x]
        eig_z = float(vector[2]) if self.is_3d else float("nan")
        return RidgePoint(
            x=int(x),
            y=int(y),
            z=int(z),
            strength=float(self.strength[z, y, x]),
            scale=float(self.scale[z, y, x]),
            eig_x=float(vector[0]),
            eig_y=float(vector[1]),
            eig_z=eig_z,
        )
