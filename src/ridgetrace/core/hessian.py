"""
Hessian-based ridge features for 2D and 3D images.

This is the default scale-space feature provider used by the ridge detector:
it computes the Hessian with Gaussian derivatives, decomposes it, and turns
the eigen-decomposition into a ridge strength and orientation grid.
"""

from itertools import combinations_with_replacement
from typing import Sequence, Tuple, Union

import numpy as np
from scipy import ndimage as ndi

Sigma = Union[float, Sequence[float]]


def compute_hessian_matrix(image: np.ndarray, sigma: Sigma = 1.0) -> np.ndarray:
    """
    Computes the Hessian matrix using Gaussian derivatives.

    Args:
        image: 2D (y, x) or 3D (z, y, x) array.
        sigma: Gaussian sigma, either a scalar or one value per axis.

    Returns:
        Array of shape image.shape + (ndim, ndim), symmetric in the last two axes.
    """
    ndim = image.ndim
    if ndim not in (2, 3):
        raise ValueError(f"Only 2D and 3D images are supported, got {ndim} dimensions.")

    image = np.asarray(image, dtype=np.float64)
    hessian = np.zeros(image.shape + (ndim, ndim), dtype=np.float64)

    for i, j in combinations_with_replacement(range(ndim), 2):
        order = [0] * ndim
        order[i] += 1
        order[j] += 1
        der = ndi.gaussian_filter(image, sigma=sigma, order=order)
        hessian[..., i, j] = der
        if i != j:
            hessian[..., j, i] = der

    return hessian


def hessian_eigen(hessian: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Eigen-decomposition of a stack of symmetric matrices.

    Args:
        hessian: Array of shape (..., ndim, ndim).

    Returns:
        Tuple of (eigenvalues, eigenvectors) sorted by descending eigenvalue.
        Eigenvalues have shape (..., ndim); eigenvectors (..., ndim, ndim) with
        the vector for eigenvalue k stored in column k, components in axis order.
    """
    eigenvalues, eigenvectors = np.linalg.eigh(hessian)
    # eigh sorts ascending
    return eigenvalues[..., ::-1], eigenvectors[..., ::-1]


def ridge_features(image: np.ndarray, sigma: Sigma = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Computes ridge strength and orientation at a single scale.

    The strength is the negated second-largest eigenvalue, so bright ridges on
    a dark background respond positively. In 2D the orientation is the
    eigenvector of the largest eigenvalue (along the ridge); in 3D all three
    eigenvectors are kept, in descending eigenvalue order, so the last two
    describe the ridge cross-section.

    Args:
        image: 2D (y, x) or 3D (z, y, x) array.
        sigma: Gaussian sigma, either a scalar or one value per axis.

    Returns:
        Tuple of (strength, eigenvectors). Strength has shape (nz, ny, nx),
        with nz == 1 for 2D input. Eigenvectors have shape (nz, ny, nx, 2) in 2D
        and (nz, ny, nx, 9) in 3D, with components ordered (x, y[, z]).
    """
    hessian = compute_hessian_matrix(image, sigma)
    eigenvalues, eigenvectors = hessian_eigen(hessian)

    strength = -eigenvalues[..., 1]

    if image.ndim == 2:
        # Components are (y, x) along axis -2
        tangent = eigenvectors[..., ::-1, 0]
        return (
            strength[np.newaxis].astype(np.float32),
            tangent[np.newaxis].astype(np.float32),
        )

    # Components are (z, y, x); reverse to (x, y, z) then pack vectors one after another
    packed = np.swapaxes(eigenvectors[..., ::-1, :], -1, -2).reshape(image.shape + (9,))
    return strength.astype(np.float32), packed.astype(np.float32)
