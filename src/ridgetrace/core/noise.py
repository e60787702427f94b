"""
Gaussian noise estimation for single-channel images.

The noise standard deviation is estimated once on the unfiltered image and
then propagated through the smoothing kernels used at each scale, giving a
noise-aware threshold for ridge strength.
"""

import logging
from functools import partial
from multiprocessing import Pool
from typing import Sequence

import numpy as np
from scipy import ndimage as ndi

logger = logging.getLogger(__name__)


def _as_single_channel(image: np.ndarray, name: str) -> np.ndarray:
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[-1] == 1:
        image = image[..., 0]
    if image.ndim == 3:
        raise ValueError(
            f"{name} supports only single-channel images, but input has {image.shape[-1]} channels!"
        )
    if image.size == 0:
        raise ValueError(f"{name} requires a non-empty image.")
    return image


def update_noise_estimate(noise_std: float, kernel: np.ndarray) -> float:
    """
    Updates a Gaussian noise estimate after filtering with a kernel.

    The standard deviation is multiplied by the L2 norm of the kernel. This
    assumes the noise is independent at every pixel, so it is not valid if
    the image has already been filtered.

    Args:
        noise_std: Noise standard deviation of the unfiltered image.
        kernel: Filter kernel.

    Returns:
        The updated noise estimate.
    """
    return noise_std * float(np.linalg.norm(np.asarray(kernel, dtype=float).ravel()))


def update_noise_estimate_separable(noise_std: float, *kernels: np.ndarray) -> float:
    """
    Updates a Gaussian noise estimate after filtering with separable 1D kernels,
    each applied along a different image dimension.
    """
    for kernel in kernels:
        noise_std = update_noise_estimate(noise_std, kernel)
    return noise_std


def gaussian_derivative_kernel(sigma: float, order: int = 0) -> np.ndarray:
    """
    Builds the 1D Gaussian (derivative) kernel used by `ndi.gaussian_filter`.

    Args:
        sigma: Gaussian sigma in pixels.
        order: Derivative order (0 for smoothing).

    Returns:
        The kernel, with radius int(4 * sigma + 0.5).
    """
    if sigma <= 0:
        raise ValueError(f"Sigma must be positive, got {sigma}")
    if order < 0:
        raise ValueError(f"Derivative order must be non-negative, got {order}")

    radius = int(4.0 * sigma + 0.5)
    impulse = np.zeros(2 * radius + 1)
    impulse[radius] = 1.0
    # The impulse response over the full support is the kernel itself
    return ndi.gaussian_filter1d(impulse, sigma, order=order, mode="constant", truncate=4.0)


def k_clipped_std(values: np.ndarray, k: float = 3.0, n_iterations: int = 5) -> float:
    """
    Computes the standard deviation of an image using k-sigma clipping.

    The standard deviation is recomputed `n_iterations` times, each time using
    only the samples strictly within `k * std` of the current mean.

    Args:
        values: Single-channel image.
        k: Clipping factor; 3.0 is a reasonable default.
        n_iterations: Number of clipping iterations.

    Returns:
        The k-clipped standard deviation (0 if the image is constant).
    """
    values = _as_single_channel(values, "k_clipped_std").astype(np.float64, copy=False)
    logger.debug(f"k_clipped_std called with k={k}")

    mean = float(values.mean())
    std = float(values.std())
    logger.debug(f"Standard deviation after 0 iterations: {std} (mean = {mean})")
    for i in range(n_iterations):
        if std == 0:
            return 0.0
        threshold = std * k
        clipped = values[(values > mean - threshold) & (values < mean + threshold)]
        if clipped.size == 0:
            break
        mean = float(clipped.mean())
        std = float(clipped.std())
        logger.debug(f"Standard deviation after {i + 1} iteration(s): {std} (mean = {mean})")
    return std


def estimate_noise(image: np.ndarray, k: float = 3.0) -> float:
    """
    Estimates the standard deviation of Gaussian noise in a 2D, single-channel image.

    The image is high-pass filtered with a first-difference kernel along
    both axes, then a robust k-clipped standard deviation is computed. The
    result is divided by 2 to undo the scaling of the two difference filters.

    Args:
        image: 2D image containing Gaussian noise.
        k: k-value used for sigma clipping.

    Returns:
        Estimated noise standard deviation.

    Raises:
        ValueError: If the input has more than one channel.
    """
    image = _as_single_channel(image, "estimate_noise")
    if image.ndim != 2:
        raise ValueError(f"estimate_noise expects a 2D image, got {image.ndim} dimensions.")

    kernel = np.array([-1.0, 1.0, 0.0])
    filtered = image.astype(np.float32)
    for axis in range(2):
        filtered = ndi.correlate1d(filtered, kernel, axis=axis, mode="mirror")
    return k_clipped_std(filtered, k, 5) / 2.0


def estimate_noise_stack(planes: Sequence[np.ndarray], k: float = 3.0, n_jobs: int = 1) -> float:
    """
    Averages the noise estimate of independent z-planes.

    Args:
        planes: Sequence of 2D planes.
        k: k-value used for sigma clipping.
        n_jobs: Number of worker processes; 1 computes sequentially.

    Returns:
        Mean noise standard deviation across planes (0 if there are none).
    """
    if len(planes) == 0:
        return 0.0
    num_jobs = min(n_jobs, len(planes))
    if num_jobs <= 1:
        estimates = [estimate_noise(p, k) for p in planes]
    else:
        with Pool(processes=num_jobs) as pool:
            estimates = pool.map(partial(estimate_noise, k=k), list(planes))
    return float(np.mean(estimates))
