"""
Multi-scale accumulation of ridge responses.

This module runs the Hessian feature provider over a geometric range of
scales and folds each scale into a ScaleAccumulator, using a noise-aware
strength threshold for every scale.
"""

import logging
from typing import Callable, Optional, Tuple

import numpy as np
from tqdm import tqdm

from ..core.accumulator import ScaleAccumulator
from ..core.hessian import ridge_features
from ..core.noise import gaussian_derivative_kernel, update_noise_estimate_separable
from ..structures.calibration import PixelCalibration
from .config import RidgeDetectionConfig

logger = logging.getLogger(__name__)

HessianProvider = Callable[..., Tuple[np.ndarray, np.ndarray]]


def scale_noise_estimate(noise_std: float, sigma: float, sigma_z: Optional[float] = None) -> float:
    """
    Propagates the image noise estimate through the Gaussian kernels used to
    compute second derivatives at `sigma` (and `sigma_z` along z, for stacks).

    This assumes the noise is independent at each pixel; for anisotropic
    pixels it is only approximate.
    """
    k0 = gaussian_derivative_kernel(sigma, 0)
    k2 = gaussian_derivative_kernel(sigma, 2)
    if sigma_z is None:
        return update_noise_estimate_separable(noise_std, k0, k2)
    k0z = gaussian_derivative_kernel(sigma_z, 0)
    return update_noise_estimate_separable(noise_std, k0, k0z, k2)


def multiscale_accumulate(
    volume: np.ndarray,
    config: RidgeDetectionConfig,
    calibration: Optional[PixelCalibration] = None,
    noise_std: float = 0.0,
    hessian_provider: HessianProvider = ridge_features,
    run_id: int = 0,
) -> ScaleAccumulator:
    """
    Accumulates ridge responses across all configured scales.

    Scales are processed sequentially in the configured order, since each one
    updates the running best response of the previous ones.

    Args:
        volume: Float image of shape (nz, ny, nx); nz == 1 is processed in 2D.
        config: Detection parameters.
        calibration: Optional pixel calibration; recorded scales are in
            calibrated units when it has a pixel size.
        noise_std: Noise standard deviation of the unfiltered image.
        hessian_provider: Callable (image, sigma) -> (strength, eigenvectors).
        run_id: Identifier used in log messages.

    Returns:
        The populated accumulator.
    """
    if volume.ndim != 3 or volume.size == 0:
        raise ValueError(f"Expected a non-empty (nz, ny, nx) volume, got shape {volume.shape}")

    cal = PixelCalibration.uncalibrated() if calibration is None else calibration
    do_3d = volume.shape[0] > 1
    sigmas = config.sigmas()

    logger.info(
        f"Run {run_id}: Starting multiscale ridge accumulation ({'3D' if do_3d else '2D'})."
    )
    logger.info(f" params: sigmas: {sigmas}, noise_std: {noise_std}, k: {config.noise_threshold}")

    accumulator = ScaleAccumulator()
    for sigma in tqdm(sigmas, desc="Scales", disable=not config.show_progress):
        scale = sigma * cal.averaged_pixel_size
        if do_3d:
            if cal.has_pixel_size and cal.has_z_spacing:
                sigma_z = scale / cal.z_spacing
            else:
                sigma_z = sigma
            strength, eigenvectors = hessian_provider(volume, (sigma_z, sigma, sigma))
            noise_estimate = scale_noise_estimate(noise_std, sigma, sigma_z)
        else:
            strength, eigenvectors = hessian_provider(volume[0], sigma)
            noise_estimate = scale_noise_estimate(noise_std, sigma)

        threshold = noise_estimate * config.noise_threshold
        logger.info(f"Run {run_id} -> Accumulating scale: {scale} (threshold {threshold:.4g})")
        accumulator.add_scale(scale, strength, eigenvectors, threshold)

    logger.info(f"Run {run_id}: Multiscale accumulation complete.")
    return accumulator
