"""
Tests for noise estimation and propagation.
"""

import numpy as np
import pytest
from scipy import ndimage as ndi

from ridgetrace.core.noise import (
    estimate_noise,
    estimate_noise_stack,
    gaussian_derivative_kernel,
    k_clipped_std,
    update_noise_estimate,
    update_noise_estimate_separable,
)


def test_estimate_noise_recovers_gaussian_std():
    rng = np.random.default_rng(42)
    image = rng.normal(10.0, 2.5, size=(256, 256))
    assert estimate_noise(image, 3.0) == pytest.approx(2.5, rel=0.05)


def test_estimate_noise_ignores_smooth_background():
    rng = np.random.default_rng(1)
    yy, xx = np.mgrid[0:200, 0:200]
    background = 50.0 + 0.1 * xx + 0.05 * yy
    image = background + rng.normal(0.0, 1.0, size=background.shape)
    assert estimate_noise(image) == pytest.approx(1.0, rel=0.05)


def test_estimate_noise_rejects_multichannel():
    with pytest.raises(ValueError, match="single-channel"):
        estimate_noise(np.zeros((16, 16, 3)))


def test_estimate_noise_accepts_trailing_singleton_channel():
    assert estimate_noise(np.zeros((16, 16, 1))) == 0.0


def test_k_clipped_std_returns_zero_for_constant_image():
    assert k_clipped_std(np.full((10, 10), 7.0), 3.0, 5) == 0.0


def test_k_clipped_std_is_robust_to_outliers():
    rng = np.random.default_rng(7)
    values = rng.normal(0.0, 1.0, size=(100, 100))
    values[:2, :] = 1000.0
    assert values.std() > 10
    assert k_clipped_std(values, 3.0, 5) == pytest.approx(1.0, rel=0.05)


def test_update_noise_estimate_uses_kernel_norm():
    assert update_noise_estimate(2.0, np.array([3.0, 4.0])) == pytest.approx(10.0)


def test_update_noise_estimate_separable_multiplies_norms():
    kernels = [np.array([3.0, 4.0]), np.array([0.0, 2.0]), np.array([1.0])]
    assert update_noise_estimate_separable(1.5, *kernels) == pytest.approx(15.0)
    assert update_noise_estimate_separable(1.5) == 1.5


@pytest.mark.parametrize("order", [0, 1, 2])
def test_gaussian_derivative_kernel_matches_scipy(order):
    sigma = 2.0
    kernel = gaussian_derivative_kernel(sigma, order)
    radius = len(kernel) // 2
    assert radius == 8

    impulse = np.zeros(41)
    impulse[20] = 1.0
    response = ndi.gaussian_filter1d(impulse, sigma, order=order)
    np.testing.assert_allclose(response[20 - radius : 20 + radius + 1], kernel, atol=1e-12)


def test_gaussian_derivative_kernel_shape():
    first = gaussian_derivative_kernel(1.5, 1)
    second = gaussian_derivative_kernel(1.5, 2)
    assert len(first) == len(second) == 2 * int(4 * 1.5 + 0.5) + 1
    np.testing.assert_allclose(first, -first[::-1], atol=1e-15)
    np.testing.assert_allclose(second, second[::-1], atol=1e-15)
    assert abs(second.sum()) < 1e-2
    assert second[len(second) // 2] < 0
    with pytest.raises(ValueError):
        gaussian_derivative_kernel(1.0, -1)


def test_gaussian_smoothing_kernel_is_normalized():
    assert gaussian_derivative_kernel(3.0, 0).sum() == pytest.approx(1.0)
    with pytest.raises(ValueError):
        gaussian_derivative_kernel(0.0, 0)


def test_estimate_noise_stack_averages_planes():
    rng = np.random.default_rng(3)
    planes = [rng.normal(0, 1.0, (128, 128)), rng.normal(0, 3.0, (128, 128))]
    expected = np.mean([estimate_noise(p) for p in planes])
    assert estimate_noise_stack(planes) == pytest.approx(expected)
    assert estimate_noise_stack([]) == 0.0
