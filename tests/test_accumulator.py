"""
Tests for scale accumulation and non-maximum suppression.
"""

import numpy as np
import pytest

from ridgetrace.core.accumulator import ScaleAccumulator, suppress_non_maxima


def _random_grids(seed, shape=(1, 16, 16)):
    rng = np.random.default_rng(seed)
    strength = rng.random(shape).astype(np.float32)
    angles = rng.uniform(0, np.pi, size=shape)
    eigenvectors = np.stack([np.cos(angles), np.sin(angles)], axis=-1).astype(np.float32)
    return strength, eigenvectors


def _horizontal_ridge(ny=15, nx=16, row=7):
    y = np.arange(ny, dtype=np.float32)[:, None]
    strength = np.repeat(np.exp(-((y - row) ** 2) / 2.0), nx, axis=1)[np.newaxis]
    eigenvectors = np.zeros(strength.shape + (2,), dtype=np.float32)
    eigenvectors[..., 0] = 1.0
    return strength.astype(np.float32), eigenvectors


class TestSuppressNonMaxima:
    def test_keeps_ridge_centre_only(self):
        strength, eigenvectors = _horizontal_ridge()
        mask = suppress_non_maxima(strength, eigenvectors, 0.1)

        expected = np.zeros(strength.shape, dtype=np.uint8)
        expected[0, 7, 1:-1] = 255
        np.testing.assert_array_equal(mask, expected)

    def test_samples_across_the_tangent(self):
        # A tangent across the ridge means sampling along it, where it is flat
        strength, eigenvectors = _horizontal_ridge()
        eigenvectors[..., 0] = 0.0
        eigenvectors[..., 1] = 1.0
        assert not np.any(suppress_non_maxima(strength, eigenvectors, 0.1))

    def test_threshold_is_strict(self):
        strength, eigenvectors = _horizontal_ridge()
        assert not np.any(suppress_non_maxima(strength, eigenvectors, 1.0))

    def test_respects_mask(self):
        strength, eigenvectors = _horizontal_ridge()
        mask = np.zeros(strength.shape, dtype=bool)
        mask[0, :, :8] = True
        result = suppress_non_maxima(strength, eigenvectors, 0.1, mask)
        assert np.all(result[0, 7, 1:8] == 255)
        assert not np.any(result[0, :, 8:])

    def test_3d_requires_maximum_along_both_normals(self):
        nz, ny, nx = 7, 11, 12
        z, y = np.mgrid[0:nz, 0:ny].astype(np.float32)
        profile = np.exp(-((z - 3) ** 2 + (y - 5) ** 2) / 2.0)
        strength = np.repeat(profile[:, :, None], nx, axis=2).astype(np.float32)
        eigenvectors = np.zeros(strength.shape + (9,), dtype=np.float32)
        eigenvectors[..., 0] = 1.0  # tangent along x
        eigenvectors[..., 4] = 1.0  # normal along y
        eigenvectors[..., 8] = 1.0  # normal along z

        mask = suppress_non_maxima(strength, eigenvectors, 0.0)
        expected = np.zeros(strength.shape, dtype=np.uint8)
        expected[3, 5, 1:-1] = 255
        np.testing.assert_array_equal(mask, expected)

    def test_3d_ridge_on_boundary_plane_is_rejected(self):
        nz, ny, nx = 4, 11, 12
        z, y = np.mgrid[0:nz, 0:ny].astype(np.float32)
        profile = np.exp(-(z**2 + (y - 5) ** 2) / 2.0)
        strength = np.repeat(profile[:, :, None], nx, axis=2).astype(np.float32)
        eigenvectors = np.zeros(strength.shape + (9,), dtype=np.float32)
        eigenvectors[..., 0] = 1.0
        eigenvectors[..., 4] = 1.0
        eigenvectors[..., 8] = 1.0

        # z is clamped, so the sample below plane 0 is the pixel itself
        assert not np.any(suppress_non_maxima(strength, eigenvectors, 0.0))

    def test_rejects_mismatched_shapes(self):
        strength, eigenvectors = _horizontal_ridge()
        with pytest.raises(ValueError):
            suppress_non_maxima(strength, eigenvectors[:, :-1], 0.1)


class TestScaleAccumulator:
    def test_single_scale_matches_fresh_computation(self):
        strength, eigenvectors = _random_grids(0)
        accumulator = ScaleAccumulator()
        accumulator.add_scale(2.0, strength, eigenvectors, 0.1)

        expected_strength = strength * np.float32(4.0)
        np.testing.assert_array_equal(accumulator.strength, expected_strength)
        np.testing.assert_array_equal(accumulator.eigenvectors, eigenvectors)
        assert np.all(accumulator.scale == 2.0)
        np.testing.assert_array_equal(
            accumulator.mask, suppress_non_maxima(expected_strength, eigenvectors, 0.4)
        )
        assert accumulator.n_scales == 1
        assert not accumulator.is_3d

    def test_dominant_scale_wins_everywhere(self):
        strength_a, eigenvectors_a = _random_grids(1)
        strength_b, eigenvectors_b = _random_grids(2)
        strength_b = strength_b + 1.0

        accumulator = ScaleAccumulator()
        accumulator.add_scale(1.0, strength_a, eigenvectors_a, 0.1)
        accumulator.add_scale(2.0, strength_b, eigenvectors_b, 0.1)

        expected_strength = strength_b.astype(np.float32) * np.float32(4.0)
        np.testing.assert_array_equal(accumulator.strength, expected_strength)
        np.testing.assert_array_equal(accumulator.eigenvectors, eigenvectors_b)
        assert np.all(accumulator.scale == 2.0)
        np.testing.assert_array_equal(
            accumulator.mask, suppress_non_maxima(expected_strength, eigenvectors_b, 0.4)
        )

    def test_weaker_scale_changes_nothing(self):
        strength_a, eigenvectors_a = _random_grids(3)
        strength_b, eigenvectors_b = _random_grids(4)

        accumulator = ScaleAccumulator()
        accumulator.add_scale(2.0, strength_a + 1.0, eigenvectors_a, 0.1)
        before = (accumulator.strength.copy(), accumulator.mask.copy())
        accumulator.add_scale(1.0, strength_b * 0.5, eigenvectors_b, 0.1)

        np.testing.assert_array_equal(accumulator.strength, before[0])
        np.testing.assert_array_equal(accumulator.mask, before[1])
        assert np.all(accumulator.scale == 2.0)

    def test_pixels_keep_consistent_scale(self):
        strength_a, eigenvectors_a = _random_grids(5)
        strength_b, eigenvectors_b = _random_grids(6)

        accumulator = ScaleAccumulator()
        accumulator.add_scale(1.0, strength_a, eigenvectors_a, 0.0)
        accumulator.add_scale(1.5, strength_b, eigenvectors_b, 0.0)

        from_b = strength_b * np.float32(2.25) > strength_a
        assert np.all(accumulator.scale[from_b] == 1.5)
        assert np.all(accumulator.scale[~from_b] == 1.0)
        np.testing.assert_array_equal(accumulator.eigenvectors[from_b], eigenvectors_b[from_b])
        np.testing.assert_array_equal(accumulator.eigenvectors[~from_b], eigenvectors_a[~from_b])

    def test_does_not_modify_input_grids(self):
        strength_a, eigenvectors_a = _random_grids(7)
        strength_b, eigenvectors_b = _random_grids(8)
        original = eigenvectors_a.copy()

        accumulator = ScaleAccumulator()
        accumulator.add_scale(1.0, strength_a, eigenvectors_a, 0.0)
        accumulator.add_scale(2.0, strength_b + 1.0, eigenvectors_b, 0.0)
        np.testing.assert_array_equal(eigenvectors_a, original)

    def test_rejects_shape_change(self):
        strength, eigenvectors = _random_grids(9)
        accumulator = ScaleAccumulator()
        accumulator.add_scale(1.0, strength, eigenvectors, 0.0)
        with pytest.raises(ValueError):
            accumulator.add_scale(2.0, strength[:, 1:], eigenvectors[:, 1:], 0.0)

    def test_sample_builds_ridge_point(self):
        strength, eigenvectors = _random_grids(10)
        accumulator = ScaleAccumulator()
        accumulator.add_scale(1.0, strength, eigenvectors, 0.0)

        point = accumulator.sample(0, 3, 4)
        assert (point.x, point.y, point.z) == (4, 3, 0)
        assert point.strength == pytest.approx(float(strength[0, 3, 4]))
        assert point.eig_x == pytest.approx(float(eigenvectors[0, 3, 4, 0]))
        assert point.eig_y == pytest.approx(float(eigenvectors[0, 3, 4, 1]))
        assert not point.is_3d
