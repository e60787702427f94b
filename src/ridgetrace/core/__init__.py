"""Core algorithms for multiscale ridge detection."""

from .accumulator import ScaleAccumulator, suppress_non_maxima
from .hessian import compute_hessian_matrix, hessian_eigen, ridge_features
from .merging import merge_ridges
from .noise import (
    estimate_noise,
    estimate_noise_stack,
    gaussian_derivative_kernel,
    k_clipped_std,
    update_noise_estimate,
    update_noise_estimate_separable,
)
from .tracing import build_ridges, count_neighbors, thin, trace_line, trace_lines

__all__ = [
    "ScaleAccumulator",
    "suppress_non_maxima",
    "compute_hessian_matrix",
    "hessian_eigen",
    "ridge_features",
    "merge_ridges",
    "estimate_noise",
    "estimate_noise_stack",
    "gaussian_derivative_kernel",
    "k_clipped_std",
    "update_noise_estimate",
    "update_noise_estimate_separable",
    "build_ridges",
    "count_neighbors",
    "thin",
    "trace_line",
    "trace_lines",
]
