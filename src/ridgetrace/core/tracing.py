"""
Tracing of thinned ridge masks into ordered point sequences.

The ridge mask is thinned, branch points are removed so that only disjoint
open paths remain, and each path is walked from one of its endpoints. Pixels
are consumed from a private working copy of the mask as they are visited, so
the input mask is never modified.
"""

import itertools
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage as ndi
from skimage.morphology import skeletonize

from ..structures.ridge import Ridge
from .accumulator import ScaleAccumulator

logger = logging.getLogger(__name__)

Index = Tuple[int, int, int]

# 26-neighbourhood, nearest neighbours first
_NEIGHBOR_OFFSETS: List[Index] = sorted(
    (offset for offset in itertools.product((-1, 0, 1), repeat=3) if offset != (0, 0, 0)),
    key=lambda o: (o[0] ** 2 + o[1] ** 2 + o[2] ** 2, o),
)

BRANCH_COUNT = 4
END_COUNT = 2


def _as_volume(mask: np.ndarray) -> np.ndarray:
    mask = np.asarray(mask)
    if mask.ndim == 2:
        return mask[np.newaxis]
    if mask.ndim != 3:
        raise ValueError(f"Mask must be 2D or 3D, got {mask.ndim} dimensions.")
    return mask


def thin(mask: np.ndarray) -> np.ndarray:
    """
    Reduces a binary mask to a 1-pixel-wide skeleton.

    Single-plane masks are thinned in 2D (8-connectivity), stacks in 3D
    (26-connectivity).

    Args:
        mask: 2D (y, x) or 3D (z, y, x) mask; any non-zero value is foreground.

    Returns:
        uint8 skeleton with the shape of the input, 255 at skeleton pixels.
    """
    volume = _as_volume(mask) != 0
    if volume.shape[0] == 1:
        skeleton = skeletonize(volume[0])[np.newaxis]
    else:
        skeleton = skeletonize(volume)
    skeleton = np.where(skeleton, 255, 0).astype(np.uint8)
    return skeleton.reshape(np.shape(mask))


def count_neighbors(mask: np.ndarray) -> np.ndarray:
    """
    Labels each foreground pixel with the number of foreground pixels in its
    3x3(x3) neighbourhood, itself included. Background pixels are 0.

    An isolated pixel is therefore labelled 1, an endpoint 2 and an interior
    path pixel 3.
    """
    volume = (_as_volume(mask) != 0).astype(np.uint8)
    counts = ndi.convolve(volume, np.ones((3, 3, 3), dtype=np.uint8), mode="constant", cval=0)
    counts = (counts * volume).astype(np.uint8)
    return counts.reshape(np.shape(mask))


def _find_pixels(counts: np.ndarray, min_value: int, max_value: int) -> List[Index]:
    """Finds pixels with min_value <= value < max_value, in raster order."""
    found = np.argwhere((counts >= min_value) & (counts < max_value))
    return [tuple(int(v) for v in p) for p in found]


def _get_neighbor(working: np.ndarray, index: Index) -> Optional[Index]:
    z, y, x = index
    nz, ny, nx = working.shape
    for dz, dy, dx in _NEIGHBOR_OFFSETS:
        zz, yy, xx = z + dz, y + dy, x + dx
        if 0 <= zz < nz and 0 <= yy < ny and 0 <= xx < nx and working[zz, yy, xx] != 0:
            return (zz, yy, xx)
    return None


def trace_line(working: np.ndarray, start: Index) -> List[Index]:
    """
    Traces a path in a thinned (z, y, x) image, starting from `start`.

    Each visited pixel is set to 0 in `working`, so it cannot be revisited.

    Args:
        working: Thinned mask that will be modified in place.
        start: Starting pixel.

    Returns:
        The ordered list of visited pixels.
    """
    points = []
    p = start
    while p is not None:
        points.append(p)
        working[p] = 0
        p = _get_neighbor(working, p)
    return points


def trace_lines(
    mask: np.ndarray, remove_isolated_pixels: bool = True, run_id: int = 0
) -> List[List[Index]]:
    """
    Traces the paths of a binary ridge mask.

    The mask is thinned, pixels with 3 or more neighbours (branch points) are
    removed, and the remaining paths are traced from their endpoints in raster
    order. Closed loops without endpoints are traced afterwards from their
    first pixel.

    Args:
        mask: 2D or 3D binary ridge mask; not modified.
        remove_isolated_pixels: If True, single pixels are not returned as paths.
        run_id: Identifier used in log messages.

    Returns:
        List of paths, each a list of (z, y, x) indices. Paths are disjoint.
    """
    working = _as_volume(thin(mask)).copy()

    counts = count_neighbors(working)
    working[counts >= BRANCH_COUNT] = 0
    counts = count_neighbors(working)
    n_branch_free = int(np.count_nonzero(working))

    min_count = END_COUNT if remove_isolated_pixels else 1
    # Insertion-ordered set
    end_points: Dict[Index, None] = dict.fromkeys(_find_pixels(counts, min_count, END_COUNT + 1))

    paths = []
    while end_points:
        start = next(iter(end_points))
        path = trace_line(working, start)
        for p in path:
            end_points.pop(p, None)
        paths.append(path)
    n_open = len(paths)

    for start in _find_pixels(counts, END_COUNT if remove_isolated_pixels else 1, 256):
        if working[start] != 0:
            paths.append(trace_line(working, start))

    logger.info(
        f"Run {run_id}: traced {n_open} open path(s) and {len(paths) - n_open} loop(s) "
        f"from {n_branch_free} skeleton pixels."
    )
    return paths


def build_ridges(paths: Sequence[Sequence[Index]], accumulator: ScaleAccumulator) -> List[Ridge]:
    """
    Converts traced paths into ridges, sampling strength, scale and orientation
    from the accumulator at each pixel.
    """
    return [Ridge(accumulator.sample(*p) for p in path) for path in paths if len(path) > 0]
