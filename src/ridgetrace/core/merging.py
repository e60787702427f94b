"""
Greedy merging of ridge fragments into longer polylines.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..structures.calibration import PixelCalibration
from ..structures.ridge import Ridge
from ..structures.spatial_cache import SpatialCache

logger = logging.getLogger(__name__)

START = 0
END = 1

EndpointKey = Tuple[int, int]


def _endpoint(ridge: Ridge, which: int):
    return ridge.start if which == START else ridge.end


def _tangent(ridge: Ridge, which: int) -> np.ndarray:
    return ridge.start_tangent() if which == START else ridge.end_tangent()


def _is_continuation(
    ridge: Ridge,
    which: int,
    candidate: Ridge,
    candidate_which: int,
    dot_product_threshold: float,
    calibration: Optional[PixelCalibration],
) -> bool:
    """
    Tests whether `candidate`'s endpoint continues `ridge` smoothly.

    Both tangents point outwards from their ridges, so a smooth continuation
    has nearly opposite tangents, and the tangent of `ridge` must also point
    towards the candidate endpoint.

    A single-point fragment has no outward direction, so its tangent is
    oriented towards the other endpoint and only its axis is tested.
    """
    point = _endpoint(ridge, which)
    other = _endpoint(candidate, candidate_which)
    tangent = _tangent(ridge, which)
    other_tangent = _tangent(candidate, candidate_which)
    if ridge.n_points == 1 and point.displacement_dot(other, calibration, tangent) < 0:
        tangent = -tangent
    if candidate.n_points == 1 and other.displacement_dot(point, calibration, other_tangent) < 0:
        other_tangent = -other_tangent
    n = min(len(tangent), len(other_tangent))
    dot = float(np.dot(tangent[:n], other_tangent[:n]))
    if dot >= -dot_product_threshold:
        return False
    return point.displacement_dot(other, calibration, tangent) > dot_product_threshold


def merge_ridges(
    ridges: Sequence[Ridge],
    angle_threshold: float = 25.0,
    distance_threshold: float = 1.5,
    calibration: Optional[PixelCalibration] = None,
    run_id: int = 0,
) -> List[Ridge]:
    """
    Greedily joins ridge fragments whose endpoints are close and aligned.

    Fragments are processed from longest to shortest. Each one repeatedly
    absorbs the closest compatible fragment at its start, then at its end,
    until neither end can be extended. Absorbed fragments are reversed if
    needed so that the joined endpoints are adjacent; interior point order is
    never changed. The input ridges may be modified.

    Args:
        ridges: Ridge fragments.
        angle_threshold: Maximum angle (degrees) between the tangents of two
            endpoints for them to be joined.
        distance_threshold: Maximum distance between joined endpoints, in
            calibrated units if the calibration has a pixel size.
        calibration: Optional pixel calibration.
        run_id: Identifier used in log messages.

    Returns:
        The merged ridges, in processing order.
    """
    dot_product_threshold = math.cos(math.radians(angle_threshold))

    fragments = [r for r in ridges if r.n_points > 0]
    fragments.sort(key=lambda r: r.n_points, reverse=True)

    cache = SpatialCache()
    for fragment_id, fragment in enumerate(fragments):
        cache.insert((fragment_id, START), fragment.start)
        cache.insert((fragment_id, END), fragment.end)

    consumed: Dict[int, bool] = {i: False for i in range(len(fragments))}

    def consume(fragment_id: int) -> None:
        cache.remove((fragment_id, START))
        cache.remove((fragment_id, END))
        consumed[fragment_id] = True

    output = []
    n_merges = 0
    for fragment_id, ridge in enumerate(fragments):
        if consumed[fragment_id]:
            continue
        consume(fragment_id)

        changes = True
        while changes:
            changes = False
            for which in (START, END):
                point = _endpoint(ridge, which)
                for key in cache.query(point, distance_threshold, calibration):
                    other_id, other_which = key
                    other = fragments[other_id]
                    if not _is_continuation(
                        ridge, which, other, other_which, dot_product_threshold, calibration
                    ):
                        continue
                    if which == START:
                        # The absorbed fragment's end must touch our start
                        if other_which != END:
                            other.reverse()
                        ridge.points[:0] = other.points
                    else:
                        if other_which != START:
                            other.reverse()
                        ridge.points.extend(other.points)
                    consume(other_id)
                    n_merges += 1
                    changes = True
                    break
                if changes:
                    break
        output.append(ridge)

    logger.info(
        f"Run {run_id}: merged {len(fragments)} fragment(s) into {len(output)} ridge(s) "
        f"with {n_merges} join(s)."
    )
    return output
