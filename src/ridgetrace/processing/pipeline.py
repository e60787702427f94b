import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
from skimage.util import img_as_float

from ..core.accumulator import ScaleAccumulator
from ..core.hessian import ridge_features
from ..core.merging import merge_ridges
from ..core.noise import estimate_noise_stack
from ..core.tracing import build_ridges, trace_lines
from ..io.image import load_image, save_3d_volume
from ..structures.calibration import PixelCalibration
from ..structures.ridge import Ridge
from .config import RidgeDetectionConfig
from .multiscale import HessianProvider, multiscale_accumulate

logger = logging.getLogger(__name__)

# A trailing axis at most this long is read as colour channels
MAX_CHANNELS = 4


def select_channel(image: np.ndarray, channel: Optional[int] = None) -> np.ndarray:
    """
    Reduces an image with a trailing channel axis to a single channel.

    A 4D array, or a 3D array whose last axis has at most `MAX_CHANNELS`
    elements, is treated as (..., channels). Without an explicit `channel`
    only single-channel input is accepted.

    Args:
        image: (y, x), (y, x, c), (z, y, x) or (z, y, x, c) array.
        channel: Index of the channel to keep.

    Returns:
        The single-channel image.

    Raises:
        ValueError: If the input has several channels and none is selected,
            or the selected channel does not exist.
    """
    image = np.asarray(image)
    has_channels = image.ndim == 4 or (image.ndim == 3 and image.shape[-1] <= MAX_CHANNELS)
    if channel is None:
        if not has_channels:
            return image
        if image.shape[-1] == 1:
            return image[..., 0]
        raise ValueError(
            f"Ridge detection supports only single-channel images, but input has "
            f"{image.shape[-1]} channels! Select one with `channel`."
        )
    if image.ndim not in (3, 4):
        raise ValueError(f"Cannot select channel {channel} from an image of shape {image.shape}")
    if channel >= image.shape[-1]:
        raise ValueError(f"Channel {channel} out of range for {image.shape[-1]} channel(s)")
    return image[..., channel]


class RidgeDetector:
    """
    Multiscale ridge detection in 2D images or 3D stacks.

    The workflow of `detect` is:
    1. Convert the image to float (optionally square-root transformed).
    2. Estimate the noise standard deviation of every z-plane.
    3. Accumulate Hessian ridge responses over all scales.
    4. Trace the thinned ridge mask into fragments.
    5. Optionally merge fragments into longer ridges.
    """

    def __init__(
        self,
        config: Optional[RidgeDetectionConfig] = None,
        hessian_provider: HessianProvider = ridge_features,
    ):
        self.config = RidgeDetectionConfig() if config is None else config
        self.hessian_provider = hessian_provider
        self.accumulator: Optional[ScaleAccumulator] = None

    def prepare_volume(self, image: np.ndarray, z: int = 0) -> np.ndarray:
        """
        Converts the input to a float (nz, ny, nx) volume.

        Args:
            image: 2D (y, x) image or (z, y, x) stack, optionally with a
                trailing channel axis (see `select_channel`).
            z: Plane to use when a stack is given but 3D detection is disabled.

        Returns:
            Float volume with nz == 1 for 2D detection.
        """
        image = np.asarray(image)
        if image.size == 0:
            raise ValueError("Cannot detect ridges in an empty image.")
        image = select_channel(image, self.config.channel)
        if image.ndim == 2:
            volume = image[np.newaxis]
        elif image.ndim == 3:
            if not self.config.do_3d:
                if not 0 <= z < image.shape[0]:
                    raise ValueError(f"Plane {z} out of range for stack of {image.shape[0]}")
                volume = image[z : z + 1]
            else:
                volume = image
        else:
            raise ValueError(f"Expected a 2D image or 3D stack, got {image.ndim} dimensions.")

        volume = img_as_float(volume)
        if self.config.sqrt_transform:
            volume = np.sqrt(np.clip(volume, 0, None))
        return volume.astype(np.float32)

    def detect(
        self,
        image: np.ndarray,
        calibration: Optional[PixelCalibration] = None,
        z: int = 0,
        run_id: int = 0,
    ) -> List[Ridge]:
        """
        Detects ridges in an image.

        Args:
            image: 2D (y, x) image or (z, y, x) stack; multi-channel input
                needs `config.channel`.
            calibration: Optional pixel calibration.
            z: Plane to use when a stack is given but 3D detection is disabled.
            run_id: Identifier used in log messages.

        Returns:
            The detected ridges. Ridge points use plane indices relative to the
            processed volume.
        """
        config = self.config
        volume = self.prepare_volume(image, z)
        logger.info(f"Run {run_id}: Detecting ridges in volume of shape {volume.shape}")

        noise_std = estimate_noise_stack(list(volume), config.noise_k, config.n_jobs)
        logger.info(f"Run {run_id}: Estimated noise standard deviation: {noise_std:.4g}")

        accumulator = multiscale_accumulate(
            volume,
            config,
            calibration=calibration,
            noise_std=noise_std,
            hessian_provider=self.hessian_provider,
            run_id=run_id,
        )
        self.accumulator = accumulator

        if not np.any(accumulator.mask):
            logger.warning(f"Run {run_id}: No ridge pixels found.")
            return []

        paths = trace_lines(accumulator.mask, config.remove_isolated_pixels, run_id)
        ridges = build_ridges(paths, accumulator)

        if config.do_merge:
            ridges = merge_ridges(
                ridges,
                angle_threshold=config.angle_threshold,
                distance_threshold=config.distance_threshold,
                calibration=calibration,
                run_id=run_id,
            )

        ridges = [r for r in ridges if r.n_points >= config.min_points]
        logger.info(f"Run {run_id}: Detected {len(ridges)} ridge(s).")
        return ridges


def render_ridges(ridges: Sequence[Ridge], shape: Tuple[int, ...]) -> np.ndarray:
    """
    Draws ridge points into a uint8 mask.

    Args:
        ridges: Ridges to draw.
        shape: Output shape, (y, x) or (z, y, x).

    Returns:
        Mask with 255 at every ridge point.
    """
    mask = np.zeros(shape, dtype=np.uint8)
    for ridge in ridges:
        for p in ridge.points:
            if len(shape) == 2:
                mask[p.y, p.x] = 255
            else:
                mask[p.z, p.y, p.x] = 255
    return mask


def main(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(
        description="Multiscale ridge detection in 2D images and 3D stacks.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "input",
        type=str,
        help="Image file, or directory containing a numbered TIFF stack.",
    )
    parser.add_argument(
        "--output_dir",
        type=str,
        default="results_ridges",
        help="Directory to save the ridge mask stack.",
    )
    parser.add_argument("--sigma_start", type=float, default=1.0, help="Smallest sigma (pixels).")
    parser.add_argument(
        "--sigma_scale", type=float, default=1.5, help="Multiplicative step between scales."
    )
    parser.add_argument("--n_scales", type=int, default=1, help="Number of scales.")
    parser.add_argument(
        "--noise_threshold",
        type=float,
        default=5.0,
        help="Strength threshold as a multiple of the estimated noise.",
    )
    parser.add_argument(
        "--no_3d", action="store_true", help="Process a single plane of a stack in 2D."
    )
    parser.add_argument("--plane", type=int, default=0, help="Plane used with --no_3d.")
    parser.add_argument("--no_merge", action="store_true", help="Skip merging of fragments.")
    parser.add_argument(
        "--angle_threshold", type=float, default=25.0, help="Merge angle threshold (degrees)."
    )
    parser.add_argument(
        "--distance_threshold", type=float, default=1.5, help="Merge distance threshold."
    )
    parser.add_argument(
        "--min_points", type=int, default=1, help="Minimum number of points per ridge."
    )
    parser.add_argument("--sqrt", action="store_true", help="Square-root transform the input.")
    parser.add_argument(
        "--channel",
        type=int,
        default=None,
        help="Channel (RGB order) to process in a colour image; grayscale if not set.",
    )
    parser.add_argument(
        "--pixel_width", type=float, default=None, help="Pixel width in physical units."
    )
    parser.add_argument(
        "--pixel_height", type=float, default=None, help="Pixel height in physical units."
    )
    parser.add_argument("--z_spacing", type=float, default=None, help="Spacing between planes.")
    parser.add_argument(
        "--parallel_jobs",
        type=int,
        default=1,
        help="Number of processes for per-plane noise estimation.",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    config = RidgeDetectionConfig(
        sigma_start=args.sigma_start,
        sigma_scale=args.sigma_scale,
        n_scales=args.n_scales,
        noise_threshold=args.noise_threshold,
        do_3d=not args.no_3d,
        do_merge=not args.no_merge,
        angle_threshold=args.angle_threshold,
        distance_threshold=args.distance_threshold,
        min_points=args.min_points,
        sqrt_transform=args.sqrt,
        channel=args.channel,
        n_jobs=args.parallel_jobs,
        show_progress=True,
    )
    calibration = None
    if args.pixel_width is not None:
        calibration = PixelCalibration.from_pixel_size(
            args.pixel_width, args.pixel_height, args.z_spacing
        )

    input_path = Path(args.input)
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    image = load_image(str(input_path), grayscale=args.channel is None)
    detector = RidgeDetector(config)
    ridges = detector.detect(image, calibration=calibration, z=args.plane)

    shape = detector.accumulator.shape
    mask = render_ridges(ridges, shape)
    if not save_3d_volume(mask, str(output_dir), prefix=f"{input_path.stem}_ridges_"):
        logging.error(f"Failed to save ridge mask to {output_dir}")
        return 1

    meta_filename = output_dir / f"{input_path.stem}_ridges.meta"
    with open(meta_filename, "w") as meta_file:
        meta_file.write(f"source_image: {input_path.name}\n")
        for key, value in config.to_dict().items():
            meta_file.write(f"{key}: {value}\n")
        meta_file.write(f"n_ridges: {len(ridges)}\n")
    logging.info(f"Metadata saved to {meta_filename}")

    for i, ridge in enumerate(sorted(ridges, key=lambda r: r.n_points, reverse=True)[:10]):
        logging.info(
            f"Ridge {i + 1}: {ridge.n_points} points, mean strength {ridge.mean_strength:.4g}, "
            f"length {ridge.length(calibration):.4g}"
        )

    logging.info("Ridge detection finished.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
