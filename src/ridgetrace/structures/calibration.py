"""
Pixel calibration used to convert pixel distances into physical units.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PixelCalibration:
    """
    Physical size of a pixel/voxel.

    When `has_pixel_size` is False all distances are measured in pixels and
    the width/height values are ignored. `z_spacing` is only used when
    `has_z_spacing` is True.
    """

    pixel_width: float = 1.0
    pixel_height: float = 1.0
    z_spacing: float = 1.0
    has_pixel_size: bool = False
    has_z_spacing: bool = False

    def __post_init__(self):
        if self.pixel_width <= 0 or self.pixel_height <= 0 or self.z_spacing <= 0:
            raise ValueError("Pixel sizes and z-spacing must be positive.")

    @classmethod
    def uncalibrated(cls) -> "PixelCalibration":
        return cls()

    @classmethod
    def from_pixel_size(
        cls, pixel_width: float, pixel_height: float = None, z_spacing: float = None
    ) -> "PixelCalibration":
        """
        Creates a calibration from known pixel dimensions.

        Args:
            pixel_width: Pixel width in physical units.
            pixel_height: Pixel height (defaults to the width).
            z_spacing: Distance between z-slices, if known.
        """
        return cls(
            pixel_width=pixel_width,
            pixel_height=pixel_width if pixel_height is None else pixel_height,
            z_spacing=1.0 if z_spacing is None else z_spacing,
            has_pixel_size=True,
            has_z_spacing=z_spacing is not None,
        )

    @property
    def averaged_pixel_size(self) -> float:
        if not self.has_pixel_size:
            return 1.0
        return (self.pixel_width + self.pixel_height) / 2.0

    @property
    def min_pixel_size(self) -> float:
        if not self.has_pixel_size:
            return 1.0
        return min(self.pixel_width, self.pixel_height)
