"""Input/output functions for image data."""

from .image import load_3d_volume, load_image, save_3d_volume

__all__ = ["load_3d_volume", "load_image", "save_3d_volume"]
