import logging
import os

import cv2
import numpy as np
from skimage.util import img_as_ubyte

logger = logging.getLogger(__name__)


def load_3d_volume(folder_path: str, grayscale: bool = True) -> np.ndarray:
    """
    Loads a sequence of TIFF files from a directory into a 3D NumPy array.

    The files are sorted numerically based on the digits in their filenames
    to ensure the correct stacking order.

    Args:
        folder_path (str): The path to the directory containing the TIFF stack.
        grayscale (bool): If False, colour slices are kept as RGB.

    Returns:
        np.ndarray: A 3D volume with shape (Z, Y, X), or (Z, Y, X, C) for colour.

    Raises:
        ValueError: If any image file cannot be read, if the slices differ
            in size, or if the folder is empty.
    """
    try:
        tiff_files = [f for f in os.listdir(folder_path) if f.lower().endswith((".tif", ".tiff"))]
        if not tiff_files:
            raise ValueError(f"No .tif files found in directory: {folder_path}")

        tiff_files.sort(key=lambda x: int("".join(filter(str.isdigit, x)) or 0))

    except OSError as e:
        raise ValueError(f"Cannot access directory {folder_path}: {e}")

    first_image = _read_image(os.path.join(folder_path, tiff_files[0]), grayscale)
    image_stack = np.zeros((len(tiff_files),) + first_image.shape, dtype=first_image.dtype)
    image_stack[0] = first_image

    for z_index, filename in enumerate(tiff_files[1:], 1):
        img = _read_image(os.path.join(folder_path, filename), grayscale)
        if img.shape != first_image.shape:
            raise ValueError(f"Image {filename} has shape {img.shape}, expected {first_image.shape}")
        image_stack[z_index] = img

    logger.info(f"Loaded stack of {len(tiff_files)} images from {folder_path}")
    return image_stack


def load_image(path: str, grayscale: bool = True) -> np.ndarray:
    """
    Loads a single image, or a TIFF stack if `path` is a directory.

    Returns:
        np.ndarray: A 2D (Y, X) image or 3D (Z, Y, X) stack, with a trailing
            RGB channel axis when `grayscale` is False and the image has colour.
    """
    if os.path.isdir(path):
        return load_3d_volume(path, grayscale)
    return _read_image(path, grayscale)


def _read_image(path: str, grayscale: bool = True) -> np.ndarray:
    # ANYDEPTH keeps 16-bit images intact
    flags = cv2.IMREAD_ANYDEPTH | (cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_ANYCOLOR)
    img = cv2.imread(path, flags)
    if img is None:
        raise ValueError(f"Could not read image: {path}")
    if img.ndim == 3:
        code = cv2.COLOR_BGRA2RGBA if img.shape[-1] == 4 else cv2.COLOR_BGR2RGB
        img = cv2.cvtColor(img, code)
    return img


def save_3d_volume(image_stack: np.ndarray, save_path: str, prefix: str = "") -> bool:
    """
    Saves a 2D image or 3D image stack as a sequence of individual TIFF files.

    Args:
        image_stack (np.ndarray): Image (Y, X) or volume (Z, Y, X).
        save_path (str): The directory path where the images will be saved.
        prefix (str, optional): A prefix to add to each filename. Defaults to "".

    Returns:
        bool: True if all images were saved successfully, False otherwise.
    """
    os.makedirs(save_path, exist_ok=True)
    image_stack = img_as_ubyte(image_stack)
    if image_stack.ndim == 2:
        image_stack = image_stack[np.newaxis]

    # Zero-padding keeps the files sorted
    num_digits = len(str(len(image_stack)))

    for idx, image_slice in enumerate(image_stack):
        filename = f"{prefix}{str(idx + 1).zfill(num_digits)}.tif"
        filepath = os.path.join(save_path, filename)

        if not cv2.imwrite(filepath, image_slice):
            logger.error(f"Failed to save image slice at index {idx} to {filepath}")
            return False

    logger.info(f"Successfully saved {len(image_stack)} images to {save_path}")
    return True
