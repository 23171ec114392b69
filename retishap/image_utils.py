import os
import logging
from typing import Any, Tuple

import numpy as np
from PIL import Image
import skimage.color
import skimage.io
import skimage.transform
import skimage.util

from .exceptions import InvalidImageError

logger = logging.getLogger(__name__)

CANONICAL_SIZE = 224
BASELINE_GRAY = 0.5


def read_only(img: np.ndarray) -> np.ndarray:
    """Mark an array as immutable and return it."""
    img.setflags(write=False)
    return img


def to_float_image(image: Any) -> np.ndarray:
    """
    Convert an input image into the library's working representation.

    Accepts a path to an image file, a PIL image or a numpy array. Unsigned
    integer arrays (8- or 16-bit) are scaled by their dtype's range; other
    arrays may hold values in [0, 1] or [0, 255]. Grayscale images are expanded
    to three channels and RGBA images are composited over white.

    Args:
        image (Any): Path, PIL.Image.Image or np.ndarray.

    Returns:
        np.ndarray: Read-only float32 array of shape (H, W, 3) in [0, 1].

    Raises:
        InvalidImageError: If the image cannot be read or has an unsupported
            shape.
    """
    if isinstance(image, (str, os.PathLike)):
        try:
            image = skimage.io.imread(image)
        except (OSError, ValueError) as exc:
            raise InvalidImageError(f"Could not read image: {exc}") from exc
    elif isinstance(image, Image.Image):
        image = np.asarray(image.convert("RGB"))

    if not isinstance(image, np.ndarray):
        raise InvalidImageError(f"Unsupported image type: {type(image)}")
    if image.size == 0:
        raise InvalidImageError("Image is empty")

    img = image
    if img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]
    if img.ndim == 2:
        img = skimage.color.gray2rgb(img)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = skimage.color.rgba2rgb(skimage.util.img_as_float(img))
    elif not (img.ndim == 3 and img.shape[2] == 3):
        raise InvalidImageError(f"Unexpected image shape: {image.shape}")

    if np.issubdtype(img.dtype, np.unsignedinteger):
        # Scaled by the dtype's range, e.g. 65535 for 16-bit images
        img = skimage.util.img_as_float32(img)
    else:
        img = img.astype(np.float32)
        # Plain int or float arrays holding values in [0, 255]
        if np.nanmax(img) > 1.0:
            img = img / 255.0

    if not np.all(np.isfinite(img)):
        raise InvalidImageError("Image contains non-finite pixel values")

    return read_only(np.clip(img, 0.0, 1.0).astype(np.float32))


def fit_size(height: int, width: int, target_size: int = CANONICAL_SIZE) -> Tuple[int, int]:
    """Size of an image scaled so that neither side exceeds target_size."""
    if height <= target_size and width <= target_size:
        return height, width
    ratio = min(target_size / width, target_size / height)
    return max(1, int(round(height * ratio))), max(1, int(round(width * ratio)))


def resize_to_fit(img: np.ndarray, target_size: int = CANONICAL_SIZE) -> np.ndarray:
    """
    Resize an image, preserving its aspect ratio, so that its longer side
    does not exceed target_size. Smaller images are returned unchanged.
    """
    height, width = img.shape[:2]
    new_height, new_width = fit_size(height, width, target_size)
    if (new_height, new_width) == (height, width):
        return img

    logger.debug(f"Resizing image from {width}x{height} to {new_width}x{new_height}")
    resized = skimage.transform.resize(
        img,
        (new_height, new_width),
        order=1,
        anti_aliasing=True,
        preserve_range=True,
    )
    return read_only(np.clip(resized, 0.0, 1.0).astype(np.float32))


def crop(img: np.ndarray, segment) -> np.ndarray:
    """Return the pixels of img covered by segment."""
    rows, cols = segment.slices()
    return img[rows, cols]


def gray_image(height: int, width: int, value: float = BASELINE_GRAY) -> np.ndarray:
    """Solid mid-gray RGB image."""
    return np.full((height, width, 3), value, dtype=np.float32)


def to_pil(img: np.ndarray) -> Image.Image:
    """Convert a float image in [0, 1] to an 8-bit PIL image."""
    return Image.fromarray(skimage.util.img_as_ubyte(np.clip(img, 0.0, 1.0)))
