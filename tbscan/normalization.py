"""
normalization.py - Resize a grayscale matrix to the working resolution.

Every downstream stage assumes a fixed-size input so that block grids
from different images line up cell for cell.  Resampling goes through
Pillow: the single channel is replicated into an RGB image, resized, and
collapsed back by averaging the three channels.

Upscaling (target larger than the source in either dimension) uses
bicubic resampling; strictly shrinking uses bilinear resampling, which
keeps edges crisper at the cost of some aliasing.
"""

import logging
from typing import Any, Optional, Sequence

import numpy as np
from PIL import Image

from tbscan.config import CONFIG
from tbscan.decoding import as_matrix

logger = logging.getLogger(__name__)

UPSCALE_FILTER = Image.Resampling.BICUBIC
DOWNSCALE_FILTER = Image.Resampling.BILINEAR


def resize_matrix(
    matrix: Any,
    target_size: Optional[Sequence[int]] = None,
) -> np.ndarray:
    """
    Resample *matrix* to exactly ``target_size`` = (width, height).

    Parameters
    ----------
    matrix : array-like
        Grayscale intensities 0..255, one row per image line.
    target_size : (int, int), optional
        Output width and height.  Defaults to config value (1024x1024).

    Returns
    -------
    np.ndarray
        ``uint8`` array of shape (height, width).

    Raises
    ------
    InputError
        If *matrix* is empty or malformed.
    """
    target_size = target_size or CONFIG["image"]["target_size"]
    target_width, target_height = int(target_size[0]), int(target_size[1])

    source = as_matrix(matrix)
    original_height, original_width = source.shape

    if target_width > original_width or target_height > original_height:
        resample = UPSCALE_FILTER
    else:
        resample = DOWNSCALE_FILTER

    logger.debug(
        "Resizing %dx%d -> %dx%d (%s)",
        original_width, original_height, target_width, target_height, resample.name,
    )

    rgb = Image.fromarray(np.repeat(source[:, :, np.newaxis], 3, axis=2))
    resized = np.asarray(rgb.resize((target_width, target_height), resample=resample))

    gray = np.rint(resized.astype(np.float64).mean(axis=2))
    return gray.astype(np.uint8)
