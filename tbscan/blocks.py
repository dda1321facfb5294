"""
blocks.py - Cut a matrix into fixed-size, non-overlapping square tiles.

Rows and columns that do not fill a complete tile are dropped; nothing
is padded.  Tiles are emitted in row-major order: top strip first, left
to right within each strip.
"""

import logging
from typing import Any

import numpy as np

from tbscan.errors import ConfigError, InputError

logger = logging.getLogger(__name__)


def trimmed_shape(height: int, width: int, size: int) -> tuple[int, int]:
    """Return the largest (height, width) that is a whole multiple of *size*."""
    return height - (height % size), width - (width % size)


def extract_blocks(matrix: Any, size: int = 8) -> list[np.ndarray]:
    """
    Partition *matrix* into ``size`` x ``size`` blocks.

    Parameters
    ----------
    matrix : array-like
        2-D grid of intensities.
    size : int
        Block side length (default 8).

    Returns
    -------
    list[np.ndarray]
        Blocks in row-major order.  Each block is a copy, so callers may
        modify it without touching *matrix*.
    """
    if size < 1:
        raise ConfigError(f"Block size must be >= 1, got {size}.")

    mat = np.asarray(matrix)
    if mat.ndim != 2:
        raise InputError(f"Expected a 2-D matrix, got shape {mat.shape}.")

    height, width = mat.shape
    trimmed_h, trimmed_w = trimmed_shape(height, width, size)
    trimmed = mat[:trimmed_h, :trimmed_w]

    blocks = [
        trimmed[i:i + size, j:j + size].copy()
        for i in range(0, trimmed_h, size)
        for j in range(0, trimmed_w, size)
    ]
    logger.debug(
        "Extracted %d blocks of %dx%d from %dx%d (trimmed to %dx%d)",
        len(blocks), size, size, width, height, trimmed_w, trimmed_h,
    )
    return blocks
