"""
scoring.py - Label each grid cell suspicious or normal against a model.

For every coordinate, the normal and anomaly counts of all its tokens are
summed (tokens the model has never seen add nothing).  The cell is

    0 (normal)      if anomaly == 0 or normal / anomaly > ratio_threshold
    1 (suspicious)  otherwise

The flat labels follow the memo's coordinate order and are reshaped into
a square ActivationGrid.
"""

import logging
import math
from typing import Mapping, Optional, Sequence

import numpy as np

from tbscan.config import CONFIG
from tbscan.errors import ShapeError
from tbscan.model import TrainedModel

logger = logging.getLogger(__name__)


def label_cell(
    tokens: Sequence[str],
    model: TrainedModel,
    ratio_threshold: float = 0.9,
) -> int:
    normal = 0
    anomaly = 0
    for token in tokens:
        counts = model.counts(token)
        normal += counts.normal
        anomaly += counts.anomaly

    if anomaly == 0 or normal / anomaly > ratio_threshold:
        return 0
    return 1


def to_grid(labels: Sequence[int]) -> np.ndarray:
    """Reshape a flat row-major label list into a square grid."""
    count = len(labels)
    n = math.isqrt(count)
    if n * n != count:
        raise ShapeError(
            f"Number of coordinates must form a perfect square, got {count}."
        )
    return np.asarray(labels, dtype=np.uint8).reshape(n, n)


def score_memo(
    memo: Mapping[str, Sequence[str]],
    model: TrainedModel,
    ratio_threshold: Optional[float] = None,
) -> np.ndarray:
    """
    Build the ActivationGrid for one image.

    Parameters
    ----------
    memo : mapping
        Coordinate key -> tokens, in row-major coordinate order.
    model : TrainedModel
        Token counts.  Only read.
    ratio_threshold : float, optional
        Normal/anomaly ratio above which a cell stays normal.
        Defaults to config value (0.9).

    Returns
    -------
    np.ndarray
        Square ``uint8`` grid of 0/1 labels.

    Raises
    ------
    ShapeError
        If the coordinate count is not a perfect square.
    """
    if ratio_threshold is None:
        ratio_threshold = CONFIG["detection"]["ratio_threshold"]

    labels = [label_cell(tokens, model, ratio_threshold) for tokens in memo.values()]
    grid = to_grid(labels)
    logger.debug("Activation grid %dx%d: %d suspicious cells", *grid.shape, int(grid.sum()))
    return grid
