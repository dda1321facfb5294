"""
clustering.py - Connected suspicious regions and the diagnostic score.

A single suspicious cell is weak evidence; textures that look abnormal
over a contiguous patch of lung are much stronger.  This module finds
4-connected components of 1-labelled cells in an ActivationGrid and
turns the ones large enough to matter into a score:

    score = sum( round( (size * 0.4) / (distance * 0.6) ) * 100 )

``distance`` is the rounded Euclidean distance from the cell where the
component was first discovered (row-major scan) to the grid centre, so
central findings weigh more than regions hugging the image border, where
collimation edges and labels produce spurious texture.  A distance of 0
is floored to 1.

LIMITATIONS
-----------
- The weighting constants are empirical and were never calibrated
  against radiologist ground truth.
- Only the discovery cell sets the distance; a large component that
  starts near the edge and extends to the centre is still down-weighted.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from tbscan.config import CONFIG
from tbscan.numeric import round_half_up

logger = logging.getLogger(__name__)

SIZE_WEIGHT = 0.4
DISTANCE_WEIGHT = 0.6
SCORE_SCALE = 100

# down, up, right, left
_NEIGHBOURS = ((1, 0), (-1, 0), (0, 1), (0, -1))


@dataclass
class Cluster:
    """One connected component that passed the size threshold."""
    size: int
    origin: tuple[int, int]
    distance: int


@dataclass
class ClusterReport:
    """Aggregate over all qualifying components of one grid."""
    count: int = 0
    sizes: list[int] = field(default_factory=list)
    total_size: int = 0
    score: int = 0
    clusters: list[Cluster] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "count": self.count,
            "sizes": list(self.sizes),
            "totalSize": self.total_size,
            "score": self.score,
        }


def _component_size(grid: np.ndarray, visited: np.ndarray, start: tuple[int, int]) -> int:
    rows, cols = grid.shape
    stack = [start]
    visited[start] = True
    size = 0
    while stack:
        i, j = stack.pop()
        size += 1
        for di, dj in _NEIGHBOURS:
            ni, nj = i + di, j + dj
            if 0 <= ni < rows and 0 <= nj < cols and grid[ni, nj] == 1 and not visited[ni, nj]:
                visited[ni, nj] = True
                stack.append((ni, nj))
    return size


def center_distance(i: int, j: int, shape: tuple[int, int]) -> int:
    """Rounded distance from (i, j) to the grid centre, at least 1."""
    rows, cols = shape
    ci, cj = round_half_up(rows / 2), round_half_up(cols / 2)
    return max(round_half_up(math.hypot(j - cj, i - ci)), 1)


def cluster_score(size: int, distance: int) -> int:
    return round_half_up((size * SIZE_WEIGHT) / (distance * DISTANCE_WEIGHT)) * SCORE_SCALE


def find_clusters(grid: np.ndarray, min_size: Optional[int] = None) -> ClusterReport:
    """
    Find 4-connected components of 1-cells and score the large ones.

    The input grid is not modified; visited cells are tracked in a
    separate mask.

    Parameters
    ----------
    grid : np.ndarray
        Square ActivationGrid of 0/1 labels.
    min_size : int, optional
        Smallest component that counts.  Defaults to config value (7).

    Returns
    -------
    ClusterReport
        ``count``, ``sizes``, ``total_size`` and ``score`` over the
        qualifying components, plus one ``Cluster`` record per component.
    """
    if min_size is None:
        min_size = CONFIG["detection"]["min_cluster_size"]

    report = ClusterReport()
    grid = np.asarray(grid)
    if grid.ndim != 2 or grid.size == 0:
        return report

    visited = np.zeros(grid.shape, dtype=bool)
    rows, cols = grid.shape

    for i in range(rows):
        for j in range(cols):
            if grid[i, j] != 1 or visited[i, j]:
                continue
            size = _component_size(grid, visited, (i, j))
            if size < min_size:
                continue

            distance = center_distance(i, j, grid.shape)
            report.score += cluster_score(size, distance)
            report.count += 1
            report.sizes.append(size)
            report.total_size += size
            report.clusters.append(Cluster(size=size, origin=(i, j), distance=distance))

    logger.info(
        "Clustering complete: %d cluster(s) >= %d cells, score=%d",
        report.count, min_size, report.score,
    )
    return report
