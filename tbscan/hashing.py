"""
hashing.py - Directional neighbour tokens over a feature grid.

Each grid cell is compared with its eight neighbours.  For every
neighbour that lies inside the grid one token is emitted:

    basic     own0_own1_nb0_nb1_dir
    extended  own0_own1_nb0_nb1_rel_dir

``dir`` coarsens the neighbour offset by row relationship:

    above  (top-left, top, top-right)            0
    below  (bottom-left, bottom, bottom-right)   1
    left                                         2
    right                                        4

``rel`` encodes the quadrant of the cell relative to r = side / 2:

    i >= r, j >= r   -1
    i >= r, j <  r    0
    i <  r, j >= r    1
    i <  r, j <  r    2

Token order matters: scoring groups tokens per coordinate, and two runs
on the same grid must produce identical sequences.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from tbscan.numeric import format_number

logger = logging.getLogger(__name__)

# (di, dj, direction code) in scan order
DIRECTIONS: tuple[tuple[int, int, int], ...] = (
    (-1, -1, 0),  # top-left
    (-1, 0, 0),   # top
    (-1, 1, 0),   # top-right
    (0, -1, 2),   # left
    (0, 1, 4),    # right
    (1, -1, 1),   # bottom-left
    (1, 0, 1),    # bottom
    (1, 1, 1),    # bottom-right
)


@dataclass
class HashResult:
    """Tokens for one image: a flat list plus the per-coordinate memo."""
    hashes: list[str] = field(default_factory=list)
    memo: dict[str, list[str]] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"hashes": list(self.hashes), "memo": {k: list(v) for k, v in self.memo.items()}}


def coord_key(i: int, j: int) -> str:
    return f"({i},{j})"


def quadrant_code(i: int, j: int, r: float) -> int:
    """Quadrant of (i, j) relative to the grid midpoint *r*."""
    if i >= r:
        return -1 if j >= r else 0
    return 1 if j >= r else 2


def cell_label(features) -> str:
    """The first two features of a cell, as they appear inside a token."""
    return f"{format_number(features[0])}_{format_number(features[1])}"


def generate_hashes(grid: np.ndarray, extended: bool = False) -> HashResult:
    """
    Walk *grid* row by row and emit neighbour tokens for every cell.

    Parameters
    ----------
    grid : np.ndarray
        FeatureGrid of shape (rows, cols, k), k >= 2.
    extended : bool
        Include the quadrant code in every token.

    Returns
    -------
    HashResult
        ``hashes`` in scan order and ``memo`` keyed by ``"(row,col)"``.
    """
    grid = np.asarray(grid)
    result = HashResult()
    if grid.size == 0:
        return result

    rows, cols = grid.shape[0], grid.shape[1]
    r = rows / 2

    labels = [[cell_label(grid[i, j]) for j in range(cols)] for i in range(rows)]

    for i in range(rows):
        for j in range(cols):
            own = labels[i][j]
            rel = f"{quadrant_code(i, j, r)}_" if extended else ""
            tokens: list[str] = []
            for di, dj, direction in DIRECTIONS:
                ni, nj = i + di, j + dj
                if 0 <= ni < rows and 0 <= nj < cols:
                    tokens.append(f"{own}_{labels[ni][nj]}_{rel}{direction}")

            result.memo[coord_key(i, j)] = tokens
            result.hashes.extend(tokens)

    logger.debug("Generated %d tokens over %dx%d grid", len(result.hashes), rows, cols)
    return result
