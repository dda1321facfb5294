"""
spectral.py - Per-block frequency features for perceptual hashing.

WHY FREQUENCY BANDS?
--------------------
Consolidations, cavities and nodules change the *texture* of lung tissue
more reliably than its absolute brightness, which varies with exposure
and scanner.  Texture lives in the spatial-frequency content of a small
tile: smooth tissue concentrates energy near the zero frequency, fine
reticular patterns push energy outward.  Reducing each 8x8 tile to a
couple of quantized band energies gives a fingerprint that is cheap to
compare and stable across small intensity shifts.

PER-BLOCK STEPS
---------------
1. Normalise: subtract the mean, divide by (std + 1e-10).  This removes
   the DC bias so a bright tile and a dark tile with the same texture
   produce the same spectrum.
2. 2-D FFT, computed as radix-2 1-D transforms over rows, then columns.
3. Shift the zero frequency to the block centre.
4. Log-magnitude: log(1 + |F|).
5. Bucket cells by distance d from the centre:

       low   d <= B/4
       mid   B/4 < d <= B/2.5    (only when band_count > 2)
       high  d > B/2.5

6. Sum each band and quantize: round(energy / binsize) * binsize.

The feature vector is ``[high, low]`` or ``[high, low, mid]``.

LIMITATIONS
-----------
- The transform is only defined for power-of-two block sizes.
- Quantization makes features robust to noise but also merges genuinely
  different textures that fall in the same bin.
- Nothing here is rotation invariant beyond what the radial bands give.

References
----------
- Cooley & Tukey (1965), "An algorithm for the machine calculation of
  complex Fourier series", Math. Comp. 19(90).
"""

import logging
import math
from typing import Optional, Sequence

import numpy as np

from tbscan.config import CONFIG
from tbscan.errors import ConfigError, ShapeError
from tbscan.numeric import round_half_up

logger = logging.getLogger(__name__)

EPSILON = 1e-10

MID_BAND_MODES = ("energy", "legacy")


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------

def fft_1d(values: np.ndarray) -> np.ndarray:
    """
    Radix-2 decimation-in-time FFT along the last axis.

    Leading axes are treated as a batch, so a stack of rows is
    transformed in one call.

    Parameters
    ----------
    values : np.ndarray
        Real or complex samples; the last axis length must be a power of two.

    Returns
    -------
    np.ndarray
        Complex spectrum, same shape as *values*.
    """
    x = np.asarray(values, dtype=np.complex128)
    n = x.shape[-1]
    if not is_power_of_two(n):
        raise ConfigError(f"FFT length must be a power of two, got {n}.")
    if n == 1:
        return x.copy()

    even = fft_1d(x[..., 0::2])
    odd = fft_1d(x[..., 1::2])

    k = np.arange(n // 2)
    twiddle = np.exp(-2j * np.pi * k / n)
    term = twiddle * odd
    return np.concatenate([even + term, even - term], axis=-1)


def fft_2d(matrix: np.ndarray) -> np.ndarray:
    """
    Separable 2-D FFT over the last two axes: rows first, then columns.
    """
    rows = fft_1d(matrix)
    cols = fft_1d(np.swapaxes(rows, -1, -2))
    return np.swapaxes(cols, -1, -2)


def fft_shift(matrix: np.ndarray) -> np.ndarray:
    """Move the zero-frequency cell to the centre by swapping quadrants."""
    rows, cols = matrix.shape[-2], matrix.shape[-1]
    return np.roll(matrix, shift=(rows // 2, cols // 2), axis=(-2, -1))


# ---------------------------------------------------------------------------
# Bands
# ---------------------------------------------------------------------------

def band_masks(
    block_size: int,
    mid_band: str = "energy",
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Boolean (low, mid, high) masks over a ``block_size`` square spectrum.

    With ``mid_band="legacy"`` the mid mask is the historical selector
    ``d < B/4 and d > B/2.5``, which is empty for every block size.
    """
    if mid_band not in MID_BAND_MODES:
        raise ConfigError(
            f"Unknown mid_band mode '{mid_band}'. Choose from: {list(MID_BAND_MODES)}"
        )

    center = block_size / 2
    y, x = np.mgrid[0:block_size, 0:block_size]
    dist = np.sqrt((x - center) ** 2 + (y - center) ** 2)

    low_cut = block_size / 4
    high_cut = block_size / 2.5

    low = dist <= low_cut
    high = dist > high_cut
    if mid_band == "energy":
        mid = (dist > low_cut) & (dist <= high_cut)
    else:
        mid = (dist < low_cut) & (dist > high_cut)
    return low, mid, high


def quantize(energy, binsize: float):
    """Round *energy* to the nearest multiple of *binsize* (ties up)."""
    return round_half_up(np.asarray(energy, dtype=np.float64) / binsize) * binsize


# ---------------------------------------------------------------------------
# Features
# ---------------------------------------------------------------------------

def normalize_blocks(blocks: np.ndarray) -> np.ndarray:
    """Zero-mean, unit-variance normalisation over the last two axes."""
    data = np.asarray(blocks, dtype=np.float64)
    mean = data.mean(axis=(-2, -1), keepdims=True)
    std = data.std(axis=(-2, -1), keepdims=True)
    return (data - mean) / (std + EPSILON)


def log_magnitude_spectrum(blocks: np.ndarray) -> np.ndarray:
    """Normalise, transform, centre and return log(1 + |F|)."""
    spectrum = fft_shift(fft_2d(normalize_blocks(blocks)))
    return np.log1p(np.abs(spectrum))


def _band_features(
    stack: np.ndarray,
    binsize: float,
    band_count: int,
    block_size: int,
    mid_band: str,
) -> np.ndarray:
    low, mid, high = band_masks(block_size, mid_band)
    log_mag = log_magnitude_spectrum(stack)

    high_energy = quantize(log_mag[:, high].sum(axis=1), binsize)
    low_energy = quantize(log_mag[:, low].sum(axis=1), binsize)
    columns = [high_energy, low_energy]

    if band_count > 2:
        if mid_band == "legacy":
            columns.append(np.full(len(stack), np.nan))
        else:
            columns.append(quantize(log_mag[:, mid].sum(axis=1), binsize))

    return np.stack(columns, axis=1)


def _check_params(binsize: float, band_count: int, block_size: int) -> None:
    if not is_power_of_two(block_size):
        raise ConfigError(f"Block size must be a power of two, got {block_size}.")
    if binsize <= 0:
        raise ConfigError(f"Quantization bin size must be > 0, got {binsize}.")
    if band_count < 2:
        raise ConfigError(f"Band count must be >= 2, got {band_count}.")


def block_features(
    block: np.ndarray,
    binsize: float = 2,
    band_count: int = 2,
    block_size: int = 8,
    mid_band: str = "energy",
) -> np.ndarray:
    """
    Feature vector for a single block: ``[high, low]`` or ``[high, low, mid]``.
    """
    _check_params(binsize, band_count, block_size)
    arr = np.asarray(block, dtype=np.float64)
    if arr.shape != (block_size, block_size):
        raise ShapeError(
            f"Block must be {block_size}x{block_size}, got {arr.shape}."
        )
    return _band_features(arr[np.newaxis], binsize, band_count, block_size, mid_band)[0]


def extract_features(
    blocks: Sequence[np.ndarray],
    binsize: Optional[float] = None,
    band_count: Optional[int] = None,
    block_size: Optional[int] = None,
    mid_band: Optional[str] = None,
) -> np.ndarray:
    """
    Compute band features for every block and lay them out on a square grid.

    Parameters
    ----------
    blocks : sequence of np.ndarray
        Blocks in row-major order, as produced by ``extract_blocks``.
    binsize : float, optional
        Quantization step.  Defaults to config value (2).
    band_count : int, optional
        2 for ``[high, low]``, >2 to append the mid band.  Defaults to 2.
    block_size : int, optional
        Block side length, must be a power of two.  Defaults to 8.
    mid_band : str, optional
        "energy" or "legacy".  Defaults to config value.

    Returns
    -------
    np.ndarray
        FeatureGrid of shape (n, n, k) where n = sqrt(len(blocks)) and
        k is 2 or 3.  ``grid[row, col]`` belongs to block ``row * n + col``.

    Raises
    ------
    ShapeError
        If the block count is not a perfect square.
    ConfigError
        If the block size is not a power of two.
    """
    features_cfg = CONFIG["features"]
    binsize = binsize if binsize is not None else features_cfg["binsize"]
    band_count = band_count if band_count is not None else features_cfg["band_count"]
    block_size = block_size if block_size is not None else features_cfg["block_size"]
    mid_band = mid_band or features_cfg["mid_band"]

    _check_params(binsize, band_count, block_size)

    count = len(blocks)
    n = math.isqrt(count)
    if count == 0 or n * n != count:
        raise ShapeError(
            f"Number of blocks must form a perfect square, got {count}."
        )

    stack = np.asarray(blocks, dtype=np.float64)
    if stack.shape[1:] != (block_size, block_size):
        raise ShapeError(
            f"Blocks must be {block_size}x{block_size}, got {stack.shape[1:]}."
        )

    features = _band_features(stack, binsize, band_count, block_size, mid_band)
    grid = features.reshape(n, n, features.shape[1])
    logger.debug("Feature grid %dx%d with %d bands", n, n, grid.shape[2])
    return grid
