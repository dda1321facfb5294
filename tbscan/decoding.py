"""
decoding.py - Turn an image locator into a grayscale intensity matrix.

The rest of the pipeline only ever sees a 2-D ``uint8`` array with values
in 0..255.  This module is the one place that knows about file formats:

    .dcm            read with pydicom, rescaled, windowed, scaled to 0..255
    everything else opened with Pillow and converted to 8-bit luma ("L")

Pillow's "L" conversion uses the ITU-R 601-2 weights

    L = 0.299 R + 0.587 G + 0.114 B

so colour exports of radiographs collapse to the same intensities a
canvas-based grayscale conversion would produce.

References
----------
- DICOM PS3.3, attribute (0028,1050)/(0028,1051): WindowCenter/WindowWidth
- Pillow modes: https://pillow.readthedocs.io/en/stable/handbook/concepts.html#modes
"""

import logging
import os
from typing import Any, Optional

import numpy as np
import pydicom
from PIL import Image
from pydicom.dataset import Dataset

from tbscan.config import CONFIG
from tbscan.errors import DecodeError, InputError, PipelineError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Window presets (centre, width) commonly used in radiology
# ---------------------------------------------------------------------------
WINDOW_PRESETS: dict[str, tuple[float, float]] = {
    "brain": (40.0, 80.0),
    "bone": (400.0, 1800.0),
    "lung": (-600.0, 1500.0),
    "mediastinum": (50.0, 350.0),
    "soft_tissue": (50.0, 400.0),
}

DICOM_EXTENSIONS = (".dcm", ".dicom")


def to_rescaled(
    pixel_array: np.ndarray,
    slope: float = 1.0,
    intercept: float = 0.0,
) -> np.ndarray:
    """
    Convert raw stored pixel values to modality values (HU for CT).

    Parameters
    ----------
    pixel_array : np.ndarray
        Raw pixel data as returned by ``ds.pixel_array``.
    slope : float
        RescaleSlope from the DICOM header (default 1.0).
    intercept : float
        RescaleIntercept from the DICOM header (default 0.0).

    Returns
    -------
    np.ndarray
        Float array, same shape as *pixel_array*.
    """
    return pixel_array.astype(np.float64) * slope + intercept


def apply_window(
    values: np.ndarray,
    center: float,
    width: float,
) -> np.ndarray:
    """
    Apply window/level and map the result onto the 0..255 intensity range.

    Values below (center - width/2) map to 0, values above
    (center + width/2) map to 255, everything in between is scaled
    linearly and rounded to the nearest integer.
    """
    if width <= 0:
        raise InputError(f"Window width must be > 0, got width={width}.")
    lower = center - width / 2.0
    upper = center + width / 2.0
    windowed = (np.clip(values, lower, upper) - lower) / (upper - lower)
    return np.rint(windowed * 255.0).astype(np.uint8)


def _first(value: Any) -> float:
    # WindowCenter/Width can be a MultiValue list; take the first element
    if hasattr(value, "__iter__") and not isinstance(value, str):
        return float(list(value)[0])
    return float(value)


def matrix_from_dataset(ds: Dataset, preset: Optional[str] = None) -> np.ndarray:
    """
    Extract pixel data from a DICOM Dataset and window it to 0..255.

    Priority for window parameters:
    1. Named *preset* from WINDOW_PRESETS.
    2. Values embedded in the DICOM header (WindowCenter / WindowWidth).
    3. The full min..max range of the slice.
    """
    slope = float(getattr(ds, "RescaleSlope", 1.0))
    intercept = float(getattr(ds, "RescaleIntercept", 0.0))
    values = to_rescaled(ds.pixel_array, slope=slope, intercept=intercept)

    if values.ndim != 2:
        raise DecodeError(
            f"Expected a single-frame grayscale slice, got shape {values.shape}."
        )

    if preset is not None:
        if preset not in WINDOW_PRESETS:
            raise InputError(
                f"Unknown preset '{preset}'. "
                f"Choose from: {list(WINDOW_PRESETS.keys())}"
            )
        wc, ww = WINDOW_PRESETS[preset]
    elif getattr(ds, "WindowCenter", None) is not None and getattr(ds, "WindowWidth", None) is not None:
        wc, ww = _first(ds.WindowCenter), _first(ds.WindowWidth)
    else:
        lo, hi = float(values.min()), float(values.max())
        if hi == lo:
            return np.zeros(values.shape, dtype=np.uint8)
        wc, ww = (lo + hi) / 2.0, hi - lo

    logger.debug("Applying window: centre=%.1f, width=%.1f", wc, ww)
    return apply_window(values, center=wc, width=ww)


def decode_image(locator: str, window_preset: Optional[str] = None) -> np.ndarray:
    """
    Read the image at *locator* and return it as a grayscale matrix.

    Parameters
    ----------
    locator : str
        Path to a DICOM, PNG, JPEG or any other Pillow-readable file.
    window_preset : str, optional
        Window preset for DICOM input.  Defaults to config value.

    Returns
    -------
    np.ndarray
        ``uint8`` array of shape (height, width).

    Raises
    ------
    DecodeError
        If the file is missing, unsupported or corrupt.
    """
    window_preset = window_preset or CONFIG["dicom"]["window_preset"]

    if not os.path.isfile(locator):
        raise DecodeError(f"Image not found: {locator}")

    if locator.lower().endswith(DICOM_EXTENSIONS):
        try:
            ds = pydicom.dcmread(locator)
            matrix = matrix_from_dataset(ds, preset=window_preset)
        except PipelineError:
            raise
        except Exception as exc:
            # pydicom raises InvalidDicomError, RuntimeError or NotImplementedError
            # depending on whether the header or the pixel handler fails
            raise DecodeError(f"Could not decode DICOM {locator}: {exc}") from exc
    else:
        try:
            with Image.open(locator) as img:
                matrix = np.asarray(img.convert("L"), dtype=np.uint8)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise DecodeError(f"Could not decode image {locator}: {exc}") from exc

    logger.debug("Decoded %s: %dx%d", locator, matrix.shape[1], matrix.shape[0])
    return matrix


def as_matrix(data: Any) -> np.ndarray:
    """
    Validate an in-memory intensity matrix and return it as ``uint8``.

    Accepts a NumPy array or a list of equal-length rows.

    Raises
    ------
    InputError
        If the matrix is empty, ragged, not 2-D or outside 0..255.
    """
    if data is None:
        raise InputError("Input matrix is empty or undefined")

    if isinstance(data, np.ndarray):
        arr = data
    else:
        try:
            rows = list(data)
        except TypeError as exc:
            raise InputError(f"Input matrix must be a sequence of rows, got {type(data).__name__}") from exc
        if not rows:
            raise InputError("Input matrix is empty or undefined")
        if not all(hasattr(row, "__len__") for row in rows):
            raise InputError("Input matrix must be a sequence of rows, got a flat sequence")
        widths = {len(row) for row in rows}
        if len(widths) != 1:
            raise InputError(f"Input matrix rows have unequal lengths: {sorted(widths)}")
        arr = np.asarray(rows)

    if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InputError(f"Input matrix must be a non-empty 2-D grid, got shape {arr.shape}")
    if not np.issubdtype(arr.dtype, np.number):
        raise InputError(f"Input matrix must be numeric, got dtype {arr.dtype}")
    if arr.min() < 0 or arr.max() > 255:
        raise InputError("Input matrix values must lie in 0..255")

    return arr.astype(np.uint8)
