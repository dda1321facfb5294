"""
numeric.py - Rounding and number formatting shared by several stages.

Python's built-in ``round`` uses banker's rounding (``round(2.5) == 2``).
Quantized features and cluster scores are compared against models trained
with round-half-up arithmetic, so every stage rounds through here.
"""

import math

import numpy as np


def round_half_up(x):
    """Round to the nearest integer, ties away from -inf (``floor(x + 0.5)``)."""
    if isinstance(x, np.ndarray):
        return np.floor(x + 0.5)
    return math.floor(x + 0.5)


def format_number(value: float) -> str:
    """
    Render a feature value the way tokens store it.

    Integral values drop the decimal point (``12.0`` -> ``"12"``),
    other values use the shortest float repr, NaN becomes ``"NaN"``.
    """
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if value.is_integer():
        return str(int(value))
    return repr(value)
