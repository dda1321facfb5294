"""
visualization.py - Matplotlib figures for detection reports.

All plot functions follow a consistent style and return the Figure so
callers can save or display it as needed.
"""

import logging
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np

from tbscan.pipeline import DetectionResult

logger = logging.getLogger(__name__)

# Consistent figure style across all plots
plt.rcParams.update({"figure.dpi": 100, "axes.titlesize": 11})

BAND_NAMES = ("High-frequency energy", "Low-frequency energy", "Mid-frequency energy")


def plot_activation_map(
    activation: np.ndarray,
    result: Optional[DetectionResult] = None,
    title: str = "Suspicious cells",
) -> plt.Figure:
    """
    Show the ActivationGrid with the origin of each scored cluster marked.

    Parameters
    ----------
    activation : np.ndarray
        Square grid of 0/1 labels.
    result : DetectionResult, optional
        If given, cluster origins are marked and the score is shown.
    title : str
        Plot title.

    Returns
    -------
    plt.Figure
    """
    fig, ax = plt.subplots(figsize=(6, 6))
    ax.imshow(activation, cmap="Reds", vmin=0, vmax=1, interpolation="nearest")

    if result is not None:
        for cluster in result.clusters.clusters:
            row, col = cluster.origin
            ax.plot(col, row, marker="x", color="black", markersize=8)
            ax.annotate(
                str(cluster.size),
                (col, row),
                fontsize=8,
                xytext=(4, 4),
                textcoords="offset points",
            )
        title = f"{title}\nScore: {result.score}  Clusters: {result.similar}"

    ax.set_title(title)
    ax.axis("off")
    fig.tight_layout()
    return fig


def plot_feature_grid(grid: np.ndarray, band: int = 0) -> plt.Figure:
    """
    Heatmap of one quantized band across the FeatureGrid.

    Parameters
    ----------
    grid : np.ndarray
        FeatureGrid of shape (n, n, k).
    band : int
        Feature index: 0 high, 1 low, 2 mid.

    Returns
    -------
    plt.Figure
    """
    fig, ax = plt.subplots(figsize=(7, 6))
    image = ax.imshow(grid[:, :, band], cmap="viridis", interpolation="nearest")
    fig.colorbar(image, ax=ax, label="Quantized log-magnitude sum")
    ax.set_title(BAND_NAMES[band])
    ax.axis("off")
    fig.tight_layout()
    return fig
