"""
pipeline.py - Per-image analysis and detection.

    decode -> resize -> blocks -> spectral features -> tokens
           -> model scoring -> clusters -> score

``analyze`` stops after tokenisation and is shared by training and
detection.  ``detect`` scores the tokens against a trained model passed
in by the caller; the model is never loaded or cached here, so each call
works only on state it creates itself.

Failures raise a ``PipelineError`` subclass.  Batch callers
(``tbscan.training``, ``tbscan.evaluation``) catch them per image.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import numpy as np

from tbscan.blocks import extract_blocks
from tbscan.clustering import ClusterReport, find_clusters
from tbscan.config import CONFIG
from tbscan.decoding import decode_image
from tbscan.hashing import HashResult, generate_hashes
from tbscan.model import TrainedModel
from tbscan.normalization import resize_matrix
from tbscan.scoring import score_memo
from tbscan.spectral import extract_features

logger = logging.getLogger(__name__)

Decoder = Callable[[str], np.ndarray]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class DetectionResult:
    """Outcome of one ``detect`` call."""
    score: int
    similar: int
    processing_time: float
    clusters: ClusterReport = field(default_factory=ClusterReport)
    activation: Optional[np.ndarray] = None

    def is_positive(self, threshold: Optional[float] = None) -> bool:
        """True if the score is strictly above the decision threshold (default 1200)."""
        if threshold is None:
            threshold = CONFIG["detection"]["positive_threshold"]
        return self.score > threshold

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "similar": self.similar,
            "processingTime": round(self.processing_time, 2),
        }


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def analyze_matrix(
    matrix: Any,
    binsize: Optional[float] = None,
    band_count: Optional[int] = None,
    extended: Optional[bool] = None,
    target_size: Optional[Sequence[int]] = None,
    block_size: Optional[int] = None,
    mid_band: Optional[str] = None,
) -> HashResult:
    """
    Tokenise an already-decoded grayscale matrix.

    Parameters
    ----------
    matrix : array-like
        Intensities 0..255.
    binsize : float, optional
        Quantization step.  Defaults to config value (2).
    band_count : int, optional
        2 or 3 features per block.  Defaults to config value (2).
    extended : bool, optional
        Add quadrant codes to tokens.  Defaults to config value (False).
    target_size : (int, int), optional
        Working resolution.  Defaults to config value (1024x1024).
    block_size : int, optional
        Block side length.  Defaults to config value (8).
    mid_band : str, optional
        "energy" or "legacy".  Defaults to config value.

    Returns
    -------
    HashResult
    """
    features_cfg = CONFIG["features"]
    extended = extended if extended is not None else features_cfg["extended"]
    block_size = block_size if block_size is not None else features_cfg["block_size"]

    resized = resize_matrix(matrix, target_size=target_size)
    blocks = extract_blocks(resized, block_size)
    grid = extract_features(
        blocks,
        binsize=binsize,
        band_count=band_count,
        block_size=block_size,
        mid_band=mid_band,
    )
    return generate_hashes(grid, extended=extended)


def analyze(
    locator: str,
    binsize: Optional[float] = None,
    band_count: Optional[int] = None,
    extended: Optional[bool] = None,
    decoder: Decoder = decode_image,
    **options: Any,
) -> HashResult:
    """
    Decode the image at *locator* and return its tokens.

    Extra keyword *options* (``target_size``, ``block_size``,
    ``mid_band``) are passed to ``analyze_matrix``.

    Raises
    ------
    DecodeError
        If the decoder cannot read the image.
    InputError, ShapeError, ConfigError
        If a pipeline stage rejects its input.
    """
    matrix = decoder(locator)
    result = analyze_matrix(
        matrix,
        binsize=binsize,
        band_count=band_count,
        extended=extended,
        **options,
    )
    logger.debug("Analyzed %s: %d tokens", locator, len(result.hashes))
    return result


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def detect(
    locator: str,
    model: TrainedModel,
    binsize: Optional[float] = None,
    band_count: Optional[int] = None,
    extended: Optional[bool] = None,
    min_cluster_size: Optional[int] = None,
    ratio_threshold: Optional[float] = None,
    decoder: Decoder = decode_image,
    **options: Any,
) -> DetectionResult:
    """
    Score the image at *locator* against *model*.

    Parameters
    ----------
    locator : str
        Image path handed to *decoder*.
    model : TrainedModel
        Token counts produced by ``ModelBuilder``.  Treated as read-only.
    binsize, band_count, extended : optional
        Must match the settings the model was trained with.
    min_cluster_size : int, optional
        Smallest component that contributes.  Defaults to config value (7).
    ratio_threshold : float, optional
        Normal/anomaly ratio above which a cell is normal.  Defaults to 0.9.
    decoder : callable
        Image locator -> grayscale matrix.

    Returns
    -------
    DetectionResult
        ``score``, ``similar`` (number of qualifying clusters) and
        ``processing_time`` in seconds.
    """
    start = time.perf_counter()

    hashed = analyze(
        locator,
        binsize=binsize,
        band_count=band_count,
        extended=extended,
        decoder=decoder,
        **options,
    )
    activation = score_memo(hashed.memo, model, ratio_threshold=ratio_threshold)
    clusters = find_clusters(activation, min_size=min_cluster_size)

    elapsed = time.perf_counter() - start
    logger.info("Detection for %s: score=%d (%.2fs)", locator, clusters.score, elapsed)

    return DetectionResult(
        score=clusters.score,
        similar=clusters.count,
        processing_time=elapsed,
        clusters=clusters,
        activation=activation,
    )
