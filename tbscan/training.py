"""
training.py - Accumulate a token frequency model from labelled images.

Every image in the corpus is tokenised with the same pipeline used at
detection time.  Each token increments the counter for the image's
class (0 = normal, 1 = anomaly), unless the noise filter rejects it.

NOISE FILTER
------------
A token is dropped when three or more of its four feature fields equal
0, or three or more equal 1.  Such tokens come from flat background,
burned-in labels and collimation borders; they occur in every image
regardless of class and would only dilute the counts.  The filter is a
training-time rule; detection looks up every token.

Training runs sequentially.  One unreadable image is logged and skipped
so that a long corpus run is never lost to a single bad file.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

from tbscan.config import CONFIG, resolve_path
from tbscan.errors import PipelineError
from tbscan.model import ANOMALY, CLASS_LABELS, NORMAL, TokenCounts, TrainedModel
from tbscan.pipeline import analyze

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".dcm", ".dicom")


def is_noise_token(token: str) -> bool:
    """
    True if three of the first four fields are 0, or three are 1.

    Fields are compared as exact numbers, so with a fractional bin size a
    field like ``1.5`` is neither 0 nor 1.  Non-numeric fields (``NaN``)
    never match.
    """
    parts = token.split("_")
    if len(parts) < 4:
        return False

    values = []
    for part in parts[:4]:
        try:
            values.append(float(part))
        except ValueError:
            values.append(None)

    zeros = sum(1 for v in values if v == 0)
    ones = sum(1 for v in values if v == 1)
    return zeros >= 3 or ones >= 3


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class TrainingResult:
    """Outcome of adding one labelled image."""
    locator: str
    label: int
    success: bool
    tokens_added: int = 0
    error: Optional[str] = None
    duration_s: float = 0.0


@dataclass
class TrainingReport:
    """Aggregate report produced at the end of a training run."""
    total_images: int = 0
    processed: int = 0
    failed: int = 0
    elapsed_s: float = 0.0
    results: list[TrainingResult] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            "=" * 50,
            "TRAINING SUMMARY",
            "=" * 50,
            f"Total images found   : {self.total_images}",
            f"Successfully added   : {self.processed}",
            f"Failed               : {self.failed}",
            f"Total time           : {self.elapsed_s:.2f}s",
        ]
        if self.failed > 0:
            lines.append("\nFailed images:")
            for r in self.results:
                if not r.success:
                    lines.append(f"  - {r.locator}: {r.error}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class ModelBuilder:
    """
    Mutable accumulator of class-conditioned token counts.

    Parameters
    ----------
    binsize, band_count, extended : optional
        Pipeline settings for ``add_image``/``train``.  Detection must use
        the same values.  Defaults to config values.
    **options
        Passed through to ``analyze`` (``decoder``, ``target_size``, ...).
    """

    def __init__(
        self,
        binsize: Optional[float] = None,
        band_count: Optional[int] = None,
        extended: Optional[bool] = None,
        **options: Any,
    ):
        self.binsize = binsize
        self.band_count = band_count
        self.extended = extended
        self.options = options
        self._counts: dict[str, list[int]] = {}

    def __len__(self) -> int:
        return len(self._counts)

    def add_tokens(self, tokens: Iterable[str], label: int) -> int:
        """
        Count *tokens* towards class *label*.

        Returns
        -------
        int
            Number of tokens that passed the noise filter.
        """
        if label not in CLASS_LABELS:
            raise ValueError(f"Label must be one of {CLASS_LABELS}, got {label!r}.")

        added = 0
        for token in tokens:
            if is_noise_token(token):
                continue
            entry = self._counts.setdefault(token, [0, 0])
            entry[label] += 1
            added += 1
        return added

    def add_image(self, locator: str, label: int) -> int:
        """Tokenise the image at *locator* and count it under *label*."""
        if label not in CLASS_LABELS:
            raise ValueError(f"Label must be one of {CLASS_LABELS}, got {label!r}.")
        hashed = analyze(
            locator,
            binsize=self.binsize,
            band_count=self.band_count,
            extended=self.extended,
            **self.options,
        )
        return self.add_tokens(hashed.hashes, label)

    def train(self, corpus: Iterable[tuple[str, int]]) -> TrainingReport:
        """
        Add every ``(locator, label)`` pair in *corpus*.

        Any item that fails (unreadable image, rejected matrix, invalid
        label) is recorded in the report and skipped.
        """
        report = TrainingReport()
        batch_start = time.time()

        for locator, label in corpus:
            report.total_images += 1
            item_start = time.time()
            result = TrainingResult(locator=locator, label=label, success=False)

            try:
                result.tokens_added = self.add_image(locator, label)
                result.success = True
                report.processed += 1
                logger.info("Added %s (class %d): %d tokens", locator, label, result.tokens_added)
            except PipelineError as exc:
                result.error = str(exc)
                report.failed += 1
                logger.warning("Skipping %s: %s", locator, exc)
            except Exception as exc:
                result.error = str(exc)
                report.failed += 1
                logger.exception("Error adding %s: %s", locator, exc)

            result.duration_s = time.time() - item_start
            report.results.append(result)

        report.elapsed_s = time.time() - batch_start
        logger.info(report.summary())
        return report

    def build(self) -> TrainedModel:
        """Snapshot the current counts as an immutable model."""
        return TrainedModel(
            {token: TokenCounts(*counts) for token, counts in self._counts.items()}
        )


# ---------------------------------------------------------------------------
# Corpus enumeration
# ---------------------------------------------------------------------------

def _list_images(folder: str, step: int) -> list[str]:
    if not os.path.isdir(folder):
        logger.error("Image folder not found: %s", folder)
        return []
    files = sorted(
        f for f in os.listdir(folder)
        if not f.startswith(".") and f.lower().endswith(IMAGE_EXTENSIONS)
    )
    return [os.path.join(folder, f) for f in files[::step]]


def corpus_from_folders(
    normal_folder: Optional[str] = None,
    anomaly_folder: Optional[str] = None,
    step: int = 1,
) -> Iterator[tuple[str, int]]:
    """
    Yield ``(path, label)`` for every image in the two class folders.

    Normal images come first.  With ``step > 1`` only every step-th file
    (in sorted order) is used, to sample a large dataset.
    """
    normal_folder = normal_folder or resolve_path(CONFIG["paths"]["normal_folder"])
    anomaly_folder = anomaly_folder or resolve_path(CONFIG["paths"]["anomaly_folder"])
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}.")

    for path in _list_images(normal_folder, step):
        yield path, NORMAL
    for path in _list_images(anomaly_folder, step):
        yield path, ANOMALY
