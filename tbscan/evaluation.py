"""
evaluation.py - Validation sweep over a labelled corpus.

Runs ``detect`` on every image, applies the positive-detection threshold
and tallies how often each class was called correctly.  This is the
number to watch when changing binsize, band count or the cluster
parameters: the score scale is empirical, so any change can move the
best threshold.

A score strictly above the threshold counts as a positive (anomaly)
call; a score equal to the threshold is a negative call.
Images that fail for any reason, and items with a label other than 0
or 1, are logged, listed in the report and left out of the metrics.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import numpy as np
from sklearn.metrics import accuracy_score, confusion_matrix

from tbscan.config import CONFIG
from tbscan.errors import PipelineError
from tbscan.model import ANOMALY, CLASS_LABELS, NORMAL, TrainedModel
from tbscan.pipeline import detect

logger = logging.getLogger(__name__)


@dataclass
class ClassTally:
    """Correct and incorrect calls for one ground-truth class."""
    detected: int = 0
    missed: int = 0


@dataclass
class EvaluationReport:
    """Aggregate result of a validation sweep."""
    threshold: float
    anomaly: ClassTally = field(default_factory=ClassTally)
    normal: ClassTally = field(default_factory=ClassTally)
    failed: list[tuple[str, str]] = field(default_factory=list)
    y_true: list[int] = field(default_factory=list)
    y_pred: list[int] = field(default_factory=list)
    scores: list[int] = field(default_factory=list)
    elapsed_s: float = 0.0

    @property
    def tries(self) -> int:
        return len(self.y_true)

    @property
    def accuracy(self) -> float:
        if not self.y_true:
            return float("nan")
        return float(accuracy_score(self.y_true, self.y_pred))

    def confusion(self) -> np.ndarray:
        """2x2 matrix, rows = true class (normal, anomaly), cols = predicted."""
        return confusion_matrix(self.y_true, self.y_pred, labels=list(CLASS_LABELS))

    def summary(self) -> str:
        lines = [
            "=" * 50,
            "VALIDATION SUMMARY",
            "=" * 50,
            f"Threshold            : {self.threshold}",
            f"Images scored        : {self.tries}",
            f"Failed               : {len(self.failed)}",
            f"Anomaly detected     : {self.anomaly.detected}",
            f"Anomaly missed       : {self.anomaly.missed}",
            f"Normal detected      : {self.normal.detected}",
            f"Normal missed        : {self.normal.missed}",
            f"Accuracy             : {self.accuracy:.3f}",
            f"Total time           : {self.elapsed_s:.2f}s",
        ]
        return "\n".join(lines)


def evaluate(
    corpus: Iterable[tuple[str, int]],
    model: TrainedModel,
    threshold: Optional[float] = None,
    **detect_options: Any,
) -> EvaluationReport:
    """
    Detect every ``(locator, label)`` in *corpus* and score the calls.

    Parameters
    ----------
    corpus : iterable of (str, int)
        Image locators with ground-truth labels (0 normal, 1 anomaly).
    model : TrainedModel
        Model to score against.
    threshold : float, optional
        Positive-detection threshold.  Defaults to config value (1200).
    **detect_options
        Passed through to ``detect``.

    Returns
    -------
    EvaluationReport
    """
    if threshold is None:
        threshold = CONFIG["detection"]["positive_threshold"]

    report = EvaluationReport(threshold=threshold)
    start = time.time()

    for locator, label in corpus:
        if label not in CLASS_LABELS:
            report.failed.append((locator, f"Invalid label {label!r}"))
            logger.warning("Skipping %s: label must be one of %s, got %r", locator, CLASS_LABELS, label)
            continue

        try:
            result = detect(locator, model, **detect_options)
        except PipelineError as exc:
            report.failed.append((locator, str(exc)))
            logger.warning("Skipping %s: %s", locator, exc)
            continue
        except Exception as exc:
            report.failed.append((locator, str(exc)))
            logger.exception("Error scoring %s: %s", locator, exc)
            continue

        predicted = ANOMALY if result.is_positive(threshold) else NORMAL
        tally = report.anomaly if label == ANOMALY else report.normal
        if predicted == label:
            tally.detected += 1
        else:
            tally.missed += 1

        report.y_true.append(label)
        report.y_pred.append(predicted)
        report.scores.append(result.score)

    report.elapsed_s = time.time() - start
    logger.info(report.summary())
    return report
