"""
run_detection.py - Score one image, or sweep the labelled folders.

Usage
-----
    python scripts/run_detection.py path/to/xray.png
    python scripts/run_detection.py --evaluate

A single-image run saves the activation map to reports/.  Detection
tokenises with the settings saved next to the model by train_model.py,
unless --binsize, --bands or --extended override them.  The model is
loaded once at start-up and shared by every detection in the run.
"""

import argparse
import json
import logging
import os
import sys

# Ensure repo root is on sys.path regardless of launch directory
_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _REPO_ROOT)

import matplotlib
matplotlib.use("Agg")  # non-interactive backend, works without a display

from tbscan.config import CONFIG, resolve_path  # noqa: E402
from tbscan.errors import PipelineError  # noqa: E402
from tbscan.evaluation import evaluate  # noqa: E402
from tbscan.model import load_model, load_settings  # noqa: E402
from tbscan.pipeline import detect  # noqa: E402
from tbscan.training import corpus_from_folders  # noqa: E402
from tbscan.visualization import plot_activation_map  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)-8s %(message)s",
)
logger = logging.getLogger(__name__)

REPORTS_FOLDER = resolve_path(CONFIG["paths"]["reports_folder"])


def pipeline_options(args: argparse.Namespace, stored: dict) -> dict:
    """
    Tokenisation settings for detection.

    Command-line flags win, then the settings saved with the model, then
    (by omission) the config values.
    """
    flags = {"binsize": args.binsize, "band_count": args.bands, "extended": args.extended}
    options = dict(stored)
    options.update({key: value for key, value in flags.items() if value is not None})
    return options


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Spectral-hash anomaly detection")
    parser.add_argument("image", nargs="?", help="image to score")
    parser.add_argument("--model", default=resolve_path(CONFIG["paths"]["model_file"]))
    parser.add_argument("--evaluate", action="store_true", help="sweep the labelled folders")
    parser.add_argument("--step", type=int, default=1)
    parser.add_argument("--threshold", type=float, default=None)
    parser.add_argument("--binsize", type=float, default=None)
    parser.add_argument("--bands", type=int, default=None)
    parser.add_argument("--extended", action=argparse.BooleanOptionalAction, default=None)
    args = parser.parse_args(argv)

    try:
        model = load_model(args.model)
        options = pipeline_options(args, load_settings(args.model))
    except PipelineError as exc:
        logger.error("%s", exc)
        return 1
    logger.info("Tokenising with %s", options or "config defaults")

    if args.evaluate:
        report = evaluate(
            corpus_from_folders(step=args.step), model, threshold=args.threshold, **options
        )
        print(report.summary())
        print("Confusion matrix (rows = true normal/anomaly):")
        print(report.confusion())
        return 0

    if not args.image:
        parser.error("an image path is required unless --evaluate is given")

    try:
        result = detect(args.image, model, **options)
    except PipelineError as exc:
        logger.error("Detection failed for %s: %s", args.image, exc)
        return 1

    print(json.dumps(result.as_dict(), indent=2))
    print("Positive" if result.is_positive(args.threshold) else "Negative")

    os.makedirs(REPORTS_FOLDER, exist_ok=True)
    stem = os.path.splitext(os.path.basename(args.image))[0]
    path = os.path.join(REPORTS_FOLDER, f"{stem}_activation.png")
    plot_activation_map(result.activation, result, title=stem).savefig(path, dpi=100, bbox_inches="tight")
    print(f"Saved: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
