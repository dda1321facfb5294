"""
train_model.py - Build a token frequency model from the labelled folders.

Reads every image in data/normal/ (class 0) and data/anomaly/ (class 1),
accumulates token counts and writes the JSON snapshot to the configured
model path.  The binsize, band count and extended flag used are saved
next to it (model.settings.json) so detection tokenises the same way.

Usage
-----
    python scripts/train_model.py [--step N] [--extended] [--output PATH]
"""

import argparse
import logging
import os
import sys

# Ensure repo root is on sys.path regardless of launch directory
_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _REPO_ROOT)

from tbscan.config import CONFIG, resolve_path  # noqa: E402
from tbscan.model import save_model, save_settings  # noqa: E402
from tbscan.training import ModelBuilder, corpus_from_folders  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)-8s %(message)s",
)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--normal", default=resolve_path(CONFIG["paths"]["normal_folder"]))
    parser.add_argument("--anomaly", default=resolve_path(CONFIG["paths"]["anomaly_folder"]))
    parser.add_argument("--output", default=resolve_path(CONFIG["paths"]["model_file"]))
    parser.add_argument("--step", type=int, default=1, help="use every N-th image")
    parser.add_argument("--binsize", type=float, default=None)
    parser.add_argument("--bands", type=int, default=None)
    parser.add_argument("--extended", action=argparse.BooleanOptionalAction, default=None)
    args = parser.parse_args(argv)

    builder = ModelBuilder(binsize=args.binsize, band_count=args.bands, extended=args.extended)
    report = builder.train(corpus_from_folders(args.normal, args.anomaly, step=args.step))
    print(report.summary())

    if report.processed == 0:
        logger.error("No images could be processed; model not written.")
        return 1

    features = CONFIG["features"]
    settings = {
        "binsize": args.binsize if args.binsize is not None else features["binsize"],
        "band_count": args.bands if args.bands is not None else features["band_count"],
        "extended": args.extended if args.extended is not None else features["extended"],
    }
    save_model(builder.build(), args.output)
    save_settings(settings, args.output)
    print(f"Model ({len(builder)} tokens) -> {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
