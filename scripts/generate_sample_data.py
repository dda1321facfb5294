"""
generate_sample_data.py - Create synthetic chest-like radiographs for a demo run.

Writes small grayscale PNGs to data/normal/ and data/anomaly/ so you can
train and evaluate a model immediately without real patient data.

Normal images are a smooth chest silhouette with rib-like stripes and
mild noise.  Anomaly images add bright, speckled nodules in the lung
fields.  The images are NOT realistic; they only give the pipeline two
texture classes to separate.

Usage
-----
    python scripts/generate_sample_data.py

After running, try:
    python scripts/train_model.py
    python scripts/run_detection.py --evaluate
"""

import os
import sys

import numpy as np
from PIL import Image

# Make sure repo root is on the path when run as a script
_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _REPO_ROOT)

from tbscan.config import CONFIG, resolve_path  # noqa: E402

NORMAL_FOLDER = resolve_path(CONFIG["paths"]["normal_folder"])
ANOMALY_FOLDER = resolve_path(CONFIG["paths"]["anomaly_folder"])


def _make_chest(size: int, rng: np.random.Generator, nodules: int = 0) -> np.ndarray:
    """Return a uint8 image of a synthetic chest with *nodules* bright spots."""
    y, x = np.mgrid[0:size, 0:size] / size

    # Two elliptical lung fields, darker than the surrounding tissue
    left = ((x - 0.32) / 0.18) ** 2 + ((y - 0.5) / 0.32) ** 2 < 1
    right = ((x - 0.68) / 0.18) ** 2 + ((y - 0.5) / 0.32) ** 2 < 1
    image = np.full((size, size), 170.0)
    image[left | right] = 70.0

    # Rib-like horizontal stripes
    image += 18.0 * np.sin(y * np.pi * 18) * (left | right)

    for _ in range(nodules):
        cy, cx = rng.uniform(0.3, 0.7), rng.choice([rng.uniform(0.22, 0.42), rng.uniform(0.58, 0.78)])
        radius = rng.uniform(0.03, 0.07)
        blob = ((x - cx) ** 2 + (y - cy) ** 2) < radius ** 2
        image[blob] += 80.0 + rng.normal(0, 30.0, size=int(blob.sum()))

    image += rng.normal(0, 6.0, size=image.shape)
    return image.clip(0, 255).astype(np.uint8)


def generate(
    normal_folder: str = NORMAL_FOLDER,
    anomaly_folder: str = ANOMALY_FOLDER,
    count: int = 10,
    size: int = 256,
    seed: int = 42,
) -> None:
    """Write *count* images per class."""
    rng = np.random.default_rng(seed)
    os.makedirs(normal_folder, exist_ok=True)
    os.makedirs(anomaly_folder, exist_ok=True)

    print(f"Writing {count} normal and {count} anomaly images")
    print("-" * 60)

    for i in range(1, count + 1):
        path = os.path.join(normal_folder, f"normal_{i:02d}.png")
        Image.fromarray(_make_chest(size, rng)).save(path)
        print(f"  [{i:02d}/{count}] {path}")

        path = os.path.join(anomaly_folder, f"anomaly_{i:02d}.png")
        Image.fromarray(_make_chest(size, rng, nodules=int(rng.integers(2, 6)))).save(path)
        print(f"  [{i:02d}/{count}] {path}")

    print("-" * 60)
    print("Done.  Train a model with:")
    print("  python scripts/train_model.py")


if __name__ == "__main__":
    generate()
