"""
model.py - The trained token frequency table and its JSON snapshot.

A model maps each HashToken to two counters: how often the token was seen
in normal images and how often in anomalous ones.  It is built offline
(see ``tbscan.training``), written once, then loaded read-only by every
detection call.  Nothing in the pipeline mutates a loaded model, so one
instance can be shared by concurrent analyses.

On disk the snapshot is a single JSON object keyed by token:

    {"12_8_10_8_0": {"0": 31, "1": 4}, ...}

``"0"`` is the normal-class count and ``"1"`` the anomaly-class count.
"""

import json
import logging
import os
from collections.abc import Mapping
from typing import Any, Iterator, NamedTuple

from tbscan.errors import DecodeError

logger = logging.getLogger(__name__)

NORMAL = 0
ANOMALY = 1
CLASS_LABELS = (NORMAL, ANOMALY)


class TokenCounts(NamedTuple):
    """Per-token occurrence counts by class."""
    normal: int = 0
    anomaly: int = 0


_EMPTY = TokenCounts()


class TrainedModel(Mapping):
    """Read-only mapping of token -> TokenCounts."""

    def __init__(self, entries: Mapping[str, TokenCounts] = None):
        self._entries: dict[str, TokenCounts] = {
            token: TokenCounts(int(c[0]), int(c[1]))
            for token, c in (entries or {}).items()
        }

    def __getitem__(self, token: str) -> TokenCounts:
        return self._entries[token]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TrainedModel({len(self)} tokens)"

    def counts(self, token: str) -> TokenCounts:
        """Counts for *token*, or (0, 0) if it was never seen in training."""
        return self._entries.get(token, _EMPTY)

    def to_json_dict(self) -> dict[str, dict[str, int]]:
        return {
            token: {"0": c.normal, "1": c.anomaly}
            for token, c in sorted(self._entries.items())
        }


def _parse_entry(token: str, value) -> TokenCounts:
    if not isinstance(value, dict):
        raise DecodeError(f"Model entry for {token!r} is not an object")
    if "0" in value or "1" in value:
        normal, anomaly = value.get("0", 0), value.get("1", 0)
    else:
        normal, anomaly = value.get("normal", 0), value.get("anomaly", 0)
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (normal, anomaly)):
        raise DecodeError(f"Model entry for {token!r} has non-integer counts")
    return TokenCounts(normal, anomaly)


def load_model(path: str) -> TrainedModel:
    """
    Load a model snapshot written by ``save_model``.

    Raises
    ------
    DecodeError
        If the file is missing or is not a valid snapshot.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as exc:
        raise DecodeError(f"Model file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Model file {path} is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise DecodeError(f"Model file {path} must contain a JSON object")

    model = TrainedModel({token: _parse_entry(token, value) for token, value in raw.items()})
    logger.info("Loaded model with %d tokens from %s", len(model), path)
    return model


def save_model(model: TrainedModel, path: str) -> None:
    """Write *model* as deterministically ordered JSON."""
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(model.to_json_dict(), f, indent=2, sort_keys=True)
    logger.info("Saved model with %d tokens to %s", len(model), path)


# ---------------------------------------------------------------------------
# Training settings
# ---------------------------------------------------------------------------

# Tokens only match between runs that share these values
SETTINGS_KEYS = ("binsize", "band_count", "extended")


def settings_path(model_path: str) -> str:
    """``data/model.json`` -> ``data/model.settings.json``."""
    return os.path.splitext(model_path)[0] + ".settings.json"


def save_settings(settings: dict[str, Any], model_path: str) -> None:
    """Write the tokenisation settings a model was trained with next to it."""
    payload = {key: settings[key] for key in SETTINGS_KEYS if settings.get(key) is not None}
    path = settings_path(model_path)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
    logger.info("Saved training settings %s to %s", payload, path)


def load_settings(model_path: str) -> dict[str, Any]:
    """
    Read the settings saved by ``save_settings``.

    Returns an empty dict when the model has no settings file (older
    snapshots), in which case callers fall back to config values.

    Raises
    ------
    DecodeError
        If the settings file exists but is not a JSON object.
    """
    path = settings_path(model_path)
    if not os.path.exists(path):
        logger.debug("No settings file for %s", model_path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Settings file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise DecodeError(f"Settings file {path} must contain a JSON object")
    return {key: raw[key] for key in SETTINGS_KEYS if key in raw}
