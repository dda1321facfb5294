"""Tests for tbscan/training.py."""

import numpy as np
import pytest
from PIL import Image

from tbscan.errors import DecodeError
from tbscan.model import ANOMALY, NORMAL, TokenCounts
from tbscan.pipeline import analyze
from tbscan.training import ModelBuilder, corpus_from_folders, is_noise_token


def _fake_decoder(locator: str) -> np.ndarray:
    """Deterministic noise image per locator; 'bad*' locators fail."""
    if locator.startswith("bad"):
        raise DecodeError(f"cannot read {locator}")
    seed = sum(locator.encode())
    return np.random.default_rng(seed).integers(0, 256, size=(40, 40)).astype(np.uint8)


_OPTIONS = {"decoder": _fake_decoder, "target_size": (32, 32), "block_size": 8}


class TestNoiseFilter:
    @pytest.mark.parametrize("token,expected", [
        ("0_0_0_4_1", True),
        ("0_6_0_0_2", True),
        ("1_1_1_0_2", True),
        ("1_1_1_1_0", True),
        ("0_0_4_4_0", False),
        ("2_0_1_1_0", False),
        ("4_4_0_0_0", False),
        ("0_0_0", False),
        ("0_0_6_0_-1_4", True),
        ("1.5_1_1_0_0", False),
        ("0.0_0_0_3_1", True),
    ])
    def test_filter(self, token, expected):
        assert is_noise_token(token) is expected

    def test_nan_fields_are_not_zero(self):
        assert is_noise_token("NaN_NaN_NaN_0_1") is False


class TestModelBuilder:
    def test_counts_by_class(self):
        builder = ModelBuilder()
        builder.add_tokens(["12_8_10_8_0", "12_8_10_8_0"], NORMAL)
        builder.add_tokens(["12_8_10_8_0", "4_2_6_6_1"], ANOMALY)
        model = builder.build()
        assert model["12_8_10_8_0"] == TokenCounts(2, 1)
        assert model["4_2_6_6_1"] == TokenCounts(0, 1)

    def test_noise_tokens_not_counted(self):
        builder = ModelBuilder()
        added = builder.add_tokens(["0_0_0_2_0", "12_8_10_8_0"], NORMAL)
        assert added == 1
        assert "0_0_0_2_0" not in builder.build()

    def test_invalid_label_raises(self):
        with pytest.raises(ValueError):
            ModelBuilder().add_tokens(["12_8_10_8_0"], 2)

    def test_build_is_a_snapshot(self):
        builder = ModelBuilder()
        builder.add_tokens(["12_8_10_8_0"], NORMAL)
        model = builder.build()
        builder.add_tokens(["12_8_10_8_0"], NORMAL)
        assert model["12_8_10_8_0"] == TokenCounts(1, 0)

    def test_add_image_uses_pipeline_tokens(self):
        builder = ModelBuilder(binsize=2, band_count=2, extended=False, **_OPTIONS)
        builder.add_image("img_a", ANOMALY)
        hashes = analyze("img_a", binsize=2, band_count=2, extended=False, **_OPTIONS).hashes
        expected = {t for t in hashes if not is_noise_token(t)}
        assert set(builder.build()) == expected

    def test_train_isolates_failures(self):
        builder = ModelBuilder(binsize=2, band_count=2, extended=False, **_OPTIONS)
        corpus = [("img_a", NORMAL), ("bad_1", NORMAL), ("img_b", ANOMALY)]
        report = builder.train(corpus)
        assert report.total_images == 3
        assert report.processed == 2
        assert report.failed == 1
        failed = [r for r in report.results if not r.success]
        assert failed[0].locator == "bad_1"
        assert "bad_1" in report.summary()
        assert len(builder) > 0

    def test_train_records_invalid_label(self):
        builder = ModelBuilder(binsize=2, band_count=2, extended=False, **_OPTIONS)
        report = builder.train([("img_a", 2), ("img_b", ANOMALY)])
        assert report.failed == 1
        assert report.processed == 1
        assert "Label must be one of" in report.results[0].error
        assert all(c.normal == 0 for c in builder.build().values())

    def test_train_survives_unexpected_decoder_error(self):
        def _crashing_decoder(locator):
            if locator == "crash":
                raise RuntimeError("pixel handler missing")
            return _fake_decoder(locator)

        options = dict(_OPTIONS, decoder=_crashing_decoder)
        builder = ModelBuilder(binsize=2, band_count=2, extended=False, **options)
        report = builder.train([("crash", NORMAL), ("img_b", ANOMALY)])
        assert report.failed == 1
        assert report.results[0].error == "pixel handler missing"
        assert report.results[1].success

    def test_train_skips_oversized_image(self, tmp_path, monkeypatch):
        huge = tmp_path / "huge.png"
        Image.new("L", (64, 64)).save(huge)
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        builder = ModelBuilder(binsize=2, band_count=2, extended=False,
                               target_size=(32, 32), block_size=8)
        report = builder.train([(str(huge), NORMAL)])
        assert report.failed == 1
        assert "Could not decode image" in report.results[0].error


class TestCorpusFromFolders:
    def test_labels_and_order(self, tmp_path):
        normal = tmp_path / "normal"
        anomaly = tmp_path / "anomaly"
        normal.mkdir()
        anomaly.mkdir()
        for name in ["b.png", "a.png", ".hidden.png", "notes.txt"]:
            (normal / name).write_bytes(b"")
        (anomaly / "x.jpg").write_bytes(b"")

        corpus = list(corpus_from_folders(str(normal), str(anomaly)))
        assert corpus == [
            (str(normal / "a.png"), NORMAL),
            (str(normal / "b.png"), NORMAL),
            (str(anomaly / "x.jpg"), ANOMALY),
        ]

    def test_step_samples_files(self, tmp_path):
        normal = tmp_path / "normal"
        normal.mkdir()
        for i in range(5):
            (normal / f"n{i}.png").write_bytes(b"")
        corpus = list(corpus_from_folders(str(normal), str(tmp_path / "missing"), step=2))
        assert [p for p, _ in corpus] == [str(normal / f"n{i}.png") for i in (0, 2, 4)]
