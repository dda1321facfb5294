"""Tests for tbscan/decoding.py."""

from unittest.mock import patch

import numpy as np
import pydicom
import pytest
from PIL import Image
from pydicom.dataset import FileDataset
from pydicom.uid import ExplicitVRLittleEndian

from tbscan.decoding import (
    WINDOW_PRESETS,
    apply_window,
    as_matrix,
    decode_image,
    to_rescaled,
)
from tbscan.errors import DecodeError, InputError

# Stored values 0, 1024, 2048, 4095 with intercept -1024 -> -1024, 0, 1024, 3071
_STORED = np.array([[0, 1024], [2048, 4095]], dtype=np.uint16)


def _write_dicom(path: str, pixels: np.ndarray = _STORED, window=(40.0, 400.0)) -> None:
    """Write a minimal single-frame DICOM file to *path*."""
    file_meta = pydicom.Dataset()
    file_meta.MediaStorageSOPClassUID = pydicom.uid.UID("1.2.840.10008.5.1.4.1.1.2")
    file_meta.MediaStorageSOPInstanceUID = pydicom.uid.generate_uid()
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = FileDataset(path, {}, file_meta=file_meta, preamble=b"\0" * 128)
    ds.Modality = "CR"
    ds.Rows, ds.Columns = pixels.shape
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.PixelRepresentation = 0
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.RescaleSlope = 1.0
    ds.RescaleIntercept = -1024.0
    if window is not None:
        ds.WindowCenter, ds.WindowWidth = window
    ds.PixelData = pixels.astype(np.uint16).tobytes()
    ds.save_as(path)


class TestWindowing:
    def test_rescale(self):
        values = to_rescaled(np.array([[0, 100]]), slope=2.0, intercept=-10.0)
        np.testing.assert_array_equal(values, [[-10.0, 190.0]])

    def test_window_maps_to_byte_range(self):
        out = apply_window(np.array([-2000.0, 40.0, 5000.0]), center=40, width=80)
        np.testing.assert_array_equal(out, [0, 128, 255])
        assert out.dtype == np.uint8

    def test_non_positive_width_raises(self):
        with pytest.raises(InputError):
            apply_window(np.zeros(3), center=0, width=0)


class TestDecodeDicom:
    def test_header_window(self, tmp_path):
        path = str(tmp_path / "scan.dcm")
        _write_dicom(path)
        np.testing.assert_array_equal(decode_image(path), [[0, 102], [255, 255]])

    def test_preset_overrides_header(self, tmp_path):
        path = str(tmp_path / "scan.dcm")
        _write_dicom(path)
        np.testing.assert_array_equal(
            decode_image(path, window_preset="bone"), [[0, 71], [216, 255]]
        )

    def test_no_window_uses_full_range(self, tmp_path):
        path = str(tmp_path / "scan.dcm")
        _write_dicom(path, window=None)
        out = decode_image(path)
        assert out.min() == 0
        assert out.max() == 255

    def test_unknown_preset_raises(self, tmp_path):
        path = str(tmp_path / "scan.dcm")
        _write_dicom(path)
        with pytest.raises(InputError, match="Unknown preset"):
            decode_image(path, window_preset="invalid_preset")

    def test_all_presets_work(self, tmp_path):
        path = str(tmp_path / "scan.dcm")
        _write_dicom(path)
        for preset in WINDOW_PRESETS:
            out = decode_image(path, window_preset=preset)
            assert out.shape == (2, 2)

    def test_corrupt_dicom_raises(self, tmp_path):
        path = tmp_path / "broken.dcm"
        path.write_bytes(b"definitely not dicom")
        with pytest.raises(DecodeError):
            decode_image(str(path))

    def test_missing_pixel_handler_raises_decode_error(self, tmp_path):
        path = str(tmp_path / "scan.dcm")
        _write_dicom(path)
        with patch("tbscan.decoding.matrix_from_dataset",
                   side_effect=NotImplementedError("no pixel data handler")):
            with pytest.raises(DecodeError, match="no pixel data handler"):
                decode_image(path)


class TestDecodeRaster:
    def test_grayscale_png_round_trip(self, tmp_path):
        pixels = np.random.default_rng(0).integers(0, 256, size=(12, 9)).astype(np.uint8)
        path = tmp_path / "xray.png"
        Image.fromarray(pixels).save(path)
        np.testing.assert_array_equal(decode_image(str(path)), pixels)

    def test_colour_image_converted_to_luma(self, tmp_path):
        path = tmp_path / "red.png"
        Image.new("RGB", (3, 2), (255, 0, 0)).save(path)
        out = decode_image(str(path))
        assert out.shape == (2, 3)
        assert np.all(out == 76)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(DecodeError, match="not found"):
            decode_image(str(tmp_path / "nope.png"))

    def test_unreadable_file_raises(self, tmp_path):
        path = tmp_path / "notes.png"
        path.write_text("hello")
        with pytest.raises(DecodeError):
            decode_image(str(path))

    def test_oversized_image_raises_decode_error(self, tmp_path, monkeypatch):
        path = tmp_path / "huge.png"
        Image.new("L", (20, 20)).save(path)
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
        with pytest.raises(DecodeError):
            decode_image(str(path))


class TestAsMatrix:
    def test_list_of_rows(self):
        out = as_matrix([[1, 2], [3, 4]])
        assert out.dtype == np.uint8
        np.testing.assert_array_equal(out, [[1, 2], [3, 4]])

    @pytest.mark.parametrize("bad", [None, [], [1, 2, 3], 7, [[1, 2], [3]], np.zeros((2, 2, 3)), [[-1, 2]]])
    def test_rejects_malformed(self, bad):
        with pytest.raises(InputError):
            as_matrix(bad)
