"""Tests for tbscan/normalization.py."""

from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from tbscan.errors import InputError
from tbscan.normalization import DOWNSCALE_FILTER, UPSCALE_FILTER, resize_matrix


class TestResizeMatrix:
    def test_output_shape_is_height_by_width(self):
        out = resize_matrix(np.zeros((7, 9), dtype=np.uint8), target_size=(20, 10))
        assert out.shape == (10, 20)
        assert out.dtype == np.uint8

    @pytest.mark.parametrize("target", [(64, 64), (8, 8)])
    def test_constant_image_stays_constant(self, target):
        out = resize_matrix(np.full((32, 32), 123, dtype=np.uint8), target_size=target)
        assert np.all(out == 123)

    def test_accepts_nested_lists(self):
        out = resize_matrix([[0, 255], [255, 0]], target_size=(4, 4))
        assert out.shape == (4, 4)
        assert out.min() >= 0 and out.max() <= 255

    def test_same_size_keeps_values(self):
        src = np.random.default_rng(0).integers(0, 256, size=(16, 16)).astype(np.uint8)
        np.testing.assert_array_equal(resize_matrix(src, target_size=(16, 16)), src)

    def test_upscale_filter(self):
        with patch.object(Image.Image, "resize", autospec=True,
                          return_value=Image.new("RGB", (64, 8))) as resize:
            resize_matrix(np.zeros((8, 8), dtype=np.uint8), target_size=(64, 8))
        assert resize.call_args.kwargs["resample"] == UPSCALE_FILTER

    def test_downscale_filter(self):
        with patch.object(Image.Image, "resize", autospec=True,
                          return_value=Image.new("RGB", (4, 4))) as resize:
            resize_matrix(np.zeros((8, 8), dtype=np.uint8), target_size=(4, 4))
        assert resize.call_args.kwargs["resample"] == DOWNSCALE_FILTER


class TestInvalidInput:
    @pytest.mark.parametrize("bad", [None, [], [[]], [1, 2, 3], [[1, 2], [3]]])
    def test_malformed_matrix_raises(self, bad):
        with pytest.raises(InputError):
            resize_matrix(bad, target_size=(8, 8))

    def test_out_of_range_raises(self):
        with pytest.raises(InputError):
            resize_matrix([[0, 300], [1, 2]], target_size=(8, 8))
