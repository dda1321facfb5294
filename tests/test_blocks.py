"""Tests for tbscan/blocks.py."""

import numpy as np
import pytest

from tbscan.blocks import extract_blocks, trimmed_shape
from tbscan.errors import ConfigError, InputError


class TestTrimmedShape:
    @pytest.mark.parametrize("height,width,size", [(17, 23, 8), (16, 16, 8), (5, 9, 4), (3, 3, 8)])
    def test_trimmed_dims_are_multiples(self, height, width, size):
        th, tw = trimmed_shape(height, width, size)
        assert th % size == 0
        assert tw % size == 0
        assert 0 <= height - th < size
        assert 0 <= width - tw < size


class TestExtractBlocks:
    def test_block_count(self):
        mat = np.arange(17 * 23).reshape(17, 23)
        blocks = extract_blocks(mat, 8)
        assert len(blocks) == (16 // 8) * (16 // 8)

    def test_row_major_order(self):
        mat = np.arange(16 * 16).reshape(16, 16)
        blocks = extract_blocks(mat, 8)
        np.testing.assert_array_equal(blocks[0], mat[0:8, 0:8])
        np.testing.assert_array_equal(blocks[1], mat[0:8, 8:16])
        np.testing.assert_array_equal(blocks[2], mat[8:16, 0:8])
        np.testing.assert_array_equal(blocks[3], mat[8:16, 8:16])

    def test_trailing_samples_are_dropped(self):
        mat = np.zeros((10, 10), dtype=int)
        mat[8:, :] = 99
        mat[:, 8:] = 99
        blocks = extract_blocks(mat, 8)
        assert len(blocks) == 1
        assert blocks[0].max() == 0

    def test_blocks_are_square(self):
        blocks = extract_blocks(np.ones((12, 20)), 4)
        assert all(b.shape == (4, 4) for b in blocks)
        assert len(blocks) == 3 * 5

    def test_blocks_are_copies(self):
        mat = np.zeros((8, 8))
        blocks = extract_blocks(mat, 8)
        blocks[0][0, 0] = 5
        assert mat[0, 0] == 0

    def test_accepts_nested_lists(self):
        mat = [[i * 4 + j for j in range(4)] for i in range(4)]
        blocks = extract_blocks(mat, 2)
        assert len(blocks) == 4
        np.testing.assert_array_equal(blocks[0], [[0, 1], [4, 5]])

    def test_smaller_than_block_gives_nothing(self):
        assert extract_blocks(np.ones((5, 5)), 8) == []

    def test_invalid_size_raises(self):
        with pytest.raises(ConfigError):
            extract_blocks(np.ones((8, 8)), 0)

    def test_non_2d_raises(self):
        with pytest.raises(InputError):
            extract_blocks(np.ones(8), 8)
