"""
Tests for the block reduction kernels.
"""
import numpy as np
import pytest

from utils.bit_utils import BitCondition
from utils.block_utils import (
    block_average,
    block_count,
    block_majority,
    block_sample,
    block_stats,
    reduced_shape,
)


class TestBlockSample:
    def test_centre_pixels(self):
        layer = np.arange(16).reshape(4, 4)
        np.testing.assert_array_equal(block_sample(layer, 2), [[5, 7], [13, 15]])

    def test_partial_edge_block(self):
        layer = np.arange(25).reshape(5, 5)
        expected = [[6, 8, 9], [16, 18, 19], [21, 23, 24]]
        np.testing.assert_array_equal(block_sample(layer, 2), expected)

    def test_leading_axes_kept(self):
        stack = np.arange(32).reshape(2, 4, 4)
        assert block_sample(stack, 2).shape == (2, 2, 2)

    def test_bad_factor(self):
        with pytest.raises(ValueError):
            block_sample(np.zeros((2, 2)), 0)

    def test_reduced_shape(self):
        assert reduced_shape(5, 5, 2) == (3, 3)
        assert reduced_shape(4, 6, 2) == (2, 3)


class TestBlockAverage:
    """Averages with the extra statistics"""

    def test_full_block(self):
        layer = np.array([[1, 2], [3, 4]], dtype=np.int16)
        stats = block_average(layer, 2)
        assert stats["avg"][0, 0] == 3  # 2.5 rounds up
        assert stats["avg"].dtype == np.int16
        assert stats["min"][0, 0] == 1
        assert stats["max"][0, 0] == 4
        assert stats["num"][0, 0] == 4
        assert stats["sig"][0, 0] == pytest.approx(np.sqrt(1.25))

    def test_float_average(self):
        layer = np.array([[1, 2], [3, 4]], dtype=np.int16)
        stats = block_average(layer, 2, out_dtype=np.float32)
        assert stats["avg"][0, 0] == pytest.approx(2.5)

    def test_fill_excluded(self):
        layer = np.array([[1, -1], [3, -1]], dtype=np.int16)
        stats = block_average(layer, 2, fill=-1)
        assert stats["avg"][0, 0] == 2
        assert stats["num"][0, 0] == 2
        assert stats["max"][0, 0] == 3

    def test_all_fill_block(self):
        layer = np.full((2, 2), -1, dtype=np.int16)
        stats = block_average(layer, 2, fill=-1)
        assert stats["avg"][0, 0] == -1
        assert stats["min"][0, 0] == -1
        assert stats["num"][0, 0] == 0

    def test_stats_of_empty_block(self):
        stats = block_stats(np.full((2, 2), 7), 2, fill=7)
        assert stats["min"][0, 0] == np.inf
        assert stats["count"][0, 0] == 0


class TestBlockCount:
    def test_count_excludes_fill(self):
        layer = np.array([[1, 2], [3, 0]], dtype=np.uint8)
        condition = BitCondition(start=0, nbits=0, op=">=", value=0)
        assert block_count(layer, 2, 0, condition)[0, 0] == 3

    def test_count_bit(self):
        layer = np.arange(16, dtype=np.uint8).reshape(4, 4)
        condition = BitCondition(start=0, nbits=1, op="==", value=1)
        np.testing.assert_array_equal(block_count(layer, 2, None, condition), [[2, 2], [2, 2]])


class TestBlockMajority:
    """Majority class per block"""

    def test_majority(self):
        layer = np.array([[1, 1], [2, 3]], dtype=np.uint8)
        assert block_majority(layer, 2, None, 256)[0, 0] == 1

    def test_tie_goes_to_lowest_class(self):
        layer = np.array([[2, 1], [1, 2]], dtype=np.uint8)
        assert block_majority(layer, 2, None, 256)[0, 0] == 1

    def test_fill_only_block(self):
        layer = np.full((2, 2), 255, dtype=np.uint8)
        assert block_majority(layer, 2, 255, 256)[0, 0] == 255

    def test_classes_beyond_maximum_ignored(self):
        layer = np.array([[300, 300], [300, 5]], dtype=np.int16)
        assert block_majority(layer, 2, None, 256)[0, 0] == 5

    def test_stack(self):
        stack = np.stack([np.full((4, 4), 1), np.full((4, 4), 2)]).astype(np.uint8)
        result = block_majority(stack, 2, None, 256)
        assert result.shape == (2, 2, 2)
        assert (result[1] == 2).all()

    def test_float_rejected(self):
        with pytest.raises(ValueError):
            block_majority(np.zeros((2, 2), dtype=np.float32), 2, None, 256)
