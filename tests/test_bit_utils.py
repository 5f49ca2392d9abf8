"""
Tests for bit selections and bit conditions.
"""
import numpy as np
import pytest

from utils.bit_utils import (
    BitCondition,
    check_bits,
    evaluate,
    extract_bits,
    parse_bit_condition,
    parse_bit_groups,
    parse_bit_numbers,
    parse_mask_condition,
    unpacked_dtype,
)


class TestBitNumbers:
    """Bit number lists and groups"""

    def test_numbers(self):
        assert parse_bit_numbers("3-5,9,15") == [3, 4, 5, 9, 15]

    def test_groups(self):
        assert parse_bit_groups("0-1,4") == [(0, 1), (4, 4)]

    def test_reversed_range(self):
        with pytest.raises(ValueError):
            parse_bit_groups("5-3")

    def test_malformed(self):
        with pytest.raises(ValueError):
            parse_bit_groups("x")
        with pytest.raises(ValueError):
            parse_bit_groups("")

    def test_check_bits(self):
        check_bits([7], np.uint8)
        with pytest.raises(ValueError, match="out of range"):
            check_bits([8], np.uint8)


class TestExtractBits:
    def test_unsigned(self):
        values = np.array([0b10110110], dtype=np.uint8)
        assert extract_bits(values, 1, 3)[0] == 3

    def test_signed_keeps_sign_bit(self):
        values = np.array([-1], dtype=np.int16)
        assert extract_bits(values, 15, 1)[0] == 1

    def test_unpacked_dtype(self):
        assert unpacked_dtype(3) == np.uint8
        assert unpacked_dtype(8) == np.uint16
        assert unpacked_dtype(16) == np.uint32


class TestBitCondition:
    """Count conditions such as 0-3<=2"""

    def test_parse_range(self):
        condition = parse_bit_condition("0-3<=2")
        assert condition == BitCondition(start=0, nbits=4, op="<=", value=2)
        assert condition.label == "bits0-3<=2"

    def test_parse_single_bit(self):
        assert parse_bit_condition("5==1").label == "bit5==1"

    def test_parse_whole_value(self):
        condition = parse_bit_condition("==7")
        assert condition.nbits == 0
        assert condition.label == "sds==7"

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_bit_condition("0-3")
        with pytest.raises(ValueError):
            parse_bit_condition("0-3<=x")

    def test_test(self):
        values = np.array([0, 1, 2, 3, 17], dtype=np.uint8)
        result = parse_bit_condition("0-1>=2").test(values)
        np.testing.assert_array_equal(result, [False, False, True, True, False])


class TestMaskCondition:
    """Mask conditions with binary values"""

    def test_binary_value_in_place(self):
        condition = parse_mask_condition("0-1==01")
        assert condition.bit_mask == 3
        assert condition.value == 1
        result = condition.test(np.array([0, 1, 2, 3]))
        np.testing.assert_array_equal(result, [False, True, False, False])

    def test_separate_bits(self):
        condition = parse_mask_condition("10,12!=11")
        assert condition.bit_mask == (1 << 10) | (1 << 12)
        assert condition.value == (1 << 10) | (1 << 12)

    def test_single_equals(self):
        condition = parse_mask_condition("2=1")
        assert condition.op == "="
        np.testing.assert_array_equal(condition.test(np.array([4, 3])), [True, False])

    def test_whole_value(self):
        condition = parse_mask_condition(">=4")
        assert condition.bit_mask is None
        np.testing.assert_array_equal(condition.test(np.array([3, 4])), [False, True])

    def test_value_must_be_binary(self):
        with pytest.raises(ValueError, match="binary"):
            parse_mask_condition("0-1==2")


def test_unknown_operator():
    with pytest.raises(ValueError):
        evaluate(np.array([1]), "<>", 1)
