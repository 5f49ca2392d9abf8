"""Bit field helpers.

QA SDSs pack several flags into each pixel value. These helpers parse the
bit selections and comparison expressions the tools accept and apply them
to whole numpy arrays.
"""

import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

# Longer operators first so "<=" is not read as "<".
COUNT_OPERATORS = ("<=", ">=", "==", "!=", "<", ">")
MASK_OPERATORS = ("<=", ">=", "!=", "==", "<", ">", "=")

OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "<=": operator.le,
    ">=": operator.ge,
    "==": operator.eq,
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
}


@dataclass
class BitCondition:
    """A "[bits]<op><value>" test used when counting pixels.

    Attributes:
        start (int): Lowest bit of the field, ignored when nbits is 0
        nbits (int): Width of the field; 0 compares the whole value
        op (str): Comparison operator
        value (int): Value the field is compared against
    """
    start: int
    nbits: int
    op: str
    value: int

    @property
    def label(self) -> str:
        """Suffix used in output SDS names, e.g. "bits0-3<=2"."""
        if self.nbits == 0:
            return f"sds{self.op}{self.value}"
        if self.nbits == 1:
            return f"bit{self.start}{self.op}{self.value}"
        return f"bits{self.start}-{self.start + self.nbits - 1}{self.op}{self.value}"

    def test(self, values: np.ndarray) -> np.ndarray:
        field = values if self.nbits == 0 else extract_bits(values, self.start, self.nbits)
        return evaluate(field, self.op, self.value)


@dataclass
class MaskCondition:
    """A "bits<op>binary value" test used to build masks.

    Attributes:
        bit_mask (Optional[int]): OR of the selected bits; None compares the whole value
        op (str): Comparison operator
        value (int): Value compared against (value & bit_mask), bits in place
    """
    bit_mask: Optional[int]
    op: str
    value: int

    def test(self, values: np.ndarray) -> np.ndarray:
        if self.bit_mask is None:
            return evaluate(values, self.op, self.value)
        masked = values.astype(np.int64) & self.bit_mask
        return evaluate(masked, self.op, self.value)


def _split_operator(text: str, operators: Tuple[str, ...]) -> Tuple[str, str, str]:
    for op in operators:
        pos = text.find(op)
        if pos != -1:
            return text[:pos].strip(), op, text[pos + len(op):].strip()
    raise ValueError(f"No relational operator in {text!r}")


def parse_bit_numbers(text: str) -> List[int]:
    """Expand "3-5,9-11,15" into a sorted list of unique bit numbers.

    Raises:
        ValueError: If a bit number is malformed or a range is reversed
    """
    bits = set()
    for low, high in parse_bit_groups(text):
        bits.update(range(low, high + 1))
    return sorted(bits)


def parse_bit_groups(text: str) -> List[Tuple[int, int]]:
    """Split "3-5,9-11,15" into [(3, 5), (9, 11), (15, 15)].

    Args:
        text (str): Comma separated bit numbers and inclusive bit ranges

    Returns:
        List[Tuple[int, int]]: (start, end) bit pairs in the order given

    Raises:
        ValueError: If a bit number is malformed or a range is reversed
    """
    groups = []
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        low, sep, high = token.partition("-")
        if not low.strip().isdigit() or (sep and not high.strip().isdigit()):
            raise ValueError(f"Invalid bit number: {token}")
        start = int(low)
        end = int(high) if sep else start
        if end < start:
            raise ValueError(f"Invalid bit range: {token}")
        groups.append((start, end))
    if not groups:
        raise ValueError("No bit numbers given")
    return groups


def check_bits(bits: List[int], dtype: Any) -> None:
    """Raise ValueError if any bit does not exist in values of `dtype`."""
    nbits = np.dtype(dtype).itemsize * 8
    bad = [bit for bit in bits if bit > nbits - 1]
    if bad:
        raise ValueError(
            f"Bit number(s) {', '.join(str(b) for b in bad)} out of range for "
            f"{np.dtype(dtype).name} (0-{nbits - 1})"
        )


def extract_bits(values: np.ndarray, start: int, count: int) -> np.ndarray:
    """Return `count` bits of every value starting at bit `start`."""
    mask = (1 << count) - 1
    # int64 keeps the two's complement bits of narrower signed types
    return (np.asarray(values).astype(np.int64) >> start) & mask


def parse_bit_condition(text: str) -> BitCondition:
    """Parse a count condition such as "0-3<=2", "5==1" or "==7".

    Raises:
        ValueError: If the operator, bits or value cannot be read
    """
    bits, op, value = _split_operator(text.strip(), COUNT_OPERATORS)
    try:
        compare_to = int(value)
    except ValueError:
        raise ValueError(f"Invalid value in bit condition {text!r}")
    if not bits:
        return BitCondition(start=0, nbits=0, op=op, value=compare_to)
    start, end = parse_bit_groups(bits)[0]
    return BitCondition(start=start, nbits=end - start + 1, op=op, value=compare_to)


def parse_mask_condition(text: str) -> MaskCondition:
    """Parse a mask condition such as "0-1==01", "10,12!=11" or ">=4".

    Args:
        text (str): Bit numbers, an operator and a binary value written
            highest bit first. Without bit numbers the value is decimal and
            is compared against the whole pixel value.

    Returns:
        MaskCondition: Bit mask, operator and in-place value

    Note:
        The i-th listed bit takes the i-th binary digit counted from the
        right, so "0-1==01" selects pixels whose bit 0 is set and bit 1 clear.
    """
    bits, op, value = _split_operator(text.strip(), MASK_OPERATORS)
    if not bits:
        try:
            return MaskCondition(bit_mask=None, op=op, value=int(value))
        except ValueError:
            raise ValueError(f"Invalid value in mask condition {text!r}")

    bit_list = []
    for start, end in parse_bit_groups(bits):
        bit_list.extend(range(start, end + 1))
    if not value or any(c not in "01" for c in value):
        raise ValueError(f"Mask value must be binary in {text!r}")

    bit_mask = 0
    mask_value = 0
    for bit, digit in zip(bit_list, reversed(value)):
        if digit == "1":
            mask_value |= 1 << bit
    for bit in bit_list:
        bit_mask |= 1 << bit
    return MaskCondition(bit_mask=bit_mask, op=op, value=mask_value)


def evaluate(values: np.ndarray, op: str, value: Any) -> np.ndarray:
    """Compare every element of `values` with `value` using `op`."""
    try:
        return OPERATORS[op](values, value)
    except KeyError:
        raise ValueError(f"Unknown operator: {op}")


def unpacked_dtype(nbits: int) -> np.dtype:
    """Return the output type for an unpacked field of `nbits` bits."""
    if nbits < 8:
        return np.dtype(np.uint8)
    if nbits < 16:
        return np.dtype(np.uint16)
    return np.dtype(np.uint32)
