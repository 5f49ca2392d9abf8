"""Block reduction kernels.

Each kernel reduces the last two axes of an array, (..., rows, cols), by
an integer factor rf. Output blocks cover rf x rf input pixels; blocks on
the bottom and right edges cover whatever pixels remain, so the output
shape is (..., ceil(rows / rf), ceil(cols / rf)).
"""

import math
from typing import Any, Dict, Optional, Tuple

import numpy as np

from utils.bit_utils import BitCondition


def reduced_shape(rows: int, cols: int, rf: int) -> Tuple[int, int]:
    return math.ceil(rows / rf), math.ceil(cols / rf)


def _check_factor(rf: int) -> None:
    if rf < 1:
        raise ValueError(f"Reduction factor must be at least 1, got {rf}")


def _centre_indices(n: int, rf: int) -> np.ndarray:
    starts = np.arange(0, n, rf)
    centre = starts + rf // 2
    edge = starts + (n - starts) // 2
    return np.where(centre < n, centre, edge)


def block_sample(layer: np.ndarray, rf: int) -> np.ndarray:
    """Keep the centre pixel of every block.

    Args:
        layer (np.ndarray): Array of shape (..., rows, cols)
        rf (int): Reduction factor

    Returns:
        np.ndarray: Sampled array of shape (..., ceil(rows/rf), ceil(cols/rf))

    Note:
        The centre of block i is rf*i + rf//2. For a partial edge block
        that index can fall outside the array, so the middle of the
        remaining pixels is used instead.
    """
    _check_factor(rf)
    rows, cols = layer.shape[-2:]
    r = _centre_indices(rows, rf)
    c = _centre_indices(cols, rf)
    return layer[..., r[:, None], c[None, :]]


def _blocks(layer: np.ndarray, rf: int, pad_value: Any) -> np.ndarray:
    """Pad to whole blocks and return a (..., R, C, rf*rf) view."""
    rows, cols = layer.shape[-2:]
    out_rows, out_cols = reduced_shape(rows, cols, rf)
    pad = [(0, 0)] * (layer.ndim - 2) + [(0, out_rows * rf - rows), (0, out_cols * rf - cols)]
    padded = np.pad(layer, pad, mode="constant", constant_values=pad_value)
    lead = layer.shape[:-2]
    blocks = padded.reshape(lead + (out_rows, rf, out_cols, rf))
    blocks = np.moveaxis(blocks, -3, -2)
    return blocks.reshape(lead + (out_rows, out_cols, rf * rf))


def _valid_blocks(layer: np.ndarray, rf: int, fill: Optional[Any]) -> Tuple[np.ndarray, np.ndarray]:
    valid = np.ones(layer.shape, dtype=bool) if fill is None else layer != fill
    return _blocks(layer, rf, 0), _blocks(valid, rf, False)


def block_stats(layer: np.ndarray, rf: int, fill: Optional[Any] = None) -> Dict[str, np.ndarray]:
    """Per-block sums and extremes over the non-fill pixels.

    Args:
        layer (np.ndarray): Array of shape (..., rows, cols)
        rf (int): Reduction factor
        fill (Optional[Any]): Fill value to exclude

    Returns:
        Dict[str, np.ndarray]: "sum", "sum2" and "count", plus "min" and
            "max" which hold +inf/-inf where a block has no valid pixel
    """
    _check_factor(rf)
    values, valid = _valid_blocks(layer, rf, fill)
    values = values.astype(np.float64)
    count = valid.sum(axis=-1)
    total = np.where(valid, values, 0.0).sum(axis=-1)
    total2 = np.where(valid, values * values, 0.0).sum(axis=-1)
    low = np.where(valid, values, np.inf).min(axis=-1)
    high = np.where(valid, values, -np.inf).max(axis=-1)
    return {"sum": total, "sum2": total2, "count": count, "min": low, "max": high}


def block_average(layer: np.ndarray, rf: int, fill: Optional[Any] = None,
                  out_dtype: Optional[Any] = None) -> Dict[str, np.ndarray]:
    """Average every block, with min, max, standard deviation and count.

    Args:
        layer (np.ndarray): Array of shape (..., rows, cols)
        rf (int): Reduction factor
        fill (Optional[Any]): Fill value; excluded from the statistics and
            written where a block has no valid pixel
        out_dtype (Optional[Any]): Type of the average, the input type if omitted

    Returns:
        Dict[str, np.ndarray]: "avg" in out_dtype, "min" and "max" in the
            input type, "sig" as float32 and "num" as int64

    Note:
        Integer averages are rounded as floor(avg + 0.5).
    """
    out_dtype = np.dtype(out_dtype if out_dtype is not None else layer.dtype)
    stats = block_stats(layer, rf, fill)
    count = stats["count"]
    empty = count == 0
    safe = np.where(empty, 1, count)
    avg = stats["sum"] / safe
    variance = np.maximum(stats["sum2"] / safe - avg * avg, 0.0)
    fill_value = 0 if fill is None else fill

    if out_dtype.kind in "iu":
        avg_out = np.floor(avg + 0.5)
    else:
        avg_out = avg
    avg_out = np.where(empty, fill_value, avg_out).astype(out_dtype)

    return {
        "avg": avg_out,
        "min": np.where(empty, fill_value, stats["min"]).astype(layer.dtype),
        "max": np.where(empty, fill_value, stats["max"]).astype(layer.dtype),
        "sig": np.where(empty, fill_value, np.sqrt(variance)).astype(np.float32),
        "num": count,
    }


def block_count(layer: np.ndarray, rf: int, fill: Optional[Any],
                condition: BitCondition) -> np.ndarray:
    """Count the non-fill pixels of every block that meet a bit condition."""
    _check_factor(rf)
    hits = condition.test(layer)
    if fill is not None:
        hits &= layer != fill
    return _blocks(hits, rf, False).sum(axis=-1)


def block_majority(layer: np.ndarray, rf: int, fill: Optional[Any],
                   max_class: int) -> np.ndarray:
    """Replace every block by its most frequent class.

    Args:
        layer (np.ndarray): Integer array of shape (..., rows, cols)
        rf (int): Reduction factor
        fill (Optional[Any]): Fill value; not counted, and written where a
            block holds no countable pixel
        max_class (int): Values outside [0, max_class) are not counted

    Returns:
        np.ndarray: Majority class per block, in the input type

    Note:
        Ties go to the lowest class number.
    """
    _check_factor(rf)
    if layer.dtype.kind not in "iu":
        raise ValueError("Class reduction needs an integer SDS")
    values, valid = _valid_blocks(layer, rf, fill)
    values = values.astype(np.int64)
    valid &= (values >= 0) & (values < max_class)

    out_shape = values.shape[:-1]
    nblocks = int(np.prod(out_shape))
    block_id = np.broadcast_to(np.arange(nblocks).reshape(out_shape + (1,)), values.shape)
    keys = block_id[valid] * max_class + values[valid]
    counts = np.bincount(keys, minlength=nblocks * max_class).reshape(nblocks, max_class)

    majority = counts.argmax(axis=1)
    empty = counts.max(axis=1) == 0
    fill_value = 0 if fill is None else fill
    result = np.where(empty, fill_value, majority)
    return result.reshape(out_shape).astype(layer.dtype)
