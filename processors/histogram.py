"""SDS histogram processor module.

Counts how often each value occurs in one or more SDSs of an HDF file and
renders the counts as a tab separated report, optionally with one column
per layer of a 3D or 4D SDS.
"""

from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import dtype_range, open_sd, read_sds_layer, select_sds_names
from lib.sds_layout import SdsInfo, spatial_last
from config import get_settings

settings = get_settings()


def histogram_range(info: SdsInfo, dtype: np.dtype,
                    value_range: Optional[Tuple[float, float]]) -> Tuple[int, int]:
    """Pick the histogram range: the requested one, the valid range or the type range.

    Raises:
        ValueError: If a floating point SDS has neither a requested nor a valid range
    """
    if value_range is not None:
        low, high = value_range
    elif info.valid_range is not None:
        low, high = info.valid_range
    elif dtype.kind == "f":
        raise ValueError(f"{info.name} is of float type and needs a histogram range")
    else:
        low, high = dtype_range(dtype)
    low, high = int(round(low)), int(round(high))
    if low > high:
        raise ValueError(f"Invalid histogram range {low},{high}")
    return low, high


def layer_histogram(values: np.ndarray, fill: Optional[Any], low: int,
                    high: int) -> Tuple[Dict[int, int], int]:
    """Count values of one layer inside [low, high], with fill counted apart.

    Args:
        values (np.ndarray): Layer values
        fill (Optional[Any]): Fill value, counted separately
        low (int): Smallest value counted
        high (int): Largest value counted

    Returns:
        Tuple[Dict[int, int], int]: Counts per value and the fill count

    Note:
        Floating point values are rounded to the closest integer first.
    """
    flat = values.ravel()
    fill_mask = flat == fill if fill is not None else np.zeros(flat.shape, dtype=bool)
    fill_count = int(fill_mask.sum())
    data = flat[~fill_mask]
    if data.dtype.kind == "f":
        data = np.rint(data[np.isfinite(data)])
    data = data.astype(np.int64)
    data = data[(data >= low) & (data <= high)]

    if high - low + 1 <= settings.HIST_MAX_BINS:
        counts = np.bincount(data - low, minlength=high - low + 1)
        nonzero = np.flatnonzero(counts)
        return {int(v) + low: int(counts[v]) for v in nonzero}, fill_count
    uniques, counts = np.unique(data, return_counts=True)
    return {int(v): int(c) for v, c in zip(uniques, counts)}, fill_count


def format_fill(fill: Any, dtype: np.dtype) -> str:
    if fill is None:
        return "None"
    return f"{fill:f}" if dtype.kind == "f" else str(int(fill))


def render_histogram(name: str, dims: Tuple[int, ...], fill: Any, dtype: np.dtype,
                     counts: List[Dict[int, int]], fill_counts: List[int]) -> List[str]:
    """Render histogram columns as report lines.

    Args:
        name (str): SDS name
        dims (Tuple[int, ...]): SDS dimensions
        fill (Any): Fill value
        dtype (np.dtype): SDS type, used to format the fill value
        counts (List[Dict[int, int]]): Counts per value, one dict per column
        fill_counts (List[int]): Fill counts, one per column

    Returns:
        List[str]: Header, one line per value with a non-zero total, then
            the fill line when any fill was found
    """
    dim_text = " x ".join(str(d) for d in dims)
    lines = [f"{name}:\tDimension = ({dim_text})\tFill Value = {format_fill(fill, dtype)}"]
    values = sorted(set().union(*[column.keys() for column in counts]))
    for value in values:
        row = [column.get(value, 0) for column in counts]
        if sum(row) != 0:
            lines.append(str(value) + "".join(f"\t{c}" for c in row))
    if sum(fill_counts) != 0:
        lines.append(format_fill(fill, dtype) + "".join(f"\t{c}" for c in fill_counts))
    return lines


class HistogramProcessor(BaseProcessor):
    """Processor for SDS value histograms."""

    name = "comp_sds_hist"

    async def validate_input(self, **kwargs) -> bool:
        if "input_path" not in kwargs:
            logger.error("Missing parameter: input_path")
            return False
        value_range = kwargs.get("value_range")
        if value_range is not None and len(value_range) != 2:
            logger.error(f"Histogram range needs a minimum and a maximum, got {value_range}")
            return False
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Compute the histogram of every selected SDS.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                sds_names (List[str], optional): SDSs or layers; all SDSs if omitted
                per_layer (bool, optional): One histogram column per layer
                value_range (Tuple[float, float], optional): Histogram range

        Returns:
            ProcessingResult: Report lines in metadata["report"] and the
                counts per SDS in metadata["histograms"]
        """
        input_path = kwargs["input_path"]
        per_layer = bool(kwargs.get("per_layer", False))
        value_range = kwargs.get("value_range")
        logger.info(f"Computing histograms for {input_path}")

        report: List[str] = []
        histograms: Dict[str, Any] = {}
        with open_sd(input_path) as sd:
            for name in select_sds_names(sd, kwargs.get("sds_names")):
                try:
                    info, _, _, data = read_sds_layer(sd, name)
                    low, high = histogram_range(info, data.dtype, value_range)
                except (KeyError, ValueError) as e:
                    self.skip(name, e)
                    continue

                if per_layer and data.ndim > 2:
                    stack = spatial_last(data)
                    columns = stack.reshape((-1,) + stack.shape[-2:])
                else:
                    columns = [data]

                counts, fill_counts = [], []
                for column in columns:
                    column_counts, fill_count = layer_histogram(column, info.fill_value, low, high)
                    counts.append(column_counts)
                    fill_counts.append(fill_count)

                logger.debug(f"{name}: range {low}-{high}, {len(counts)} column(s)")
                report.extend(render_histogram(name, data.shape, info.fill_value,
                                               data.dtype, counts, fill_counts))
                histograms[name] = {"counts": counts, "fill": fill_counts}

        return ProcessingResult(
            status="success",
            message=f"Computed {len(histograms)} histogram(s)",
            metadata={"report": report, "histograms": histograms, "skipped": list(self.skipped)}
        )
