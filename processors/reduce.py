"""SDS spatial reduction processor module.

This module reduces the spatial resolution of one or more SDSs of an HDF
file by an integer factor. Each output pixel summarises an rf x rf block
of input pixels by one of four methods:

- sub: keep the centre pixel of the block
- avg: average the non-fill pixels, optionally with min, max, standard
  deviation and pixel count outputs
- cnt: count the non-fill pixels meeting bit conditions
- cl: keep the majority class of the block

SDSs of different resolutions can be reduced together; each is reduced by
the factor that brings it to rf times the coarsest input resolution.
"""

from typing import Any, Dict, List, Tuple

import numpy as np
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import (
    copy_global_attributes,
    default_fill,
    open_sd,
    read_sds_layer,
    select_sds_names,
    write_sds,
)
from lib.sds_layout import NO_LAYER, SdsInfo, layer_dims, restore_spatial, spatial_last
from utils.bit_utils import BitCondition, parse_bit_condition
from utils.block_utils import block_average, block_count, block_majority, block_sample
from utils.file_operations import prepare_output, safe_delete
from config import get_settings

settings = get_settings()

METHODS = ("sub", "avg", "cnt", "cl")
AVG_EXTRAS = ("min", "max", "sig", "num")


def reduction_factors(rows: Dict[str, int], rf: int) -> Dict[str, int]:
    """Work out the reduction factor of every SDS.

    Args:
        rows (Dict[str, int]): Spatial row count per SDS name
        rf (int): Reduction factor for the coarsest SDS

    Returns:
        Dict[str, int]: Factor per SDS name; SDSs whose row count is not an
            integer multiple of the coarsest are left out
    """
    coarsest = min(rows.values())
    factors = {}
    for name, nrows in rows.items():
        if nrows % coarsest != 0:
            logger.warning(
                f"{name}: {nrows} rows is not a multiple of {coarsest}, cannot reduce to a common grid"
            )
            continue
        factors[name] = rf * (nrows // coarsest)
    return factors


def count_dtype(rf: int) -> np.dtype:
    return np.dtype(np.uint8 if rf <= 16 else np.uint16)


def num_dtype(rf: int) -> np.dtype:
    return np.dtype(np.int8 if rf * rf < 256 else np.int16)


def _fits(value: Any, dtype: np.dtype) -> bool:
    if dtype.kind == "f":
        return True
    info = np.iinfo(dtype)
    return info.min <= value <= info.max


def check_reducible(data: np.ndarray, method: str) -> None:
    """Raise ValueError if an SDS (or layer) cannot be reduced by `method`."""
    if data.ndim < 2:
        raise ValueError(f"SDS rank must be at least 2, got {data.ndim}")
    if method == "cl" and data.dtype.kind not in "iu":
        raise ValueError("Class reduction needs an integer SDS")


class ReduceProcessor(BaseProcessor):
    """Processor for reducing SDS resolution by an integer factor."""

    name = "reduce_sds"

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for SDS reduction.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                factor (int): Reduction factor, at least 1
                method (str): One of "sub", "avg", "cnt", "cl"
                conditions (List[str], optional): Bit conditions, required for "cnt"

        Returns:
            bool: True if all required parameters are present and valid
        """
        required = {"input_path", "output_path", "factor", "method"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        if kwargs["method"] not in METHODS:
            logger.error(f"Unknown reduction method {kwargs['method']}, expected one of {METHODS}")
            return False
        if int(kwargs["factor"]) < 1:
            logger.error(f"Reduction factor must be at least 1, got {kwargs['factor']}")
            return False
        if kwargs["method"] == "cnt" and not kwargs.get("conditions"):
            logger.error("Reduction by count needs at least one bit condition")
            return False
        extras = set(kwargs.get("avg_outputs") or []) - set(AVG_EXTRAS)
        if extras:
            logger.error(f"Unknown average outputs: {sorted(extras)}")
            return False
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Reduce every selected SDS and write the results to one HDF file.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                factor (int): Reduction factor for the coarsest SDS
                method (str): One of "sub", "avg", "cnt", "cl"
                sds_names (List[str], optional): SDSs to reduce; all if omitted
                conditions (List[str], optional): "cnt" bit conditions such as "0-3<=2"
                avg_outputs (List[str], optional): Extra "avg" outputs out of
                    "min", "max", "sig", "num"
                float_avg (bool, optional): Write averages as FLOAT32
                copy_meta (bool, optional): Copy the file attributes

        Returns:
            ProcessingResult: Output SDS names with their dimensions, and the
                SDS names that were skipped
        """
        input_path = kwargs["input_path"]
        output_path = prepare_output(kwargs["output_path"])
        rf = int(kwargs["factor"])
        method = kwargs["method"]
        conditions = [parse_bit_condition(c) for c in kwargs.get("conditions") or []]
        avg_outputs = list(kwargs.get("avg_outputs") or [])
        float_avg = bool(kwargs.get("float_avg", False))

        logger.info(f"Reducing {input_path} by {rf} using {method}")

        outputs: Dict[str, Tuple[int, ...]] = {}
        try:
            with open_sd(input_path) as sd_in, open_sd(output_path, "w") as sd_out:
                names = select_sds_names(sd_in, kwargs.get("sds_names"))
                layers = {}
                for name in names:
                    try:
                        layer = read_sds_layer(sd_in, name)
                        check_reducible(layer[3], method)
                    except (KeyError, ValueError) as e:
                        self.skip(name, e)
                        continue
                    layers[name] = layer

                if not layers:
                    raise ValueError("No SDS to reduce")

                rows = {name: layer_dims(data.shape)[0] for name, (_, _, _, data) in layers.items()}
                factors = reduction_factors(rows, rf)
                for name in layers:
                    if name not in factors:
                        self.skip(name, "resolution is not an integer multiple of the coarsest SDS")

                for name, sds_rf in factors.items():
                    info, n, m, data = layers[name]
                    out_name = name if (n != NO_LAYER or m != NO_LAYER) else info.name
                    logger.debug(f"{out_name}: dims={data.shape} factor={sds_rf}")
                    written = self._reduce_one(
                        sd_out, out_name, info, data, sds_rf, method,
                        conditions, avg_outputs, float_avg
                    )
                    outputs.update(written)

                if kwargs.get("copy_meta"):
                    copy_global_attributes(sd_in, sd_out)
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Reduced {len(factors)} SDS by {method}",
            output_path=str(output_path),
            metadata={
                "outputs": {name: list(dims) for name, dims in outputs.items()},
                "factors": factors,
                "skipped": list(self.skipped),
            }
        )

    def _reduce_one(self, sd_out, out_name: str, info: SdsInfo, data: np.ndarray,
                    rf: int, method: str, conditions: List[BitCondition],
                    avg_outputs: List[str], float_avg: bool) -> Dict[str, Tuple[int, ...]]:
        """Reduce one SDS (or layer) and write its output SDSs."""
        fill = info.fill_value
        stack = spatial_last(data)
        results: List[Tuple[str, np.ndarray, Any]] = []

        if method == "sub":
            results.append((f"{out_name}_sub", block_sample(stack, rf), fill))

        elif method == "avg":
            avg_dtype = np.float32 if float_avg else data.dtype
            stats = block_average(stack, rf, fill, out_dtype=avg_dtype)
            results.append((f"{out_name}_avg", stats["avg"], fill))
            if "min" in avg_outputs:
                results.append((f"{out_name}_min", stats["min"], fill))
            if "max" in avg_outputs:
                results.append((f"{out_name}_max", stats["max"], fill))
            if "sig" in avg_outputs:
                results.append((f"{out_name}_sig", stats["sig"], fill))
            if "num" in avg_outputs:
                results.append((f"{out_name}_num", stats["num"].astype(num_dtype(rf)), 0))

        elif method == "cnt":
            out_dtype = count_dtype(rf)
            cnt_fill = fill if fill is not None and _fits(fill, out_dtype) else default_fill(out_dtype)
            for condition in conditions:
                counts = block_count(stack, rf, fill, condition).astype(out_dtype)
                results.append((f"{out_name}_cnt_{condition.label}", counts, cnt_fill))

        elif method == "cl":
            majority = block_majority(stack, rf, fill, settings.MAX_NUM_CLASS)
            results.append((f"{out_name}_cl", majority, fill))

        written = {}
        for sds_name, reduced, out_fill in results:
            array = restore_spatial(reduced, data.shape) if data.ndim > 2 else reduced
            if out_fill is None:
                out_fill = default_fill(array.dtype)
            write_sds(sd_out, sds_name, array, fill_value=out_fill)
            written[sds_name] = array.shape
            logger.info(f"Wrote {sds_name} {array.shape}")
        return written
