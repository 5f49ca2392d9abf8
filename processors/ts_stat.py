"""Time series statistics processor module.

Computes per-pixel statistics of an SDS over a series of input files,
typically the same tile on successive dates: sum, mean, standard
deviation, number of valid observations, minimum and maximum.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import (
    dtype_range,
    hdf_dtype,
    open_sd,
    parse_type_name,
    read_sds_layer,
    select_sds_names,
    write_sds,
)
from lib.sds_layout import SdsInfo
from utils.file_operations import check_input_files, prepare_output, safe_delete

# Output order and SDS name prefix of each statistic
PARAMETERS: Dict[str, str] = {
    "sum": "Sum",
    "avg": "Mean",
    "std": "Std",
    "npix": "Npix",
    "min": "Min",
    "max": "Max",
}


@dataclass
class StatSpec:
    """A "name,min,max,f_nop_in,f_nop_out,dt" SDS selection.

    Fields left as '*' are None and take their defaults from the first
    file holding the SDS: the valid range, the fill value, nop_in and the
    input data type.
    """
    name: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    nop_in: Optional[float] = None
    nop_out: Optional[float] = None
    data_type: Optional[str] = None


def _field(text: str) -> Optional[str]:
    text = text.strip()
    return None if text in ("", "*") else text


def _number(text: Optional[str]) -> Optional[float]:
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"Invalid number in SDS statistics option: {text}")


def parse_stat_spec(text: str) -> StatSpec:
    """Parse "sds_name[,min,max,f_nop_in,f_nop_out,dt]".

    Raises:
        ValueError: If the name is missing, a number is malformed or there
            are too many fields
    """
    fields = text.split(",")
    if len(fields) > 6 or not fields[0].strip():
        raise ValueError(f"Expected sds_name,min,max,f_nop_in,f_nop_out,dt: {text}")
    fields += ["*"] * (6 - len(fields))
    name, low, high, nop_in, nop_out, dt = fields
    spec = StatSpec(
        name=name.strip(),
        min_value=_number(_field(low)),
        max_value=_number(_field(high)),
        nop_in=_number(_field(nop_in)),
        nop_out=_number(_field(nop_out)),
        data_type=_field(dt),
    )
    if spec.data_type is not None:
        parse_type_name(spec.data_type)
    return spec


def parse_parameters(params: Optional[List[str]]) -> List[str]:
    """Return the requested statistics in output order; all of them when none are given."""
    if not params:
        return list(PARAMETERS)
    requested = {p.strip().lower() for p in params if p.strip()}
    unknown = requested - set(PARAMETERS)
    if unknown:
        raise ValueError(f"Unknown statistic(s): {', '.join(sorted(unknown))}")
    return [p for p in PARAMETERS if p in requested]


def resolve_defaults(spec: StatSpec, info: SdsInfo) -> Tuple[Tuple[float, float], Any, Any, int]:
    """Fill the '*' fields of a statistics spec from the SDS description.

    Returns:
        Tuple[Tuple[float, float], Any, Any, int]: Value range, nop_in,
            nop_out and the output HDF type code
    """
    dtype = hdf_dtype(info.data_type)
    type_low, type_high = dtype_range(dtype)
    valid_low, valid_high = info.valid_range if info.valid_range is not None else (type_low, type_high)
    low = spec.min_value if spec.min_value is not None else valid_low
    high = spec.max_value if spec.max_value is not None else valid_high
    if low > high:
        raise ValueError(f"Invalid value range {low},{high} for {spec.name}")
    nop_in = spec.nop_in if spec.nop_in is not None else info.fill_value
    nop_out = spec.nop_out if spec.nop_out is not None else nop_in
    if nop_out is None:
        nop_out = 0
    out_type = parse_type_name(spec.data_type) if spec.data_type else info.data_type
    return (low, high), nop_in, nop_out, out_type


def _cast(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    """Cast float64 statistics to the output type, truncating and clipping integers."""
    if dtype.kind == "f":
        return values.astype(dtype)
    low, high = dtype_range(dtype)
    return np.clip(np.trunc(values), low, high).astype(dtype)


def compute_statistics(stack: np.ndarray, value_range: Tuple[float, float],
                       nop_in: Any, nop_out: Any, out_dtype: np.dtype) -> Dict[str, np.ndarray]:
    """Compute per-pixel statistics over the first axis of a stack.

    Args:
        stack (np.ndarray): (n_files, rows, cols) values
        value_range (Tuple[float, float]): Inclusive range of values used
        nop_in (Any): Input value that is never used, or None
        nop_out (Any): Output value at pixels without a valid observation
        out_dtype (np.dtype): Type of the sum, mean, min and max outputs

    Returns:
        Dict[str, np.ndarray]: One array per statistic key of PARAMETERS

    Note:
        Std is float32 and Npix is int16. Npix is 0 where no observation
        is valid; every other statistic holds nop_out there.
    """
    values = stack.astype(np.float64)
    valid = (values >= value_range[0]) & (values <= value_range[1])
    if nop_in is not None:
        valid &= values != nop_in

    npix = valid.sum(axis=0)
    empty = npix == 0
    total = np.where(valid, values, 0.0).sum(axis=0)
    total2 = np.where(valid, values * values, 0.0).sum(axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        mean = total / npix
        std = np.sqrt(np.maximum(total2 / npix - mean * mean, 0.0))
    low = np.where(valid, values, np.inf).min(axis=0)
    high = np.where(valid, values, -np.inf).max(axis=0)

    stats = {}
    for key, result in (("sum", total), ("avg", mean), ("min", low), ("max", high)):
        stats[key] = _cast(np.where(empty, nop_out, result), out_dtype)
    stats["std"] = np.where(empty, nop_out, std).astype(np.float32)
    stats["npix"] = np.clip(npix, 0, np.iinfo(np.int16).max).astype(np.int16)
    return stats


class TsStatProcessor(BaseProcessor):
    """Processor for per-pixel statistics over a time series of files."""

    name = "create_sds_ts_stat"

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for time series statistics.

        Args:
            **kwargs: Keyword arguments containing:
                input_paths (List[str]): Input HDF files
                output_path (str): Output HDF file
                sds_specs (List[str]): SDS statistics options

        Returns:
            bool: True if the parameters are present and every option parses
        """
        if not kwargs.get("input_paths") or not kwargs.get("sds_specs") or "output_path" not in kwargs:
            logger.error("Statistics need input files, SDS options and an output file")
            return False
        for text in kwargs["sds_specs"]:
            parse_stat_spec(text)
        parse_parameters(kwargs.get("params"))
        check_input_files(kwargs["input_paths"])
        return True

    def _expand(self, spec: StatSpec, input_paths: List[str]) -> List[str]:
        """Expand layer wildcards of an SDS name against the first file holding it."""
        for path in input_paths:
            with open_sd(path) as sd:
                try:
                    return select_sds_names(sd, [spec.name])
                except KeyError:
                    continue
        raise KeyError(f"SDS {spec.name} not found in any input file")

    def _load_series(self, sds_name: str, input_paths: List[str]) -> Tuple[SdsInfo, np.ndarray]:
        """Read one SDS or layer from every file, skipping files without it."""
        info = None
        layers = []
        for path in input_paths:
            with open_sd(path) as sd:
                try:
                    sds_info, _, _, data = read_sds_layer(sd, sds_name)
                except KeyError:
                    logger.warning(f"{sds_name} missing in {path}; file ignored")
                    continue
            if data.ndim != 2:
                raise ValueError(f"{sds_name} is not 2D; select a layer such as {sds_name}.1")
            if layers and data.shape != layers[0].shape:
                logger.warning(f"{sds_name} in {path} is {data.shape}, expected "
                               f"{layers[0].shape}; file ignored")
                continue
            info = info or sds_info
            layers.append(data)
        if not layers:
            raise KeyError(f"SDS {sds_name} not found in any input file")
        return info, np.stack(layers)

    async def process(self, **kwargs) -> ProcessingResult:
        """Compute statistics for every SDS option.

        Args:
            **kwargs: Keyword arguments containing:
                input_paths (List[str]): Input HDF files
                output_path (str): Output HDF file
                sds_specs (List[str]): "name,min,max,f_nop_in,f_nop_out,dt" options
                params (List[str], optional): Statistics among avg, std, min,
                    max, npix and sum; all if omitted

        Returns:
            ProcessingResult: Output SDS dimensions, the number of files used
                per SDS and skipped SDS names
        """
        input_paths = [str(p) for p in kwargs["input_paths"]]
        specs = [parse_stat_spec(text) for text in kwargs["sds_specs"]]
        params = parse_parameters(kwargs.get("params"))
        output_path = prepare_output(kwargs["output_path"])
        logger.info(f"Computing {', '.join(params)} over {len(input_paths)} file(s)")

        outputs: Dict[str, List[int]] = {}
        files_used: Dict[str, int] = {}
        try:
            with open_sd(output_path, "w") as sd_out:
                for spec in specs:
                    try:
                        names = self._expand(spec, input_paths)
                    except KeyError as e:
                        self.skip(spec.name, e)
                        continue

                    for sds_name in names:
                        try:
                            info, stack = self._load_series(sds_name, input_paths)
                            value_range, nop_in, nop_out, out_type = resolve_defaults(spec, info)
                        except (KeyError, ValueError) as e:
                            self.skip(sds_name, e)
                            continue

                        logger.debug(f"{sds_name}: {stack.shape[0]} file(s), range {value_range}, "
                                     f"nop_in {nop_in}, nop_out {nop_out}")
                        stats = compute_statistics(stack, value_range, nop_in, nop_out,
                                                   hdf_dtype(out_type))
                        for key in params:
                            out_name = f"{PARAMETERS[key]} of {sds_name}"
                            data = stats[key]
                            write_sds(sd_out, out_name, data,
                                      fill_value=nop_out if key != "npix" else 0,
                                      data_type=out_type if key in ("sum", "avg", "min", "max") else None)
                            outputs[out_name] = list(data.shape)
                        files_used[sds_name] = int(stack.shape[0])

            if not outputs:
                raise ValueError("No statistics could be computed")
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Wrote {len(outputs)} statistics SDS",
            output_path=str(output_path),
            metadata={"outputs": outputs, "files_used": files_used, "skipped": list(self.skipped)}
        )
