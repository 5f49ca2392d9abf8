"""SDS bit unpacking processor module.

MODIS Land QA SDSs pack several fields into the bits of each pixel. This
processor extracts the requested bit groups of every selected SDS into
separate SDSs, with the unpacked value in the least significant bits.
"""

from typing import Dict, List, Tuple

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
from utils.bit_utils import check_bits, extract_bits, parse_bit_groups, unpacked_dtype
from utils.file_operations import prepare_output, safe_delete


def group_label(start: int, end: int) -> str:
    return str(start) if start == end else f"{start}-{end}"


def unpack_groups(data: np.ndarray, groups: List[Tuple[int, int]],
                  fill=None) -> Dict[str, np.ndarray]:
    """Unpack bit groups from SDS values.

    Args:
        data (np.ndarray): Integer SDS values
        groups (List[Tuple[int, int]]): Inclusive (start, end) bit groups
        fill: Input fill value; fill pixels get the output type's fill

    Returns:
        Dict[str, np.ndarray]: Unpacked values per group label such as "10-13"

    Note:
        Every group uses the type chosen for the widest group.
    """
    widest = max(end - start + 1 for start, end in groups)
    out_dtype = unpacked_dtype(widest)
    out_fill = default_fill(out_dtype)
    fill_mask = data == fill if fill is not None else None

    unpacked = {}
    for start, end in groups:
        values = extract_bits(data, start, end - start + 1).astype(out_dtype)
        if fill_mask is not None:
            values[fill_mask] = out_fill
        unpacked[group_label(start, end)] = values
    return unpacked


class UnpackBitsProcessor(BaseProcessor):
    """Processor for unpacking bit fields of SDSs."""

    name = "unpack_sds_bits"

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for bit unpacking.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                bits (str): Bit groups such as "3-5,9-11,15"

        Returns:
            bool: True if all required parameters are present and the bit groups parse
        """
        required = {"input_path", "output_path", "bits"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        parse_bit_groups(kwargs["bits"])
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Unpack the bit groups of every selected SDS.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                bits (str): Bit groups such as "3-5,9-11,15"
                sds_names (List[str], optional): SDSs or layers; all SDSs if omitted
                fill_value (float, optional): Overrides the input fill value
                copy_meta (bool, optional): Copy the file attributes

        Returns:
            ProcessingResult: Output SDS dimensions and skipped SDS names
        """
        input_path = kwargs["input_path"]
        output_path = prepare_output(kwargs["output_path"])
        groups = parse_bit_groups(kwargs["bits"])
        fill_override = kwargs.get("fill_value")
        logger.info(f"Unpacking bits {kwargs['bits']} from {input_path}")

        outputs: Dict[str, List[int]] = {}
        try:
            with open_sd(input_path) as sd_in, open_sd(output_path, "w") as sd_out:
                for name in select_sds_names(sd_in, kwargs.get("sds_names")):
                    try:
                        info, _, _, data = read_sds_layer(sd_in, name)
                        if data.dtype.kind not in "iu":
                            raise ValueError(f"bits can only be unpacked from integer SDS, not {data.dtype}")
                        check_bits([end for _, end in groups], data.dtype)
                    except (KeyError, ValueError) as e:
                        self.skip(name, e)
                        continue

                    fill = fill_override if fill_override is not None else info.fill_value
                    for label, values in unpack_groups(data, groups, fill).items():
                        out_name = f"{name}_bits_{label}"
                        write_sds(sd_out, out_name, values, fill_value=default_fill(values.dtype))
                        outputs[out_name] = list(values.shape)
                        logger.debug(f"Wrote {out_name} {values.shape} {values.dtype}")

                if not outputs:
                    raise ValueError("No SDS could be unpacked")
                if kwargs.get("copy_meta"):
                    copy_global_attributes(sd_in, sd_out)
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Unpacked {len(outputs)} SDS",
            output_path=str(output_path),
            metadata={"outputs": outputs, "skipped": list(self.skipped)}
        )
