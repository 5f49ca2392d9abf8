"""SDS transposition processor module.

Turns every layer of the selected SDSs through 180 degrees: the first
row becomes the last and each row is reversed. The output keeps the SDS
layout, type and attributes.
"""

from typing import Dict, List

import numpy as np
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import (
    copy_global_attributes,
    copy_sds_attributes,
    open_sd,
    read_sds_layer,
    select_sds_names,
    write_sds,
)
from lib.sds_layout import NO_LAYER, spatial_axes
from utils.file_operations import prepare_output, safe_delete


def rotate_180(data: np.ndarray) -> np.ndarray:
    """Reverse the rows and columns of every layer of an SDS array."""
    return np.flip(data, axis=spatial_axes(data.shape))


class TransposeProcessor(BaseProcessor):
    """Processor for rotating SDS layers by 180 degrees."""

    name = "transpose_sds"

    async def validate_input(self, **kwargs) -> bool:
        required = {"input_path", "output_path"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Transpose every selected SDS or layer.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                sds_names (List[str], optional): SDSs or layers; all SDSs if omitted
                copy_meta (bool, optional): Copy the file attributes

        Returns:
            ProcessingResult: Output SDS dimensions and skipped SDS names
        """
        input_path = kwargs["input_path"]
        output_path = prepare_output(kwargs["output_path"])
        logger.info(f"Transposing SDS in {input_path}")

        outputs: Dict[str, List[int]] = {}
        try:
            with open_sd(input_path) as sd_in, open_sd(output_path, "w") as sd_out:
                for name in select_sds_names(sd_in, kwargs.get("sds_names")):
                    try:
                        info, n, m, data = read_sds_layer(sd_in, name)
                        if data.ndim < 2:
                            raise ValueError(f"SDS rank must be at least 2, got {data.ndim}")
                    except (KeyError, ValueError) as e:
                        self.skip(name, e)
                        continue

                    out_name = name if (n != NO_LAYER or m != NO_LAYER) else info.name
                    write_sds(sd_out, out_name, rotate_180(data), data_type=info.data_type)
                    copy_sds_attributes(sd_in, info.name, sd_out, out_name)
                    outputs[out_name] = list(data.shape)
                    logger.debug(f"Transposed {out_name} {data.shape}")

                if not outputs:
                    raise ValueError("No SDS could be transposed")
                if kwargs.get("copy_meta"):
                    copy_global_attributes(sd_in, sd_out)
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Transposed {len(outputs)} SDS",
            output_path=str(output_path),
            metadata={"outputs": outputs, "skipped": list(self.skipped)}
        )
