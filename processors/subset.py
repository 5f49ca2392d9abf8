"""SDS spatial subset processor module.

Cuts a row and column window out of one or more SDSs of an HDF file.
2D, 3D and 4D SDSs are supported; the window is applied to the spatial
axes of every layer, so the output keeps the input interleaving and
attributes.
"""

from typing import Dict, List, Tuple

from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import (
    copy_global_attributes,
    copy_sds_attributes,
    get_sds_info,
    list_sds,
    open_sd,
    read_sds,
    write_sds,
)
from lib.sds_layout import NO_LAYER, layer_dims, spatial_axes
from lib.sds_names import parse_sds_name
from utils.file_operations import prepare_output, safe_delete


def check_range(label: str, bounds: Tuple[int, int], size: int) -> None:
    """Validate an inclusive (start, end) range against a dimension size.

    Raises:
        ValueError: If the range is negative, empty or reversed, or runs past the dimension
    """
    start, end = bounds
    if start < 0 or end < 0:
        raise ValueError(f"{label} range {start},{end} must not be negative")
    if start >= end:
        raise ValueError(f"{label} range start {start} must be less than end {end}")
    if end >= size:
        raise ValueError(f"{label} range {start},{end} outside 0-{size - 1}")


def whole_sds_names(names: List[str]) -> List[str]:
    """Drop layer extensions, since a subset always covers every layer."""
    bases = []
    for name in names:
        base, n, m = parse_sds_name(name)
        if n != NO_LAYER or m != NO_LAYER:
            logger.warning(f"Layer selection ignored for {name}; subsetting the whole SDS {base}")
        if base not in bases:
            bases.append(base)
    return bases


class SubsetProcessor(BaseProcessor):
    """Processor for spatial subsetting of SDSs."""

    name = "subset_sds"

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for subsetting.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                rows (Tuple[int, int]): Inclusive row range
                cols (Tuple[int, int]): Inclusive column range

        Returns:
            bool: True if all required parameters are present
        """
        required = {"input_path", "output_path", "rows", "cols"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Subset every selected SDS.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                rows (Tuple[int, int]): Inclusive row range
                cols (Tuple[int, int]): Inclusive column range
                sds_names (List[str], optional): SDSs to subset; all if omitted
                copy_meta (bool, optional): Copy the file attributes

        Returns:
            ProcessingResult: Output SDS dimensions and skipped SDS names
        """
        input_path = kwargs["input_path"]
        output_path = prepare_output(kwargs["output_path"])
        rows = tuple(int(v) for v in kwargs["rows"])
        cols = tuple(int(v) for v in kwargs["cols"])

        logger.info(f"Subsetting {input_path} rows {rows} cols {cols}")

        outputs: Dict[str, List[int]] = {}
        try:
            with open_sd(input_path) as sd_in, open_sd(output_path, "w") as sd_out:
                names = whole_sds_names(kwargs.get("sds_names") or list_sds(sd_in))
                for name in names:
                    try:
                        info = get_sds_info(sd_in, name)
                        nrows, ncols = layer_dims(info.dims)
                        check_range("Row", rows, nrows)
                        check_range("Column", cols, ncols)
                    except (KeyError, ValueError) as e:
                        self.skip(name, e)
                        continue

                    data = read_sds(sd_in, info.name)
                    row_axis, col_axis = spatial_axes(info.dims)
                    window = [slice(None)] * data.ndim
                    window[row_axis] = slice(rows[0], rows[1] + 1)
                    window[col_axis] = slice(cols[0], cols[1] + 1)
                    subset = data[tuple(window)]
                    logger.debug(f"{info.name}: {info.dims} -> {subset.shape}")

                    write_sds(sd_out, info.name, subset, data_type=info.data_type)
                    copy_sds_attributes(sd_in, info.name, sd_out, info.name)
                    outputs[info.name] = list(subset.shape)

                if not outputs:
                    raise ValueError("No SDS could be subset")
                if kwargs.get("copy_meta"):
                    copy_global_attributes(sd_in, sd_out)
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Subset {len(outputs)} SDS",
            output_path=str(output_path),
            metadata={"outputs": outputs, "skipped": list(self.skipped)}
        )
