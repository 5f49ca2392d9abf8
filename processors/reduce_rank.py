"""SDS rank reduction processor module.

Splits 3D and 4D SDSs into one 2D SDS per selected layer. Output names
carry the layer dimension names and 1-based element numbers, e.g.

    BRDF_Albedo_Parameters.Num_Land_Bands_Plus3_3.Num_Parameters_1

and an optional "<sds>_all" SDS mosaics every selected layer.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
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
from lib.sds_layout import SdsInfo, layer_axes, layer_sizes, spatial_last
from lib.sds_names import parse_dim_numbers
from utils.file_operations import prepare_output, safe_delete


def layer_dim_names(info: SdsInfo) -> List[str]:
    """Return the names of the non-spatial dimensions of an SDS."""
    names = info.dim_names or []
    return [names[axis] if axis < len(names) else f"dim{axis}" for axis in layer_axes(info.dims)]


def select_elements(info: SdsInfo, dims: Optional[Dict[str, str]] = None) -> List[List[int]]:
    """Resolve per-dimension element selections for a 3D or 4D SDS.

    Args:
        info (SdsInfo): SDS description
        dims (Optional[Dict[str, str]]): Element lists such as "1-7" keyed
            by layer dimension name; unlisted dimensions keep every element

    Returns:
        List[List[int]]: 1-based element numbers per layer dimension

    Raises:
        ValueError: If the SDS is 2D or a dimension name is unknown
    """
    if len(info.dims) < 3:
        raise ValueError(f"{info.name} is already 2D")
    names = layer_dim_names(info)
    sizes = layer_sizes(info.dims)
    unknown = set(dims or {}) - set(names)
    if unknown:
        raise ValueError(f"{info.name} has no dimension(s) {', '.join(sorted(unknown))}; "
                         f"layer dimensions are {', '.join(names)}")
    return [parse_dim_numbers((dims or {}).get(name, "*"), size)
            for name, size in zip(names, sizes)]


def split_layers(data: np.ndarray, info: SdsInfo,
                 elements: List[List[int]]) -> List[Tuple[str, np.ndarray]]:
    """Cut the selected layers out of an SDS array.

    Returns:
        List[Tuple[str, np.ndarray]]: (output name, 2D layer) pairs, the
            last dimension varying fastest
    """
    stack = spatial_last(data)
    names = layer_dim_names(info)
    layers = []
    if len(elements) == 1:
        for n in elements[0]:
            layers.append((f"{info.name}.{names[0]}_{n}", stack[n - 1]))
    else:
        for n in elements[0]:
            for m in elements[1]:
                name = f"{info.name}.{names[0]}_{n}.{names[1]}_{m}"
                layers.append((name, stack[n - 1, m - 1]))
    return layers


def mosaic_layers(data: np.ndarray, elements: List[List[int]]) -> np.ndarray:
    """Tile the selected layers into a single 2D array.

    Note:
        Layers of a 3D SDS are placed side by side. Layers of a 4D SDS
        are placed in a grid, the first layer dimension running down the
        rows and the second across the columns.
    """
    stack = spatial_last(data)
    if len(elements) == 1:
        tiles = stack[[n - 1 for n in elements[0]]]
        k, rows, cols = tiles.shape
        return tiles.transpose(1, 0, 2).reshape(rows, k * cols)
    tiles = stack[np.ix_([n - 1 for n in elements[0]], [m - 1 for m in elements[1]])]
    k1, k2, rows, cols = tiles.shape
    return tiles.transpose(0, 2, 1, 3).reshape(k1 * rows, k2 * cols)


class ReduceRankProcessor(BaseProcessor):
    """Processor splitting multi-dimensional SDSs into 2D SDSs."""

    name = "reduce_sds_rank"

    async def validate_input(self, **kwargs) -> bool:
        required = {"input_path", "output_path"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Split every selected SDS into 2D layers.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                selections (Dict[str, Dict[str, str]], optional): Per SDS name,
                    element lists keyed by dimension name; every 3D/4D SDS
                    with all of its layers if omitted
                mosaic (bool, optional): Also write "<sds>_all"
                copy_meta (bool, optional): Copy the file attributes

        Returns:
            ProcessingResult: Output SDS dimensions and skipped SDS names
        """
        input_path = kwargs["input_path"]
        output_path = prepare_output(kwargs["output_path"])
        selections = kwargs.get("selections")
        mosaic = bool(kwargs.get("mosaic", False))
        logger.info(f"Reducing SDS rank in {input_path}")

        outputs: Dict[str, List[int]] = {}
        try:
            with open_sd(input_path) as sd_in, open_sd(output_path, "w") as sd_out:
                if selections:
                    requested = dict(selections)
                else:
                    requested = {name: {} for name in list_sds(sd_in)
                                 if len(get_sds_info(sd_in, name).dims) > 2}

                for name, dims in requested.items():
                    try:
                        info = get_sds_info(sd_in, name)
                        elements = select_elements(info, dims)
                    except (KeyError, ValueError) as e:
                        self.skip(name, e)
                        continue

                    data = read_sds(sd_in, info.name)
                    logger.debug(f"{info.name}: dims {info.dims}, layers {elements}")
                    for out_name, layer in split_layers(data, info, elements):
                        write_sds(sd_out, out_name, layer, data_type=info.data_type)
                        copy_sds_attributes(sd_in, info.name, sd_out, out_name)
                        outputs[out_name] = list(layer.shape)

                    if mosaic:
                        out_name = f"{info.name}_all"
                        tiled = mosaic_layers(data, elements)
                        write_sds(sd_out, out_name, tiled, data_type=info.data_type)
                        copy_sds_attributes(sd_in, info.name, sd_out, out_name)
                        outputs[out_name] = list(tiled.shape)

                if not outputs:
                    raise ValueError("No 3D or 4D SDS to reduce")
                if kwargs.get("copy_meta"):
                    copy_global_attributes(sd_in, sd_out)
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Wrote {len(outputs)} 2D SDS",
            output_path=str(output_path),
            metadata={"outputs": outputs, "skipped": list(self.skipped)}
        )
