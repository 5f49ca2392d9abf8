"""SDS masking processor module.

A mask is built from one or more bit tests on QA SDSs, possibly from
different files, combined left to right with AND and OR:

    file1,SDS1,0-2,4==0101,AND,*,*,4-5==10

'*' repeats the previous file or SDS name. create_mask writes the mask
itself as a uint8 SDS; mask_sds applies it to the SDSs of an input file.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import (
    FILL_ATTR,
    copy_global_attributes,
    dtype_range,
    open_sd,
    read_sds_layer,
    select_sds_names,
    write_sds,
)
from lib.sds_layout import layer_dims, restore_spatial, spatial_last
from utils.bit_utils import MaskCondition, parse_mask_condition
from utils.file_operations import prepare_output, safe_delete
from config import get_settings

settings = get_settings()

MASK_SDS_NAME = "Mask_sds"
MASK_FILL_ATTR = "Mask_FillValue"
MASK_STRING_ATTR = "Mask_String"

# Internal mask codes used when applying a mask; QA fill must differ from ON
APPLY_ON, APPLY_OFF, APPLY_FILL = 1, 0, 2

_LOGICAL = re.compile(r",\s*(AND|OR)\s*,", re.IGNORECASE)


@dataclass
class MaskTerm:
    """One bit test of a mask expression.

    Attributes:
        path (str): File holding the QA SDS
        sds (str): QA SDS name, optionally with a layer extension
        condition (MaskCondition): Parsed bit test
        logical (Optional[str]): "AND" or "OR" joining this term to the
            result so far; None for the first term
    """
    path: str
    sds: str
    condition: MaskCondition
    logical: Optional[str] = None


def parse_mask_expression(text: str) -> List[MaskTerm]:
    """Parse "file,SDS,cond[,AND|OR,file,SDS,cond...]" into mask terms.

    Args:
        text (str): Mask expression

    Returns:
        List[MaskTerm]: Terms in the order given

    Raises:
        ValueError: If a term is incomplete, its condition does not parse,
            or the first term uses '*'
    """
    parts = _LOGICAL.split(text.strip())
    terms: List[MaskTerm] = []
    path = sds = None
    logical = None
    for i, part in enumerate(parts):
        if i % 2 == 1:
            logical = part.upper()
            continue
        fields = part.split(",", 2)
        if len(fields) != 3 or not fields[2].strip():
            raise ValueError(f"Mask needs a file, an SDS and a condition: {part}")
        term_path, term_sds, condition = (field.strip() for field in fields)
        if term_path != "*":
            path = term_path
        if term_sds != "*":
            sds = term_sds
        if path is None or sds is None:
            raise ValueError(f"'*' has no previous file or SDS to repeat in {part}")
        terms.append(MaskTerm(path=path, sds=sds,
                              condition=parse_mask_condition(condition),
                              logical=logical if terms else None))
    return terms


def _mask_factor(mask_shape: Tuple[int, int], target: Tuple[int, int]) -> int:
    if mask_shape[0] > target[0] or mask_shape[1] > target[1]:
        raise ValueError(f"Mask SDS {mask_shape} is finer than the masked SDS {target}")
    if target[0] % mask_shape[0] or target[1] % mask_shape[1]:
        raise ValueError(f"Masked SDS {target} is not a multiple of mask SDS {mask_shape}")
    factor = target[0] // mask_shape[0]
    if target[1] // mask_shape[1] != factor:
        raise ValueError(f"Mask SDS {mask_shape} and SDS {target} differ by unequal factors")
    return factor


class MaskBuilder:
    """Evaluate mask terms, reading each QA SDS once."""

    def __init__(self, terms: List[MaskTerm], on_value: int, off_value: int, fill_value: int):
        self.terms = terms
        self.on_value = on_value
        self.off_value = off_value
        self.fill_value = fill_value
        self._layers: Dict[Tuple[str, str], Tuple[np.ndarray, Any]] = {}
        self._masks: Dict[Tuple[int, int], np.ndarray] = {}

    def layer(self, term: MaskTerm) -> Tuple[np.ndarray, Any]:
        key = (term.path, term.sds)
        if key not in self._layers:
            with open_sd(term.path) as sd:
                info, _, _, data = read_sds_layer(sd, term.sds)
            if data.ndim != 2:
                raise ValueError(f"Mask SDS {term.sds} must be 2D or a single layer")
            self._layers[key] = (data, info.fill_value)
            logger.debug(f"Loaded mask SDS {term.sds} from {term.path}: {data.shape}")
        return self._layers[key]

    def finest_shape(self) -> Tuple[int, int]:
        """Return the shape of the finest QA SDS in the expression."""
        shapes = [self.layer(term)[0].shape for term in self.terms]
        return max(shapes, key=lambda shape: shape[0])

    def build(self, shape: Tuple[int, int]) -> np.ndarray:
        """Build the uint8 mask for a (rows, cols) target.

        Note:
            Terms are combined strictly left to right. A fill pixel in any
            QA SDS makes the mask pixel fill.
        """
        shape = tuple(shape)
        if shape in self._masks:
            return self._masks[shape]

        selected = None
        fill = np.zeros(shape, dtype=bool)
        for term in self.terms:
            data, qa_fill = self.layer(term)
            factor = _mask_factor(data.shape, shape)
            hit = term.condition.test(data)
            is_fill = data == qa_fill if qa_fill is not None else np.zeros(data.shape, dtype=bool)
            if factor > 1:
                hit = np.repeat(np.repeat(hit, factor, axis=0), factor, axis=1)
                is_fill = np.repeat(np.repeat(is_fill, factor, axis=0), factor, axis=1)
            fill |= is_fill
            if selected is None:
                selected = hit
            elif term.logical == "AND":
                selected = selected & hit
            else:
                selected = selected | hit

        mask = np.where(selected, self.on_value, self.off_value).astype(np.uint8)
        mask[fill] = self.fill_value
        self._masks[shape] = mask
        return mask


def choose_mask_fill(dtype: np.dtype, fill: Any,
                     valid_range: Optional[Tuple[Any, Any]]) -> Any:
    """Pick a mask fill value outside the valid range and unlike the input fill.

    Args:
        dtype (np.dtype): SDS type
        fill (Any): Input fill value, or None
        valid_range (Optional[Tuple[Any, Any]]): SDS valid range, if any

    Returns:
        Any: The type maximum or minimum (or the value next to it) when it
            lies outside the valid range, else the input fill value

    Raises:
        ValueError: If no candidate fits and the SDS has no fill value
    """
    dtype = np.dtype(dtype)
    low, high = dtype_range(dtype)
    if dtype.kind == "f":
        low, high = float(low), float(high)
        candidates = [high, low]
    else:
        low, high = int(low), int(high)
        candidates = [high, high - 1, low, low + 1]
    lo, hi = valid_range if valid_range is not None else (low, high)
    for value in candidates:
        if (value < lo or value > hi) and value != fill:
            return value
    if fill is None:
        raise ValueError(f"No room for a mask fill value in {dtype.name}; give one explicitly")
    logger.warning(f"No room for a mask fill value in {dtype.name}; using the SDS fill value {fill}")
    return fill


def check_mask_fill(value: Any, fill: Any, valid_range: Optional[Tuple[Any, Any]]) -> None:
    """Reject a requested mask fill value inside the valid range.

    Raises:
        ValueError: If the value lies inside the SDS valid range
    """
    if valid_range is not None and valid_range[0] <= value <= valid_range[1]:
        raise ValueError(f"Mask fill value {value} is inside the valid range {valid_range}")
    if fill is not None and value == fill:
        logger.warning(f"Mask fill value {value} equals the SDS fill value")


def apply_mask(data: np.ndarray, mask: np.ndarray, on_value: int, fill: Any,
               mask_fill: Any) -> np.ndarray:
    """Keep SDS values where the mask is on, writing the mask fill elsewhere.

    Args:
        data (np.ndarray): SDS values, 2D or a stack of layers
        mask (np.ndarray): (rows, cols) mask
        on_value (int): Mask ON value
        fill (Any): Input fill value, kept wherever it occurs
        mask_fill (Any): Value written where the mask is not on

    Returns:
        np.ndarray: Masked values in the input layout and type
    """
    stack = spatial_last(data)
    out = np.where(mask == on_value, stack, mask_fill).astype(data.dtype)
    if fill is not None:
        out[stack == fill] = fill
    return restore_spatial(out, data.shape) if data.ndim > 2 else out


def _mask_values(kwargs: Dict[str, Any]) -> Tuple[int, int, int]:
    on_value = int(kwargs.get("on_value", settings.MASK_ON_VALUE))
    off_value = int(kwargs.get("off_value", settings.MASK_OFF_VALUE))
    fill_value = int(kwargs.get("fill_value", settings.MASK_FILL_VALUE))
    for value in (on_value, off_value, fill_value):
        if not 0 <= value <= 255:
            raise ValueError(f"Mask values must be within 0-255, got {value}")
    if on_value == off_value:
        logger.warning(f"ON and OFF values are both {on_value}; using "
                       f"{settings.MASK_ON_VALUE} and {settings.MASK_OFF_VALUE}")
        on_value, off_value = settings.MASK_ON_VALUE, settings.MASK_OFF_VALUE
    return on_value, off_value, fill_value


class CreateMaskProcessor(BaseProcessor):
    """Processor writing a mask SDS from QA bit tests."""

    name = "create_mask"

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for mask creation.

        Args:
            **kwargs: Keyword arguments containing:
                mask (str): Mask expression
                output_path (str): Output HDF file

        Returns:
            bool: True if the parameters are present and the expression parses
        """
        required = {"mask", "output_path"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        parse_mask_expression(kwargs["mask"])
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Build the mask and write it as Mask_sds.

        Args:
            **kwargs: Keyword arguments containing:
                mask (str): Mask expression
                output_path (str): Output HDF file
                on_value (int, optional): Value where the mask holds
                off_value (int, optional): Value where it does not
                fill_value (int, optional): Value where a QA SDS is fill
                copy_meta (bool, optional): Copy the attributes of the first mask file

        Returns:
            ProcessingResult: Mask shape and the ON/OFF pixel counts
        """
        terms = parse_mask_expression(kwargs["mask"])
        on_value, off_value, fill_value = _mask_values(kwargs)
        output_path = prepare_output(kwargs["output_path"])
        logger.info(f"Creating mask from {len(terms)} condition(s)")

        builder = MaskBuilder(terms, on_value, off_value, fill_value)
        try:
            mask = builder.build(builder.finest_shape())
            with open_sd(output_path, "w") as sd_out:
                write_sds(sd_out, MASK_SDS_NAME, mask, fill_value=fill_value,
                          attrs={MASK_STRING_ATTR: kwargs["mask"]})
                if kwargs.get("copy_meta"):
                    with open_sd(terms[0].path) as sd_in:
                        copy_global_attributes(sd_in, sd_out)
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Created {MASK_SDS_NAME} {mask.shape}",
            output_path=str(output_path),
            metadata={
                "outputs": {MASK_SDS_NAME: list(mask.shape)},
                "on": int((mask == on_value).sum()),
                "off": int((mask == off_value).sum()),
                "fill": int((mask == fill_value).sum()),
            }
        )


class MaskSdsProcessor(BaseProcessor):
    """Processor applying a mask to the SDSs of a file."""

    name = "mask_sds"

    async def validate_input(self, **kwargs) -> bool:
        required = {"input_path", "output_path", "mask"}
        if not all(key in kwargs for key in required):
            logger.error(f"Missing parameters: {required - set(kwargs)}")
            return False
        parse_mask_expression(kwargs["mask"])
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Mask every selected SDS or layer.

        Args:
            **kwargs: Keyword arguments containing:
                input_path (str): Input HDF file
                output_path (str): Output HDF file
                mask (str): Mask expression
                sds_names (List[str], optional): SDSs or layers; all SDSs if omitted
                fill_value (float, optional): Mask fill value for every SDS
                copy_meta (bool, optional): Copy the file attributes

        Returns:
            ProcessingResult: Output SDS dimensions, mask fill values and
                skipped SDS names
        """
        input_path = kwargs["input_path"]
        mask_text = kwargs["mask"]
        terms = parse_mask_expression(mask_text)
        requested_fill = kwargs.get("fill_value")
        output_path = prepare_output(kwargs["output_path"])
        on_value = APPLY_ON
        builder = MaskBuilder(terms, APPLY_ON, APPLY_OFF, APPLY_FILL)
        logger.info(f"Masking {input_path} with {mask_text}")

        outputs: Dict[str, List[int]] = {}
        mask_fills: Dict[str, Any] = {}
        try:
            with open_sd(input_path) as sd_in, open_sd(output_path, "w") as sd_out:
                for name in select_sds_names(sd_in, kwargs.get("sds_names")):
                    try:
                        info, _, _, data = read_sds_layer(sd_in, name)
                        mask = builder.build(layer_dims(data.shape))
                        if requested_fill is not None:
                            check_mask_fill(requested_fill, info.fill_value, info.valid_range)
                            mask_fill = requested_fill
                        else:
                            mask_fill = choose_mask_fill(data.dtype, info.fill_value, info.valid_range)
                    except (KeyError, ValueError) as e:
                        self.skip(name, e)
                        continue

                    logger.debug(f"{name}: mask fill {mask_fill}")
                    out = apply_mask(data, mask, on_value, info.fill_value, mask_fill)
                    fill = info.fill_value if info.fill_value is not None else mask_fill
                    write_sds(sd_out, name, out, data_type=info.data_type, attrs={
                        FILL_ATTR: (info.data_type, [out.dtype.type(fill).item()]),
                        MASK_FILL_ATTR: (info.data_type, [out.dtype.type(mask_fill).item()]),
                        MASK_STRING_ATTR: mask_text,
                    })
                    outputs[name] = list(out.shape)
                    mask_fills[name] = mask_fill

                if not outputs:
                    raise ValueError("No SDS could be masked")
                if kwargs.get("copy_meta"):
                    copy_global_attributes(sd_in, sd_out)
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Masked {len(outputs)} SDS",
            output_path=str(output_path),
            metadata={"outputs": outputs, "mask_fill": mask_fills, "skipped": list(self.skipped)}
        )
