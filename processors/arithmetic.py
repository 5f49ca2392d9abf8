"""SDS arithmetic processor module.

Evaluates simple pixelwise expressions between two SDSs, which may come
from different files and have different resolutions. An expression reads

    sds1,file1,op,sds2,file2[,dt,f_nop1,f_nop2,f_nop3,f_ovf]

where op is one of + - * / |. Division yields a/b*10000 and | yields the
absolute difference. Every trailing field accepts '*' for its default.
All expressions write to the same output file.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import dtype_range, hdf_dtype, open_sd, parse_type_name, read_sds_layer, write_sds
from lib.sds_layout import SdsInfo, layer_dims, layer_sizes, restore_spatial, spatial_last
from utils.file_operations import prepare_output, safe_delete

OPERATORS = ("+", "-", "*", "/", "|")
DIVIDE_SCALE = 10000


@dataclass
class MathExpression:
    """A parsed arithmetic expression.

    Attributes:
        sds1 (str): First operand SDS name, optionally with a layer extension
        file1 (str): File holding the first operand
        op (str): Operator
        sds2 (str): Second operand SDS name
        file2 (str): File holding the second operand
        data_type (Optional[str]): Output type name, defaults to the sds1 type
        nop1 (Optional[float]): No-operation value of sds1, defaults to its fill
        nop2 (Optional[float]): No-operation value of sds2, defaults to its fill
        nop3 (Optional[float]): Output value at no-operation pixels, defaults to the sds1 fill
        ovf (Optional[float]): Output value on integer overflow, defaults to nop3
    """
    sds1: str
    file1: str
    op: str
    sds2: str
    file2: str
    data_type: Optional[str] = None
    nop1: Optional[float] = None
    nop2: Optional[float] = None
    nop3: Optional[float] = None
    ovf: Optional[float] = None

    @property
    def output_name(self) -> str:
        return f"{self.sds1}{self.op}{self.sds2}"


def _optional_number(text: str) -> Optional[float]:
    text = text.strip()
    if text in ("", "*"):
        return None
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"Invalid fill value: {text}")


def parse_expression(text: str) -> MathExpression:
    """Parse "sds1,file1,op,sds2,file2[,dt,f_nop1,f_nop2,f_nop3,f_ovf]".

    Raises:
        ValueError: If the expression has the wrong number of fields or an
            unknown operator
    """
    fields = [field.strip() for field in text.split(",")]
    if len(fields) < 5 or len(fields) > 10:
        raise ValueError(f"Expression needs 5 to 10 comma separated fields: {text}")
    fields += ["*"] * (10 - len(fields))
    sds1, file1, op, sds2, file2, dt, nop1, nop2, nop3, ovf = fields
    if op not in OPERATORS:
        raise ValueError(f"Unknown operator {op!r}, expected one of {' '.join(OPERATORS)}")
    if not sds1 or not sds2 or not file1 or not file2:
        raise ValueError(f"Expression is missing an SDS or file name: {text}")
    return MathExpression(
        sds1=sds1, file1=file1, op=op, sds2=sds2, file2=file2,
        data_type=None if dt in ("", "*") else dt,
        nop1=_optional_number(nop1),
        nop2=_optional_number(nop2),
        nop3=_optional_number(nop3),
        ovf=_optional_number(ovf),
    )


def resolution_factor(dims1: Tuple[int, ...], dims2: Tuple[int, ...]) -> Tuple[int, int]:
    """Compare the spatial resolution of two operands.

    Args:
        dims1 (Tuple[int, ...]): Dimensions of the first operand
        dims2 (Tuple[int, ...]): Dimensions of the second operand

    Returns:
        Tuple[int, int]: (bd, factor) where bd is 0 for equal sizes, 1 when
            the first operand is finer and 2 when the second is finer

    Raises:
        ValueError: If ranks or layer sizes differ, or the spatial sizes are
            not integer multiples with one common factor
    """
    if len(dims1) != len(dims2):
        raise ValueError(f"SDS ranks differ: {len(dims1)} and {len(dims2)}")
    if len(dims1) > 2 and layer_sizes(dims1) != layer_sizes(dims2):
        raise ValueError(f"SDS layer dimensions differ: {dims1} and {dims2}")
    r1, c1 = layer_dims(dims1)
    r2, c2 = layer_dims(dims2)
    if (r1, c1) == (r2, c2):
        return 0, 1
    bd = 1 if r1 > r2 else 2
    big, small = ((r1, c1), (r2, c2)) if bd == 1 else ((r2, c2), (r1, c1))
    if big[0] % small[0] or big[1] % small[1]:
        raise ValueError("Input SDS dimensions are not integral multiples")
    if big[0] // small[0] != big[1] // small[1]:
        raise ValueError("Input SDS dimensions are not of the same multiple")
    return bd, big[0] // small[0]


def _upsample(stack: np.ndarray, factor: int) -> np.ndarray:
    if factor == 1:
        return stack
    return np.repeat(np.repeat(stack, factor, axis=-2), factor, axis=-1)


def _fill_of(info: SdsInfo, override: Optional[float]) -> Optional[Any]:
    return override if override is not None else info.fill_value


def compute(a: np.ndarray, b: np.ndarray, op: str) -> np.ndarray:
    """Apply an operator to two float64 arrays."""
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            return a.astype(np.float32) / b.astype(np.float32) * DIVIDE_SCALE
        return np.abs(np.trunc(a - b))


def evaluate_expression(expr: MathExpression, info1: SdsInfo, data1: np.ndarray,
                        info2: SdsInfo, data2: np.ndarray) -> Tuple[np.ndarray, int, Any]:
    """Evaluate an expression on two operand arrays.

    Args:
        expr (MathExpression): Parsed expression
        info1 (SdsInfo): First operand description
        data1 (np.ndarray): First operand data, after layer selection
        info2 (SdsInfo): Second operand description
        data2 (np.ndarray): Second operand data, after layer selection

    Returns:
        Tuple[np.ndarray, int, Any]: Result laid out like the finer operand,
            its HDF type code and its fill value

    Note:
        Integer results are truncated toward zero. Integer results outside
        the output type range are replaced by the overflow value.
    """
    bd, factor = resolution_factor(data1.shape, data2.shape)
    out_type = parse_type_name(expr.data_type) if expr.data_type else info1.data_type
    out_dtype = hdf_dtype(out_type)

    nop1 = _fill_of(info1, expr.nop1)
    nop2 = _fill_of(info2, expr.nop2)
    nop3 = expr.nop3 if expr.nop3 is not None else info1.fill_value
    if nop3 is None:
        nop3 = 0
    ovf = expr.ovf if expr.ovf is not None else nop3

    a = spatial_last(data1)
    b = spatial_last(data2)
    no_op_a = a == nop1 if nop1 is not None else np.zeros(a.shape, dtype=bool)
    no_op_b = b == nop2 if nop2 is not None else np.zeros(b.shape, dtype=bool)
    if bd == 1:
        b, no_op_b = _upsample(b, factor), _upsample(no_op_b, factor)
    elif bd == 2:
        a, no_op_a = _upsample(a, factor), _upsample(no_op_a, factor)

    result = compute(a.astype(np.float64), b.astype(np.float64), expr.op)
    no_op = no_op_a | no_op_b

    if out_dtype.kind == "f":
        out = np.where(no_op, nop3, result)
    else:
        low, high = dtype_range(out_dtype)
        with np.errstate(invalid="ignore"):
            overflow = ~np.isfinite(result) | (result < low) | (result > high)
        result = np.where(overflow, ovf, np.trunc(np.nan_to_num(result)))
        out = np.where(no_op, nop3, result)

    like = data1.shape if bd != 2 else data2.shape
    out = out.astype(out_dtype)
    if len(like) > 2:
        out = restore_spatial(out, like)
    return out, out_type, nop3


class ArithmeticProcessor(BaseProcessor):
    """Processor for pixelwise arithmetic between SDSs."""

    name = "math_sds"

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for SDS arithmetic.

        Args:
            **kwargs: Keyword arguments containing:
                expressions (List[str]): Arithmetic expressions
                output_path (str): Output HDF file

        Returns:
            bool: True if the parameters are present and every expression parses
        """
        if not kwargs.get("expressions") or "output_path" not in kwargs:
            logger.error("Arithmetic needs at least one expression and an output file")
            return False
        for text in kwargs["expressions"]:
            parse_expression(text)
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Evaluate each expression and write one output SDS per expression.

        Args:
            **kwargs: Keyword arguments containing:
                expressions (List[str]): Arithmetic expressions
                output_path (str): Output HDF file

        Returns:
            ProcessingResult: Output SDS dimensions and skipped expressions
        """
        output_path = prepare_output(kwargs["output_path"])
        expressions = [parse_expression(text) for text in kwargs["expressions"]]

        outputs: Dict[str, List[int]] = {}
        try:
            with open_sd(output_path, "w") as sd_out:
                for expr in expressions:
                    logger.info(f"Computing {expr.output_name}")
                    try:
                        with open_sd(expr.file1) as sd1:
                            info1, _, _, data1 = read_sds_layer(sd1, expr.sds1)
                        with open_sd(expr.file2) as sd2:
                            info2, _, _, data2 = read_sds_layer(sd2, expr.sds2)
                        out, out_type, fill = evaluate_expression(expr, info1, data1, info2, data2)
                    except (KeyError, ValueError) as e:
                        self.skip(expr.output_name, e)
                        continue

                    write_sds(sd_out, expr.output_name, out, fill_value=fill, data_type=out_type)
                    outputs[expr.output_name] = list(out.shape)
                    logger.debug(f"{expr.output_name}: {out.shape}")

            if not outputs:
                raise ValueError("No expression could be evaluated")
        except Exception:
            safe_delete(output_path)
            raise

        return ProcessingResult(
            status="success",
            message=f"Computed {len(outputs)} SDS",
            output_path=str(output_path),
            metadata={"outputs": outputs, "skipped": list(self.skipped)}
        )
