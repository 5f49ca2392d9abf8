"""N-dimensional SDS layout and offset arithmetic.

MODIS Land products store 3D and 4D Scientific Data Sets in one of two
physical orderings:

- BSQ (band sequential): the layer dimensions lead and the spatial
  (rows, cols) dimensions are the last two, e.g. (bands, rows, cols).
- Row interleaved: the spatial dimensions lead and the layer dimensions
  trail, e.g. (rows, cols, bands).

The two are told apart by comparing the first and last dimension sizes.
Every tool reads data one "row-line" at a time: all the elements of a
single spatial row across every layer, flattened in storage order. A
single layer is then picked out of that buffer with a start index and a
stride. This module holds those formulas and a few numpy helpers built
on them.
"""

from dataclasses import dataclass, field
from functools import reduce
from operator import mul
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

NO_LAYER = -1


@dataclass
class SdsInfo:
    """Description of a single Scientific Data Set.

    Attributes:
        name (str): SDS name as stored in the file
        data_type (int): HDF numeric type code
        dims (Tuple[int, ...]): Dimension sizes, rank 2 to 4
        fill_value (Optional[Any]): Value of the _FillValue attribute, if set
        valid_range (Optional[Tuple[Any, Any]]): Value of the valid_range attribute, if set
        nattr (int): Number of SDS attributes
        dim_names (List[str]): Dimension names in dimension order
        attributes (Dict[str, Any]): Raw SDS attributes
    """
    name: str
    data_type: int
    dims: Tuple[int, ...]
    fill_value: Optional[Any] = None
    valid_range: Optional[Tuple[Any, Any]] = None
    nattr: int = 0
    dim_names: List[str] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def rank(self) -> int:
        return len(self.dims)

    @property
    def bsq(self) -> bool:
        return is_bsq(self.dims)

    @property
    def layer_dims(self) -> Tuple[int, int]:
        return layer_dims(self.dims)


def _product(values: Sequence[int]) -> int:
    return reduce(mul, values, 1)


def is_bsq(dims: Sequence[int]) -> bool:
    """Check whether an SDS is stored band sequential.

    Args:
        dims (Sequence[int]): SDS dimension sizes

    Returns:
        bool: True for rank 2 or when the first dimension is smaller than the last
    """
    return len(dims) == 2 or dims[0] < dims[-1]


def spatial_axes(dims: Sequence[int]) -> Tuple[int, int]:
    """Return the (row, column) axis numbers of an SDS."""
    rank = len(dims)
    if rank < 2:
        raise ValueError(f"SDS rank must be at least 2, got {rank}")
    if rank > 2 and is_bsq(dims):
        return rank - 2, rank - 1
    return 0, 1


def layer_axes(dims: Sequence[int]) -> Tuple[int, ...]:
    """Return the non-spatial axis numbers of an SDS, in dimension order."""
    spatial = spatial_axes(dims)
    return tuple(axis for axis in range(len(dims)) if axis not in spatial)


def layer_dims(dims: Sequence[int]) -> Tuple[int, int]:
    """Return the spatial (rows, cols) sizes of an SDS."""
    row_axis, col_axis = spatial_axes(dims)
    return dims[row_axis], dims[col_axis]


def layer_sizes(dims: Sequence[int]) -> Tuple[int, ...]:
    """Return the sizes of the non-spatial dimensions of an SDS."""
    return tuple(dims[axis] for axis in layer_axes(dims))


def replace_spatial(dims: Sequence[int], nrows: int, ncols: int) -> Tuple[int, ...]:
    """Return a copy of dims with the spatial sizes replaced."""
    row_axis, col_axis = spatial_axes(dims)
    out = list(dims)
    out[row_axis] = nrows
    out[col_axis] = ncols
    return tuple(out)


def check_layer(dims: Sequence[int], n: int = NO_LAYER, m: int = NO_LAYER) -> None:
    """Validate 0-based layer indices against the SDS dimensions.

    Args:
        dims (Sequence[int]): SDS dimension sizes
        n (int): Index into the first layer dimension, or -1
        m (int): Index into the second layer dimension, or -1

    Raises:
        ValueError: If the selection does not fit the SDS rank or sizes

    Note:
        An m index without n selects no layer.
    """
    rank = len(dims)
    if n == NO_LAYER:
        return
    if rank == 2:
        raise ValueError("A layer cannot be selected from a 2D SDS")
    sizes = layer_sizes(dims)
    if rank == 3 and m != NO_LAYER:
        raise ValueError("A 3D SDS takes a single layer index")
    if rank == 4 and m == NO_LAYER:
        raise ValueError("A 4D SDS layer needs two layer indices")
    if not 0 <= n < sizes[0]:
        raise ValueError(f"Layer index {n + 1} out of range 1-{sizes[0]}")
    if rank == 4 and not 0 <= m < sizes[1]:
        raise ValueError(f"Layer index {m + 1} out of range 1-{sizes[1]}")


def compute_start_offset(dims: Sequence[int], n: int = NO_LAYER,
                         m: int = NO_LAYER) -> Tuple[int, int]:
    """Compute where a layer starts in a row-line buffer and its column stride.

    Args:
        dims (Sequence[int]): SDS dimension sizes
        n (int): 0-based index into the first layer dimension, or -1
        m (int): 0-based index into the second layer dimension, or -1

    Returns:
        Tuple[int, int]: (st_c, offset) such that column j of the layer is
            element st_c + j * offset of the row-line buffer

    Note:
        Without a layer selection (n is -1) the whole row-line is walked
        with stride 1, which is also the answer for any rank 2 SDS. An n
        index alone on a 4D SDS gives the start and stride of the first
        layer dimension only; reading a 4D layer still needs both indices.
    """
    rank = len(dims)
    if rank == 2 or n == NO_LAYER:
        return 0, 1
    if rank == 4 and m == NO_LAYER:
        size = layer_sizes(dims)[0]
        if not 0 <= n < size:
            raise ValueError(f"Layer index {n + 1} out of range 1-{size}")
    else:
        check_layer(dims, n, m)
    last = dims[-1]
    bsq = is_bsq(dims)
    if m == NO_LAYER:
        if bsq:
            return n * last, 1
        return n, last
    if bsq:
        return n * last * dims[1] + m * last, 1
    return n * last + m, last * dims[rank - 2]


def compute_ndata(dims: Sequence[int]) -> int:
    """Return the number of elements in one row-line buffer."""
    rank = len(dims)
    if rank == 2:
        return dims[1]
    if is_bsq(dims):
        return dims[-1] * _product(dims[:rank - 2])
    return dims[1] * _product(dims[2:])


def compute_nrows_ncols(dims: Sequence[int]) -> Tuple[int, int]:
    """Return the (rows, row-line length) shape of the row-line view."""
    rows, _ = layer_dims(dims)
    return rows, compute_ndata(dims)


def get_edge(dims: Sequence[int]) -> Tuple[int, ...]:
    """Return the edge (count) tuple that reads one row-line."""
    row_axis, _ = spatial_axes(dims)
    edge = list(dims)
    edge[row_axis] = 1
    return tuple(edge)


def get_start(dims: Sequence[int], row: int) -> Tuple[int, ...]:
    """Return the start tuple of row-line `row`."""
    row_axis, _ = spatial_axes(dims)
    start = [0] * len(dims)
    start[row_axis] = row
    return tuple(start)


def get_sds_param(dims: Sequence[int], n: int = NO_LAYER,
                  m: int = NO_LAYER) -> Tuple[int, Tuple[int, ...]]:
    """Return the rank and dimensions seen after an optional layer selection.

    Args:
        dims (Sequence[int]): SDS dimension sizes
        n (int): 0-based index into the first layer dimension, or -1
        m (int): 0-based index into the second layer dimension, or -1

    Returns:
        Tuple[int, Tuple[int, ...]]: (rank, dims); a selected layer is always
            rank 2 with the spatial sizes; m without n selects no layer
    """
    if n == NO_LAYER:
        return len(dims), tuple(dims)
    return 2, layer_dims(dims)


def row_lines(array: np.ndarray) -> np.ndarray:
    """View an SDS array as a (rows, row-line length) matrix."""
    dims = array.shape
    rows, ndata = compute_nrows_ncols(dims)
    row_axis, _ = spatial_axes(dims)
    if row_axis != 0:
        array = np.moveaxis(array, row_axis, 0)
    return array.reshape(rows, ndata)


def from_row_lines(lines: np.ndarray, dims: Sequence[int]) -> np.ndarray:
    """Rebuild an SDS array of shape `dims` from its row-line matrix."""
    rank = len(dims)
    row_axis, _ = spatial_axes(dims)
    if row_axis == 0:
        return lines.reshape(tuple(dims))
    moved = (dims[row_axis],) + tuple(dims[:rank - 2]) + (dims[-1],)
    return np.moveaxis(lines.reshape(moved), 0, row_axis)


def _layer_columns(dims: Sequence[int], n: int, m: int) -> slice:
    st_c, offset = compute_start_offset(dims, n, m)
    _, ncols = layer_dims(dims)
    return slice(st_c, st_c + offset * (ncols - 1) + 1, offset)


def extract_layer(array: np.ndarray, n: int = NO_LAYER,
                  m: int = NO_LAYER) -> np.ndarray:
    """Gather one 2D layer of an SDS array through its row-line view.

    Args:
        array (np.ndarray): SDS data
        n (int): 0-based index into the first layer dimension, or -1
        m (int): 0-based index into the second layer dimension, or -1

    Returns:
        np.ndarray: (rows, cols) layer

    Raises:
        ValueError: If no layer is selected on an SDS of rank above 2
    """
    if array.ndim == 2:
        return array
    if n == NO_LAYER:
        raise ValueError(f"A layer must be selected from a {array.ndim}D SDS")
    check_layer(array.shape, n, m)
    lines = row_lines(array)
    return lines[:, _layer_columns(array.shape, n, m)]


def insert_layer(array: np.ndarray, layer: np.ndarray, n: int = NO_LAYER,
                 m: int = NO_LAYER) -> np.ndarray:
    """Return a copy of `array` with one 2D layer replaced."""
    if array.ndim == 2:
        return np.array(layer, dtype=array.dtype)
    if n == NO_LAYER:
        raise ValueError(f"A layer must be selected from a {array.ndim}D SDS")
    check_layer(array.shape, n, m)
    lines = row_lines(array).copy()
    lines[:, _layer_columns(array.shape, n, m)] = layer
    return from_row_lines(lines, array.shape)


def spatial_last(array: np.ndarray) -> np.ndarray:
    """Move the spatial axes of an SDS array to the end: (..., rows, cols)."""
    row_axis, col_axis = spatial_axes(array.shape)
    return np.moveaxis(array, (row_axis, col_axis), (-2, -1))


def restore_spatial(array: np.ndarray, like_dims: Sequence[int]) -> np.ndarray:
    """Undo spatial_last for an array laid out like `like_dims`."""
    row_axis, col_axis = spatial_axes(like_dims)
    return np.moveaxis(array, (-2, -1), (row_axis, col_axis))
