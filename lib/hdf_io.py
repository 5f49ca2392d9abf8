"""HDF4 Scientific Data Set access module.

This module wraps pyhdf for the operations the SDS tools share: opening
files, resolving SDS names, reading whole SDSs or single layers, creating
output SDSs with their attributes, copying attributes and metadata, and
reading the compact observation store of MODIS L2G products.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np
from loguru import logger
from pyhdf.SD import SD, SDC

from lib.sds_layout import NO_LAYER, SdsInfo, check_layer, extract_layer
from lib.sds_names import L2G_COMPACT_SUFFIX, L2G_FIRST_SUFFIX, expand_sds_names, parse_sds_name

FILL_ATTR = "_FillValue"
RANGE_ATTR = "valid_range"
L2G_NOBS_SDS = "num_observations"
L2G_NADD_SDS = "nadd_obs_row"

# HDF type code -> (type name, numpy dtype)
HDF_TYPES: Dict[int, Tuple[str, Any]] = {
    SDC.CHAR8: ("CHAR8", np.dtype("S1")),
    SDC.UCHAR8: ("UCHAR8", np.uint8),
    SDC.INT8: ("INT8", np.int8),
    SDC.UINT8: ("UINT8", np.uint8),
    SDC.INT16: ("INT16", np.int16),
    SDC.UINT16: ("UINT16", np.uint16),
    SDC.INT32: ("INT32", np.int32),
    SDC.UINT32: ("UINT32", np.uint32),
    SDC.FLOAT32: ("FLOAT32", np.float32),
    SDC.FLOAT64: ("FLOAT64", np.float64),
}

NUMPY_TO_HDF: Dict[Any, int] = {
    np.dtype(np.int8): SDC.INT8,
    np.dtype(np.uint8): SDC.UINT8,
    np.dtype(np.int16): SDC.INT16,
    np.dtype(np.uint16): SDC.UINT16,
    np.dtype(np.int32): SDC.INT32,
    np.dtype(np.uint32): SDC.UINT32,
    np.dtype(np.float32): SDC.FLOAT32,
    np.dtype(np.float64): SDC.FLOAT64,
}

NAME_TO_HDF: Dict[str, int] = {name: code for code, (name, _) in HDF_TYPES.items()}

_MODES = {
    "r": SDC.READ,
    "a": SDC.WRITE,
    "w": SDC.WRITE | SDC.CREATE | SDC.TRUNC,
}

PathLike = Union[str, Path]


@contextmanager
def open_sd(path: PathLike, mode: str = "r") -> Iterator[SD]:
    """Open an HDF4 file and make sure it is closed on exit.

    Args:
        path (PathLike): HDF file path
        mode (str): "r" to read, "a" to update, "w" to create or truncate

    Yields:
        SD: Open pyhdf scientific dataset interface
    """
    sd = SD(str(path), _MODES[mode])
    try:
        yield sd
    finally:
        sd.end()


def hdf_type_name(data_type: int) -> str:
    return HDF_TYPES[data_type][0]


def hdf_dtype(data_type: int) -> np.dtype:
    return np.dtype(HDF_TYPES[data_type][1])


def hdf_type_of(dtype: Any) -> int:
    """Return the HDF type code matching a numpy dtype."""
    try:
        return NUMPY_TO_HDF[np.dtype(dtype)]
    except KeyError:
        raise ValueError(f"No HDF type for numpy dtype {np.dtype(dtype)}")


def parse_type_name(name: str) -> int:
    """Return the HDF type code for a name such as "INT16"."""
    key = name.strip().upper()
    if key not in NAME_TO_HDF or key in ("CHAR8", "UCHAR8"):
        raise ValueError(f"Unsupported data type: {name}")
    return NAME_TO_HDF[key]


def default_fill(dtype: Any) -> Union[int, float]:
    """Return the default fill value of a numeric dtype.

    Note:
        Signed integers use their minimum, unsigned integers their maximum
        and floating point types -999.0.
    """
    dtype = np.dtype(dtype)
    if dtype.kind == "f":
        return -999.0
    info = np.iinfo(dtype)
    return int(info.min) if dtype.kind == "i" else int(info.max)


def dtype_range(dtype: Any) -> Tuple[Union[int, float], Union[int, float]]:
    dtype = np.dtype(dtype)
    if dtype.kind == "f":
        info = np.finfo(dtype)
    else:
        info = np.iinfo(dtype)
    return info.min, info.max


def _scalar(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def list_sds(sd: SD) -> List[str]:
    """Return SDS names in file index order."""
    datasets = sd.datasets()
    return sorted(datasets, key=lambda name: datasets[name][3])


def resolve_sds_name(sd: SD, name: str) -> str:
    """Find the stored SDS name matching a user-supplied name.

    Args:
        sd (SD): Open HDF file
        name (str): SDS name, possibly with a layer extension or in the wrong case

    Returns:
        str: The exact stored SDS name

    Raises:
        KeyError: If no SDS matches
    """
    names = sd.datasets()
    if name in names:
        return name
    base, _, _ = parse_sds_name(name)
    if base in names:
        return base
    by_lower = {stored.lower(): stored for stored in names}
    for candidate in (name, base):
        if candidate.lower() in by_lower:
            return by_lower[candidate.lower()]
    raise KeyError(f"SDS {name} not found")


def get_sds_info(sd: SD, name: str) -> SdsInfo:
    """Read the description of an SDS.

    Args:
        sd (SD): Open HDF file
        name (str): SDS name, resolved with resolve_sds_name

    Returns:
        SdsInfo: Name, type, dimensions, fill value and valid range
    """
    stored = resolve_sds_name(sd, name)
    sds = sd.select(stored)
    try:
        sds_name, rank, dims, data_type, nattr = sds.info()
        if rank == 1:
            dims = [dims]
        attributes = sds.attributes()
        dim_names = [sds.dim(i).info()[0] for i in range(rank)]
    finally:
        sds.endaccess()

    valid_range = attributes.get(RANGE_ATTR)
    if valid_range is not None and len(valid_range) == 2:
        valid_range = (valid_range[0], valid_range[1])
    else:
        valid_range = None

    return SdsInfo(
        name=sds_name,
        data_type=data_type,
        dims=tuple(int(d) for d in dims),
        fill_value=_scalar(attributes.get(FILL_ATTR)),
        valid_range=valid_range,
        nattr=nattr,
        dim_names=dim_names,
        attributes=attributes,
    )


def read_sds(sd: SD, name: str) -> np.ndarray:
    """Read the whole of an SDS."""
    sds = sd.select(resolve_sds_name(sd, name))
    try:
        return np.asarray(sds.get())
    finally:
        sds.endaccess()


def read_sds_layer(sd: SD, spec: str) -> Tuple[SdsInfo, int, int, np.ndarray]:
    """Read an SDS, or one layer of it when the name carries an extension.

    Args:
        sd (SD): Open HDF file
        spec (str): SDS name such as "sur_refl_b02" or "Surface_Refl.1.2"

    Returns:
        Tuple[SdsInfo, int, int, np.ndarray]: SDS info, 0-based n and m, and
            the data (2D when a layer is selected)
    """
    if spec in sd.datasets():
        base, n, m = spec, NO_LAYER, NO_LAYER
    else:
        base, n, m = parse_sds_name(spec)
    info = get_sds_info(sd, base)
    check_layer(info.dims, n, m)
    data = read_sds(sd, info.name)
    if n != NO_LAYER:
        data = extract_layer(data, n, m)
    logger.debug(f"Read {spec}: dims={info.dims} layer=({n}, {m}) shape={data.shape}")
    return info, n, m, data


def write_sds(sd: SD, name: str, array: np.ndarray,
              fill_value: Optional[Any] = None,
              attrs: Optional[Dict[str, Any]] = None,
              data_type: Optional[int] = None,
              dim_names: Optional[List[str]] = None) -> None:
    """Create an SDS and write its data and attributes.

    Args:
        sd (SD): HDF file open for writing
        name (str): Output SDS name
        array (np.ndarray): Data to write
        fill_value (Optional[Any]): Value for the _FillValue attribute
        attrs (Optional[Dict[str, Any]]): Extra attributes; values are either
            plain values or (hdf type, value) tuples
        data_type (Optional[int]): HDF type code, derived from the array if omitted
        dim_names (Optional[List[str]]): Dimension names to set

    Note:
        The array is cast to the numpy dtype of the HDF type before writing.
    """
    code = data_type if data_type is not None else hdf_type_of(array.dtype)
    data = np.ascontiguousarray(array, dtype=hdf_dtype(code))
    sds = sd.create(name, code, list(data.shape))
    try:
        if fill_value is not None:
            sds.setfillvalue(data.dtype.type(fill_value).item())
        if dim_names:
            for i, dim_name in enumerate(dim_names):
                sds.dim(i).setname(dim_name)
        sds[:] = data
        for attr_name, value in (attrs or {}).items():
            if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], int):
                sds.attr(attr_name).set(value[0], value[1])
            else:
                setattr(sds, attr_name, value)
    finally:
        sds.endaccess()
    logger.debug(f"Wrote SDS {name} shape={data.shape} type={hdf_type_name(code)}")


def copy_sds_attributes(src_sd: SD, src_name: str, dst_sd: SD, dst_name: str,
                        skip: Tuple[str, ...] = ()) -> int:
    """Copy every attribute of one SDS onto another, keeping attribute types.

    Returns:
        int: Number of attributes copied
    """
    src = src_sd.select(resolve_sds_name(src_sd, src_name))
    dst = dst_sd.select(dst_name)
    copied = 0
    try:
        for attr_name, (value, _, attr_type, _) in src.attributes(full=1).items():
            if attr_name in skip:
                continue
            dst.attr(attr_name).set(attr_type, value)
            copied += 1
    finally:
        dst.endaccess()
        src.endaccess()
    return copied


def copy_global_attributes(src_sd: SD, dst_sd: SD) -> int:
    """Copy file-level attributes (including the ECS metadata blocks) verbatim.

    Returns:
        int: Number of attributes copied
    """
    copied = 0
    for attr_name, (value, _, attr_type, _) in src_sd.attributes(full=1).items():
        dst_sd.attr(attr_name).set(attr_type, value)
        copied += 1
    logger.debug(f"Copied {copied} global attributes")
    return copied


def describe_sds(path: PathLike) -> List[str]:
    """Describe every SDS in a file as "name (d0 x d1 ...) TYPE"."""
    lines = []
    with open_sd(path) as sd:
        datasets = sd.datasets()
        for name in list_sds(sd):
            _, shape, data_type, _ = datasets[name]
            dims = " x ".join(str(d) for d in np.atleast_1d(shape))
            lines.append(f"{name} ({dims}) {HDF_TYPES.get(data_type, (str(data_type),))[0]}")
    return lines


def sds_attributes(path: PathLike,
                   names: Optional[List[str]] = None) -> Dict[str, List[Tuple[str, Any, str]]]:
    """Read the attributes of SDSs in a file.

    Args:
        path (PathLike): HDF file path
        names (Optional[List[str]]): SDS names; all SDSs if omitted

    Returns:
        Dict[str, List[Tuple[str, Any, str]]]: Per SDS name, a list of
            (attribute name, value, type name) in attribute index order
    """
    result = {}
    with open_sd(path) as sd:
        for name in names or list_sds(sd):
            stored = resolve_sds_name(sd, name)
            sds = sd.select(stored)
            try:
                full = sds.attributes(full=1)
            finally:
                sds.endaccess()
            ordered = sorted(full.items(), key=lambda item: item[1][1])
            result[stored] = [
                (attr_name, value, HDF_TYPES.get(attr_type, (str(attr_type),))[0])
                for attr_name, (value, _, attr_type, _) in ordered
            ]
    return result


def is_l2g(sd: SD) -> bool:
    """Tell whether a file uses the L2G compact observation layout."""
    names = sd.datasets()
    return L2G_NOBS_SDS in names and L2G_NADD_SDS in names


def l2g_max_observations(sd: SD) -> int:
    return int(read_sds(sd, L2G_NOBS_SDS).max())


def read_l2g_observation(sd: SD, base: str, obs: int) -> Tuple[SdsInfo, np.ndarray]:
    """Read one observation layer of an L2G SDS.

    Args:
        sd (SD): Open L2G file
        base (str): SDS base name, e.g. "sur_refl_b01"
        obs (int): 1-based observation number

    Returns:
        Tuple[SdsInfo, np.ndarray]: Info of the first-observation SDS and the
            (rows, cols) observation layer

    Note:
        The first observation is the full SDS "<base>_1". Further observations
        live in the 1D SDS "<base>_c", packed row after row. Row r starts at
        the sum of nadd_obs_row over the preceding rows; inside a row each
        pixel holds num_observations - 1 values in column order. Pixels with
        fewer than `obs` observations are set to the fill value.
    """
    if obs < 1:
        raise ValueError(f"Observation numbers are 1-based, got {obs}")
    info = get_sds_info(sd, base + L2G_FIRST_SUFFIX)
    first = read_sds(sd, info.name)
    if obs == 1:
        return info, first

    nobs = read_sds(sd, L2G_NOBS_SDS).astype(np.int64)
    nadd = np.clip(read_sds(sd, L2G_NADD_SDS).astype(np.int64), 0, None)
    compact = read_sds(sd, base + L2G_COMPACT_SUFFIX)

    extra = np.clip(nobs - 1, 0, None)
    row_start = np.concatenate(([0], np.cumsum(nadd)[:-1]))
    pixel_start = np.cumsum(extra, axis=1) - extra
    index = row_start[:, None] + pixel_start + (obs - 2)
    valid = nobs >= obs

    fill = info.fill_value if info.fill_value is not None else default_fill(first.dtype)
    layer = np.full(first.shape, fill, dtype=first.dtype)
    layer[valid] = compact[index[valid]]
    return info, layer


def select_sds_names(sd: SD, sds_names: Optional[List[str]] = None) -> List[str]:
    """Expand requested SDS names against a file, or list every SDS when none are given."""
    if not sds_names:
        return list_sds(sd)
    return expand_sds_names(sds_names, lambda base: get_sds_info(sd, base).dims)
