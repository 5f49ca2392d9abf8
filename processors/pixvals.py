"""Pixel value reader processor module.

Reads SDS values at (col, row) locations from one or more files. MODIS
Land tiles mix 1km, 500m and 250m SDSs, so a location is given at a
reference resolution and scaled to each SDS; sub-pixel offsets pick one
of the finer pixels covered by the reference pixel:

    100.0.1,200.0.1 at 1km -> 1km (100, 200), 500m (200, 400), 250m (401, 801)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from processors.base import BaseProcessor, ProcessingResult
from lib.hdf_io import (
    L2G_NADD_SDS,
    get_sds_info,
    is_l2g,
    l2g_max_observations,
    list_sds,
    open_sd,
    read_l2g_observation,
    read_sds,
)
from lib.sds_layout import layer_dims, spatial_last
from lib.sds_names import L2G_COMPACT_SUFFIX, L2G_FIRST_SUFFIX, l2g_base_names
from utils.file_operations import check_input_files

# Tile rows of each MODIS Land resolution
RESOLUTION_ROWS: Dict[str, int] = {
    "1km": 1200,
    "hkm": 2400,
    "qkm": 4800,
}


@dataclass
class PixelLocation:
    """A (col, row) location with optional sub-pixel offsets.

    Attributes:
        col (int): 0-based column at the reference resolution
        row (int): 0-based row at the reference resolution
        col_offsets (List[int]): Column offset (0 or 1) per resolution doubling
        row_offsets (List[int]): Row offset (0 or 1) per resolution doubling
    """
    col: int
    row: int
    col_offsets: List[int] = field(default_factory=list)
    row_offsets: List[int] = field(default_factory=list)


def _parse_axis(text: str) -> Tuple[int, List[int]]:
    parts = text.strip().split(".")
    if not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid pixel coordinate: {text}")
    offsets = [int(part) for part in parts[1:]]
    if any(offset > 1 for offset in offsets):
        raise ValueError(f"Sub-pixel offsets must be 0 or 1: {text}")
    return int(parts[0]), offsets


def parse_location(text: str) -> PixelLocation:
    """Parse "col[.cs[.cs]],row[.rs[.rs]]"; a space may replace the comma."""
    parts = text.replace(",", " ").split()
    if len(parts) != 2:
        raise ValueError(f"Expected col,row: {text}")
    col, col_offsets = _parse_axis(parts[0])
    row, row_offsets = _parse_axis(parts[1])
    return PixelLocation(col=col, row=row, col_offsets=col_offsets, row_offsets=row_offsets)


def read_locations(path: str) -> List[PixelLocation]:
    """Read one location per non-empty line of a coordinates file."""
    with open(path) as f:
        return [parse_location(line) for line in f if line.strip()]


def scale_coordinate(value: int, offsets: List[int], ref_rows: int, sds_rows: int) -> int:
    """Map a reference coordinate onto an SDS of another resolution.

    Args:
        value (int): Coordinate at the reference resolution
        offsets (List[int]): Sub-pixel offsets, one per doubling
        ref_rows (int): Rows of the reference resolution
        sds_rows (int): Rows of the SDS

    Returns:
        int: Coordinate in the SDS

    Note:
        Power of two refinements consume one offset per doubling, missing
        offsets counting as 0. Other integer factors use the first offset
        only. Coarser SDSs divide the coordinate.
    """
    if sds_rows == ref_rows:
        return value
    if sds_rows < ref_rows:
        return value // (ref_rows // sds_rows)
    scale = sds_rows // ref_rows
    if scale & (scale - 1) == 0:
        for step in range(scale.bit_length() - 1):
            value = value * 2 + (offsets[step] if step < len(offsets) else 0)
        return value
    return value * scale + (offsets[0] if offsets else 0)


def format_value(value) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


@dataclass
class _Sds:
    """An SDS readable at pixel locations: plain, or the observations of an L2G SDS."""
    name: str
    rows: int
    cols: int
    l2g_observations: int = 0


def _file_sds(sd) -> List[_Sds]:
    """List the pixel-addressable SDSs of an open file."""
    names = list_sds(sd)
    entries = []
    l2g = is_l2g(sd)
    compact = set(l2g_base_names(names)) if l2g else set()
    nobs = l2g_max_observations(sd) if l2g else 0
    for name in names:
        if l2g and (name == L2G_NADD_SDS or name.endswith(L2G_COMPACT_SUFFIX)):
            continue
        info = get_sds_info(sd, name)
        if len(info.dims) < 2:
            continue
        rows, cols = layer_dims(info.dims)
        base = name[:-len(L2G_FIRST_SUFFIX)] if name.endswith(L2G_FIRST_SUFFIX) else None
        if base in compact:
            entries.append(_Sds(name=base, rows=rows, cols=cols, l2g_observations=nobs))
        else:
            entries.append(_Sds(name=name, rows=rows, cols=cols))
    return entries


def pixel_values(sd, entry: _Sds, locations: List[Tuple[int, int]]) -> List[List]:
    """Read the values of one SDS at (col, row) locations, every layer in order."""
    if entry.l2g_observations:
        layers = [read_l2g_observation(sd, entry.name, obs)[1]
                  for obs in range(1, entry.l2g_observations + 1)]
        stack = np.stack(layers)
    else:
        stack = spatial_last(read_sds(sd, entry.name))
    return [[v.item() for v in np.ravel(stack[..., row, col])] for col, row in locations]


class PixvalsProcessor(BaseProcessor):
    """Processor reading SDS values at pixel locations."""

    name = "read_pixvals"

    async def validate_input(self, **kwargs) -> bool:
        """Validate input parameters for pixel reading.

        Args:
            **kwargs: Keyword arguments containing:
                input_paths (List[str]): Input HDF files
                locations (List[str]): "col,row" locations or coordinates file names

        Returns:
            bool: True if the files exist and a location and resolution are valid
        """
        if not kwargs.get("input_paths") or not kwargs.get("locations"):
            logger.error("Pixel values need input files and at least one location")
            return False
        resolution = kwargs.get("resolution")
        if resolution is not None and resolution not in RESOLUTION_ROWS:
            logger.error(f"Unknown resolution {resolution}; expected one of {', '.join(RESOLUTION_ROWS)}")
            return False
        check_input_files(kwargs["input_paths"])
        return True

    async def process(self, **kwargs) -> ProcessingResult:
        """Read every SDS of every file at every location.

        Args:
            **kwargs: Keyword arguments containing:
                input_paths (List[str]): Input HDF files
                locations (List[str]): "col[.cs],row[.rs]" locations or
                    coordinates file names
                resolution (str, optional): 1km, hkm or qkm; the coarsest
                    SDS resolution if omitted

        Returns:
            ProcessingResult: Report lines in metadata["report"] and values
                per file, SDS and location in metadata["values"]
        """
        locations: List[PixelLocation] = []
        for item in kwargs["locations"]:
            if Path(item).is_file():
                locations.extend(read_locations(item))
            else:
                locations.append(parse_location(item))

        files: Dict[str, List[_Sds]] = {}
        for path in kwargs["input_paths"]:
            with open_sd(path) as sd:
                files[str(path)] = _file_sds(sd)

        resolution: Optional[str] = kwargs.get("resolution")
        if resolution is not None:
            ref_rows = RESOLUTION_ROWS[resolution]
        else:
            ref_rows = min(entry.rows for entries in files.values() for entry in entries)
        logger.info(f"Reading {len(locations)} location(s) at {ref_rows} reference rows")

        report: List[str] = []
        values: Dict[str, Dict[str, List]] = {}
        for path, entries in files.items():
            report.append(f"File: {path}")
            values[path] = {}
            with open_sd(path) as sd:
                for entry in entries:
                    points = []
                    for loc in locations:
                        col = scale_coordinate(loc.col, loc.col_offsets, ref_rows, entry.rows)
                        row = scale_coordinate(loc.row, loc.row_offsets, ref_rows, entry.rows)
                        points.append((col, row))
                    inside = [(c, r) for c, r in points if 0 <= c < entry.cols and 0 <= r < entry.rows]
                    if len(inside) != len(points):
                        self.skip(entry.name, f"location outside {entry.rows} x {entry.cols}")
                        continue

                    logger.debug(f"{entry.name}: {points}")
                    entry_values = pixel_values(sd, entry, points)
                    values[path][entry.name] = entry_values
                    for (col, row), pixel in zip(points, entry_values):
                        text = " ".join(format_value(v) for v in pixel)
                        report.append(f"{entry.name} at ({col} {row}): {text}")

        return ProcessingResult(
            status="success",
            message=f"Read {len(locations)} location(s) from {len(files)} file(s)",
            metadata={"report": report, "values": values, "skipped": list(self.skipped)}
        )
