"""
Pytest configuration and fixtures for the SDS tools tests.

Fixtures build small HDF4 and GeoTIFF files in a temporary directory so
processors can be run end to end.
"""
import asyncio
from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin
from pyhdf.SD import SD, SDC

from lib.hdf_io import hdf_type_of


def write_hdf(path, datasets, attrs=None):
    """Write an HDF4 file.

    Args:
        path: Output file path
        datasets: {name: array} or {name: dict(data=..., fill=..., valid_range=...,
            dim_names=..., attrs=...)}, written in insertion order
        attrs: File attributes
    """
    sd = SD(str(path), SDC.WRITE | SDC.CREATE | SDC.TRUNC)
    try:
        for name, spec in datasets.items():
            if not isinstance(spec, dict):
                spec = {"data": spec}
            data = np.ascontiguousarray(spec["data"])
            sds = sd.create(name, hdf_type_of(data.dtype), list(data.shape))
            if spec.get("fill") is not None:
                sds.setfillvalue(data.dtype.type(spec["fill"]).item())
            if spec.get("dim_names"):
                for i, dim_name in enumerate(spec["dim_names"]):
                    sds.dim(i).setname(dim_name)
            sds[:] = data
            if spec.get("valid_range") is not None:
                low, high = spec["valid_range"]
                sds.attr("valid_range").set(
                    hdf_type_of(data.dtype),
                    [data.dtype.type(low).item(), data.dtype.type(high).item()]
                )
            for attr_name, value in (spec.get("attrs") or {}).items():
                setattr(sds, attr_name, value)
            sds.endaccess()
        for attr_name, value in (attrs or {}).items():
            setattr(sd, attr_name, value)
    finally:
        sd.end()
    return str(path)


def read_hdf(path, name):
    """Read one SDS and its attributes."""
    sd = SD(str(path), SDC.READ)
    try:
        sds = sd.select(name)
        data = np.asarray(sds.get())
        attributes = sds.attributes()
        sds.endaccess()
        return data, attributes
    finally:
        sd.end()


def hdf_names(path):
    sd = SD(str(path), SDC.READ)
    try:
        return set(sd.datasets())
    finally:
        sd.end()


def write_tif(path, data):
    """Write a single band GeoTIFF."""
    data = np.asarray(data)
    profile = {
        "driver": "GTiff",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": data.dtype.name,
        "crs": "EPSG:32612",
        "transform": from_origin(500000.0, 4500000.0, 30.0, 30.0),
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data, 1)
    return str(path)


def read_tif(path):
    with rasterio.open(path) as src:
        return src.read(1), src.profile


@pytest.fixture
def run():
    """Run an async processor call to completion."""
    def _run(processor, **kwargs):
        return asyncio.run(processor(**kwargs))
    return _run


@pytest.fixture
def hdf_file(tmp_path):
    """Factory writing an HDF4 file under tmp_path."""
    def _make(name, datasets, attrs=None):
        return write_hdf(tmp_path / name, datasets, attrs)
    return _make


@pytest.fixture
def tif_file(tmp_path):
    """Factory writing a GeoTIFF under tmp_path."""
    def _make(name, data):
        return write_tif(tmp_path / name, data)
    return _make


@pytest.fixture
def refl_file(hdf_file):
    """A 4x4 int16 reflectance SDS plus a 3D band sequential stack."""
    return hdf_file("refl.hdf", {
        "refl": {
            "data": np.arange(16, dtype=np.int16).reshape(4, 4),
            "fill": -1,
            "valid_range": (0, 10000),
            "attrs": {"units": "reflectance", "scale_factor": 0.0001},
        },
        "stack": {
            "data": np.arange(32, dtype=np.int16).reshape(2, 4, 4),
            "fill": -1,
        },
    }, attrs={"HDFEOSVersion": "HDFEOS_V2.9"})


@pytest.fixture
def out_path(tmp_path) -> Path:
    return tmp_path / "out" / "result.hdf"
