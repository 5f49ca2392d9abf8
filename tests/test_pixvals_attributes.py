"""
Tests for the pixel value and attribute report processors.
"""
import numpy as np
import pytest

from processors.attributes import SEPARATOR, AttributesProcessor, render_attributes
from processors.pixvals import (
    PixvalsProcessor,
    format_value,
    parse_location,
    read_locations,
    scale_coordinate,
)

L2G_FILL = -28672


@pytest.fixture
def tile_file(hdf_file):
    """A coarse 2x2 SDS and a fine 4x4 SDS over the same area."""
    return hdf_file("tile.hdf", {
        "coarse": np.arange(4, dtype=np.int16).reshape(2, 2),
        "fine": np.arange(16, dtype=np.int16).reshape(4, 4),
    })


@pytest.fixture
def l2g_file(hdf_file):
    return hdf_file("l2g.hdf", {
        "num_observations": np.array([[1, 3], [2, 0]], dtype=np.int8),
        "nadd_obs_row": np.array([2, 1], dtype=np.int32),
        "sur_refl_b01_1": {
            "data": np.array([[1, 2], [3, L2G_FILL]], dtype=np.int16),
            "fill": L2G_FILL,
        },
        "sur_refl_b01_c": np.array([10, 11, 20], dtype=np.int16),
    })


class TestLocations:
    """Location parsing and resolution scaling"""

    def test_parse(self):
        loc = parse_location("100.0.1,200.0.1")
        assert (loc.col, loc.row) == (100, 200)
        assert loc.col_offsets == [0, 1]
        assert loc.row_offsets == [0, 1]

    def test_space_separated(self):
        loc = parse_location("5 7")
        assert (loc.col, loc.row, loc.col_offsets) == (5, 7, [])

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_location("1.2,3")
        with pytest.raises(ValueError):
            parse_location("1,2,3")
        with pytest.raises(ValueError):
            parse_location("a,b")

    def test_read_file(self, tmp_path):
        path = tmp_path / "xy.txt"
        path.write_text("1,2\n\n3 4\n")
        assert [(loc.col, loc.row) for loc in read_locations(str(path))] == [(1, 2), (3, 4)]

    def test_scale_power_of_two(self):
        assert scale_coordinate(100, [0, 1], 1200, 4800) == 401
        assert scale_coordinate(200, [1], 1200, 2400) == 401
        assert scale_coordinate(100, [], 1200, 4800) == 400

    def test_scale_other_factor(self):
        assert scale_coordinate(10, [1], 100, 300) == 31

    def test_scale_coarser(self):
        assert scale_coordinate(401, [], 4800, 1200) == 100
        assert scale_coordinate(7, [], 1200, 1200) == 7

    def test_format_value(self):
        assert format_value(1.5) == "1.5"
        assert format_value(3) == "3"


class TestPixvalsProcessor:
    def test_mixed_resolution(self, run, tile_file):
        result = run(PixvalsProcessor(), input_paths=[tile_file], locations=["1.1,0.1"])
        assert result.status == "success"
        assert result.metadata["report"] == [
            f"File: {tile_file}",
            "coarse at (1 0): 1",
            "fine at (3 1): 7",
        ]
        assert result.metadata["values"][tile_file]["fine"] == [[7]]

    def test_coordinates_file(self, run, tile_file, tmp_path):
        path = tmp_path / "xy.txt"
        path.write_text("0,0\n1,1\n")
        result = run(PixvalsProcessor(), input_paths=[tile_file], locations=[str(path)])
        assert result.metadata["values"][tile_file]["coarse"] == [[0], [3]]
        assert result.metadata["values"][tile_file]["fine"] == [[0], [10]]

    def test_outside_skipped(self, run, tile_file):
        result = run(PixvalsProcessor(), input_paths=[tile_file], locations=["5,5"])
        assert result.status == "success"
        assert result.metadata["skipped"] == ["coarse", "fine"]
        assert result.metadata["report"] == [f"File: {tile_file}"]

    def test_l2g_observations(self, run, l2g_file):
        result = run(PixvalsProcessor(), input_paths=[l2g_file], locations=["1,0"])
        assert "sur_refl_b01 at (1 0): 2 10 11" in result.metadata["report"]
        assert "num_observations at (1 0): 3" in result.metadata["report"]
        assert not any(line.startswith("sur_refl_b01_c") for line in result.metadata["report"])

    def test_unknown_resolution(self, run, tile_file):
        result = run(PixvalsProcessor(), input_paths=[tile_file], locations=["0,0"], resolution="5km")
        assert result.status == "error"

    def test_missing_file(self, run, tmp_path):
        result = run(PixvalsProcessor(), input_paths=[str(tmp_path / "none.hdf")], locations=["0,0"])
        assert result.status == "error"


class TestAttributes:
    """Attribute report"""

    def test_render(self):
        lines = render_attributes("refl", [("units", "m", "CHAR8"), ("valid_range", [0, 100], "INT16")])
        assert lines[0] == SEPARATOR
        assert lines[1] == "SDS : refl"
        assert lines[4] == f"{'units':<20}{'CHAR8':<10}m"
        assert lines[5] == f"{'valid_range':<20}{'INT16':<10}0 100"

    def test_render_multi_line(self):
        lines = render_attributes("x", [("meta", "GROUP\nEND", "CHAR8")])
        assert lines[-2].endswith("GROUP")
        assert lines[-1] == " " * 30 + "END"

    def test_processor(self, run, refl_file):
        result = run(AttributesProcessor(), input_path=refl_file, sds_names=["refl", "nothere"])
        assert result.status == "success"
        assert result.metadata["skipped"] == ["nothere"]
        assert result.metadata["attributes"]["refl"]["units"] == "reflectance"
        assert "SDS : refl" in result.metadata["report"]

    def test_all_sds(self, run, refl_file):
        result = run(AttributesProcessor(), input_path=refl_file)
        assert set(result.metadata["attributes"]) == {"refl", "stack"}
