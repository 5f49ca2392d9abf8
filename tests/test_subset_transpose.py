"""
Tests for the subset and transpose processors.
"""
import numpy as np
import pytest

from processors.subset import SubsetProcessor, check_range, whole_sds_names
from processors.transpose import TransposeProcessor, rotate_180
from conftest import read_hdf


class TestCheckRange:
    def test_valid(self):
        check_range("Row", (0, 3), 5)

    def test_end_must_be_inside(self):
        with pytest.raises(ValueError, match="outside"):
            check_range("Row", (0, 5), 5)

    def test_reversed(self):
        with pytest.raises(ValueError):
            check_range("Column", (3, 3), 5)

    def test_negative(self):
        with pytest.raises(ValueError):
            check_range("Column", (-1, 3), 5)

    def test_layer_selection_dropped(self):
        assert whole_sds_names(["refl.1", "refl.2", "qa"]) == ["refl", "qa"]


class TestSubsetProcessor:
    """Row and column windows"""

    def test_2d_window(self, run, refl_file, out_path):
        result = run(SubsetProcessor(), input_path=refl_file, output_path=str(out_path),
                     rows=(1, 2), cols=(0, 2), sds_names=["refl"])
        assert result.status == "success"
        data, attrs = read_hdf(out_path, "refl")
        np.testing.assert_array_equal(data, np.arange(16).reshape(4, 4)[1:3, 0:3])
        assert attrs["units"] == "reflectance"
        assert attrs["_FillValue"] == -1

    def test_every_layer_cut(self, run, refl_file, out_path):
        result = run(SubsetProcessor(), input_path=refl_file, output_path=str(out_path),
                     rows=(0, 1), cols=(2, 3))
        assert result.metadata["outputs"]["stack"] == [2, 2, 2]
        data, _ = read_hdf(out_path, "stack")
        np.testing.assert_array_equal(data, np.arange(32).reshape(2, 4, 4)[:, 0:2, 2:4])

    def test_interleaved(self, run, hdf_file, out_path):
        cube = np.arange(48, dtype=np.int16).reshape(4, 6, 2)
        path = hdf_file("cube.hdf", {"cube": cube})
        run(SubsetProcessor(), input_path=path, output_path=str(out_path), rows=(1, 3), cols=(2, 4))
        data, _ = read_hdf(out_path, "cube")
        np.testing.assert_array_equal(data, cube[1:4, 2:5, :])

    def test_out_of_bounds_skipped(self, run, refl_file, out_path):
        result = run(SubsetProcessor(), input_path=refl_file, output_path=str(out_path),
                     rows=(0, 4), cols=(0, 1))
        assert result.status == "error"
        assert not out_path.exists()


class TestTransposeProcessor:
    def test_rotate(self):
        np.testing.assert_array_equal(rotate_180(np.array([[1, 2], [3, 4]])), [[4, 3], [2, 1]])

    def test_rotate_interleaved_layers(self):
        cube = np.arange(24).reshape(4, 3, 2)
        rotated = rotate_180(cube)
        np.testing.assert_array_equal(rotated[:, :, 1], cube[::-1, ::-1, 1])

    def test_processor(self, run, refl_file, out_path):
        result = run(TransposeProcessor(), input_path=refl_file, output_path=str(out_path),
                     sds_names=["refl", "stack.1"])
        assert result.status == "success"
        data, attrs = read_hdf(out_path, "refl")
        np.testing.assert_array_equal(data, np.arange(16).reshape(4, 4)[::-1, ::-1])
        assert attrs["units"] == "reflectance"
        layer, _ = read_hdf(out_path, "stack.1")
        np.testing.assert_array_equal(layer, np.arange(16).reshape(4, 4)[::-1, ::-1])

    def test_one_dimensional_sds_skipped(self, run, hdf_file, out_path):
        path = hdf_file("l2g.hdf", {
            "refl_1": np.arange(16, dtype=np.int16).reshape(4, 4),
            "nadd_obs_row": np.array([2, 0, 1, 0], dtype=np.int32),
        })
        result = run(TransposeProcessor(), input_path=path, output_path=str(out_path))
        assert result.status == "success"
        assert result.metadata["skipped"] == ["nadd_obs_row"]
        assert set(result.metadata["outputs"]) == {"refl_1"}
