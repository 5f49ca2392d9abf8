"""
Tests for the time series statistics processor.
"""
import numpy as np
import pytest
from pyhdf.SD import SDC

from lib.sds_layout import SdsInfo
from processors.ts_stat import (
    TsStatProcessor,
    compute_statistics,
    parse_parameters,
    parse_stat_spec,
    resolve_defaults,
)
from conftest import hdf_names, read_hdf

FILL = -3000
SERIES = [
    [[100, FILL], [200, 300]],
    [[300, FILL], [400, 20000]],
    [[200, FILL], [600, 500]],
]


@pytest.fixture
def series(hdf_file):
    return [
        hdf_file(f"ndvi_{i}.hdf", {
            "ndvi": {
                "data": np.array(values, dtype=np.int16),
                "fill": FILL,
                "valid_range": (-2000, 10000),
            },
        })
        for i, values in enumerate(SERIES)
    ]


class TestParsing:
    def test_full_spec(self):
        spec = parse_stat_spec("ndvi,0,100,*,-1,FLOAT32")
        assert (spec.name, spec.min_value, spec.max_value) == ("ndvi", 0, 100)
        assert spec.nop_in is None
        assert spec.nop_out == -1
        assert spec.data_type == "FLOAT32"

    def test_name_only(self):
        spec = parse_stat_spec("ndvi")
        assert spec.min_value is None and spec.data_type is None

    def test_too_many_fields(self):
        with pytest.raises(ValueError):
            parse_stat_spec("ndvi,1,2,3,4,INT16,7")

    def test_bad_number(self):
        with pytest.raises(ValueError):
            parse_stat_spec("ndvi,x")

    def test_bad_type(self):
        with pytest.raises(ValueError):
            parse_stat_spec("ndvi,*,*,*,*,BAD")

    def test_parameters_in_output_order(self):
        assert parse_parameters(["max", "sum"]) == ["sum", "max"]
        assert parse_parameters(None) == ["sum", "avg", "std", "npix", "min", "max"]
        with pytest.raises(ValueError):
            parse_parameters(["median"])


class TestDefaults:
    def test_from_type(self):
        info = SdsInfo(name="cls", data_type=SDC.UINT8, dims=(2, 2))
        value_range, nop_in, nop_out, out_type = resolve_defaults(parse_stat_spec("cls"), info)
        assert value_range == (0, 255)
        assert nop_in is None
        assert nop_out == 0
        assert out_type == SDC.UINT8

    def test_from_attributes(self):
        info = SdsInfo(name="ndvi", data_type=SDC.INT16, dims=(2, 2),
                       fill_value=FILL, valid_range=(-2000, 10000))
        value_range, nop_in, nop_out, _ = resolve_defaults(parse_stat_spec("ndvi"), info)
        assert value_range == (-2000, 10000)
        assert nop_in == nop_out == FILL

    def test_reversed_range(self):
        info = SdsInfo(name="ndvi", data_type=SDC.INT16, dims=(2, 2))
        with pytest.raises(ValueError):
            resolve_defaults(parse_stat_spec("ndvi,10,0"), info)


class TestComputeStatistics:
    """Per-pixel statistics over a stack"""

    def test_values(self):
        stack = np.array(SERIES, dtype=np.int16)
        stats = compute_statistics(stack, (-2000, 10000), FILL, FILL, np.dtype(np.int16))
        np.testing.assert_array_equal(stats["sum"], [[600, FILL], [1200, 800]])
        np.testing.assert_array_equal(stats["avg"], [[200, FILL], [400, 400]])
        np.testing.assert_array_equal(stats["npix"], [[3, 0], [3, 2]])
        np.testing.assert_array_equal(stats["min"], [[100, FILL], [200, 300]])
        np.testing.assert_array_equal(stats["max"], [[300, FILL], [600, 500]])
        assert stats["std"].dtype == np.float32
        assert stats["std"][0, 0] == pytest.approx(81.6497, rel=1e-4)
        assert stats["std"][0, 1] == FILL
        assert stats["npix"].dtype == np.int16

    def test_integer_mean_truncated(self):
        stack = np.array([[[1]], [[2]]], dtype=np.int16)
        stats = compute_statistics(stack, (0, 10), None, 0, np.dtype(np.int16))
        assert stats["avg"][0, 0] == 1
        stats = compute_statistics(stack, (0, 10), None, 0, np.dtype(np.float32))
        assert stats["avg"][0, 0] == pytest.approx(1.5)

    def test_sum_clipped(self):
        stack = np.array([[[30000]], [[30000]]], dtype=np.int16)
        stats = compute_statistics(stack, (-32768, 32767), None, 0, np.dtype(np.int16))
        assert stats["sum"][0, 0] == 32767


class TestTsStatProcessor:
    def test_all_statistics(self, run, series, out_path):
        result = run(TsStatProcessor(), input_paths=series, output_path=str(out_path),
                     sds_specs=["ndvi"])
        assert result.status == "success"
        assert result.metadata["files_used"] == {"ndvi": 3}
        assert hdf_names(out_path) == {
            "Sum of ndvi", "Mean of ndvi", "Std of ndvi", "Npix of ndvi", "Min of ndvi", "Max of ndvi",
        }
        mean, attrs = read_hdf(out_path, "Mean of ndvi")
        np.testing.assert_array_equal(mean, [[200, FILL], [400, 400]])
        assert attrs["_FillValue"] == FILL
        npix, attrs = read_hdf(out_path, "Npix of ndvi")
        np.testing.assert_array_equal(npix, [[3, 0], [3, 2]])
        assert attrs["_FillValue"] == 0

    def test_selected_statistics_and_type(self, run, series, out_path):
        run(TsStatProcessor(), input_paths=series, output_path=str(out_path),
            sds_specs=["ndvi,0,350,*,-1,FLOAT32"], params=["avg", "npix"])
        assert hdf_names(out_path) == {"Mean of ndvi", "Npix of ndvi"}
        mean, _ = read_hdf(out_path, "Mean of ndvi")
        assert mean.dtype == np.float32
        np.testing.assert_allclose(mean, [[200, -1], [200, 300]])

    def test_mismatched_files_ignored(self, run, series, hdf_file, out_path):
        other = hdf_file("other.hdf", {"other": np.zeros((2, 2), dtype=np.int16)})
        bigger = hdf_file("bigger.hdf", {"ndvi": np.zeros((3, 3), dtype=np.int16)})
        result = run(TsStatProcessor(), input_paths=series + [other, bigger],
                     output_path=str(out_path), sds_specs=["ndvi"], params=["npix"])
        assert result.metadata["files_used"] == {"ndvi": 3}

    def test_missing_input(self, run, series, out_path):
        result = run(TsStatProcessor(), input_paths=series + ["missing.hdf"],
                     output_path=str(out_path), sds_specs=["ndvi"])
        assert result.status == "error"

    def test_unknown_sds(self, run, series, out_path):
        result = run(TsStatProcessor(), input_paths=series, output_path=str(out_path),
                     sds_specs=["ndvi", "evi"])
        assert result.metadata["skipped"] == ["evi"]

    def test_layer_names_kept(self, run, hdf_file, out_path):
        cube = np.arange(18, dtype=np.int16).reshape(2, 3, 3)
        paths = [hdf_file(f"cube_{i}.hdf", {"cube": cube + 10 * i}) for i in range(2)]
        run(TsStatProcessor(), input_paths=paths, output_path=str(out_path),
            sds_specs=["cube.*"], params=["max"])
        assert hdf_names(out_path) == {"Max of cube.1", "Max of cube.2"}
        top, _ = read_hdf(out_path, "Max of cube.2")
        np.testing.assert_array_equal(top, cube[1] + 10)
