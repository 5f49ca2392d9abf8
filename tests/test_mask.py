"""
Tests for mask creation and masking.
"""
import numpy as np
import pytest

from processors.mask import (
    MASK_FILL_ATTR,
    MASK_SDS_NAME,
    MASK_STRING_ATTR,
    CreateMaskProcessor,
    MaskSdsProcessor,
    _mask_factor,
    apply_mask,
    check_mask_fill,
    choose_mask_fill,
    parse_mask_expression,
)
from conftest import read_hdf


@pytest.fixture
def qa_file(hdf_file):
    """2x2 QA SDS; the bottom right pixel is fill."""
    return hdf_file("qa.hdf", {
        "state": {"data": np.array([[0, 1], [2, 65535]], dtype=np.uint16), "fill": 65535},
    })


@pytest.fixture
def data_file(hdf_file):
    """4x4 int16 SDS at twice the QA resolution; pixel (0, 0) is fill."""
    refl = (np.arange(16) * 10).astype(np.int16).reshape(4, 4)
    refl[0, 0] = -1
    return hdf_file("data.hdf", {
        "refl": {"data": refl, "fill": -1, "valid_range": (0, 1000)},
    })


def first(value):
    return np.atleast_1d(value)[0]


class TestParseMaskExpression:
    def test_single_term(self):
        terms = parse_mask_expression("qa.hdf,state,0==1")
        assert len(terms) == 1
        assert (terms[0].path, terms[0].sds, terms[0].logical) == ("qa.hdf", "state", None)

    def test_star_repeats(self):
        terms = parse_mask_expression("qa.hdf,state,0-1==01,AND,*,*,4-5==10,OR,b.hdf,*,>=3")
        assert [t.logical for t in terms] == [None, "AND", "OR"]
        assert (terms[1].path, terms[1].sds) == ("qa.hdf", "state")
        assert (terms[2].path, terms[2].sds) == ("b.hdf", "state")

    def test_condition_with_commas(self):
        terms = parse_mask_expression("qa.hdf,state,10,12==11")
        assert terms[0].condition.bit_mask == (1 << 10) | (1 << 12)

    def test_star_needs_previous(self):
        with pytest.raises(ValueError):
            parse_mask_expression("*,state,0==1")

    def test_incomplete(self):
        with pytest.raises(ValueError):
            parse_mask_expression("qa.hdf,state")


class TestMaskFill:
    """Choosing and checking the mask fill value"""

    def test_type_maximum(self):
        assert choose_mask_fill(np.int16, -1, (0, 1000)) == 32767

    def test_next_to_maximum(self):
        assert choose_mask_fill(np.uint8, 255, (0, 100)) == 254

    def test_minimum_when_top_is_valid(self):
        assert choose_mask_fill(np.int16, None, (-100, 32767)) == -32768

    def test_falls_back_to_fill(self):
        assert choose_mask_fill(np.uint8, 0, None) == 0

    def test_no_room_without_fill(self):
        with pytest.raises(ValueError):
            choose_mask_fill(np.uint8, None, None)

    def test_float(self):
        assert choose_mask_fill(np.float32, -999.0, (0.0, 1.0)) == float(np.finfo(np.float32).max)

    def test_check_inside_valid_range(self):
        with pytest.raises(ValueError):
            check_mask_fill(500, -1, (0, 1000))
        check_mask_fill(5000, -1, (0, 1000))

    def test_factor(self):
        assert _mask_factor((2, 2), (4, 4)) == 2
        with pytest.raises(ValueError, match="finer"):
            _mask_factor((4, 4), (2, 2))
        with pytest.raises(ValueError):
            _mask_factor((2, 2), (4, 6))


class TestApplyMask:
    def test_2d(self):
        data = np.array([[5, -1], [7, 8]], dtype=np.int16)
        mask = np.array([[1, 0], [0, 1]], dtype=np.uint8)
        out = apply_mask(data, mask, 1, -1, 99)
        np.testing.assert_array_equal(out, [[5, -1], [99, 8]])

    def test_interleaved_stack(self):
        data = np.arange(8, dtype=np.int16).reshape(2, 2, 2) + 1
        mask = np.array([[1, 0], [1, 1]], dtype=np.uint8)
        out = apply_mask(data, mask, 1, None, 0)
        assert out.shape == data.shape
        assert (out[0, 1] == 0).all()
        np.testing.assert_array_equal(out[1, 1], data[1, 1])


class TestCreateMask:
    """Mask_sds from QA bit tests"""

    def test_single_condition(self, run, qa_file, out_path):
        text = f"{qa_file},state,0==1"
        result = run(CreateMaskProcessor(), mask=text, output_path=str(out_path),
                     on_value=1, off_value=0, fill_value=9)
        assert result.status == "success"
        mask, attrs = read_hdf(out_path, MASK_SDS_NAME)
        assert mask.dtype == np.uint8
        np.testing.assert_array_equal(mask, [[0, 1], [0, 9]])
        assert attrs[MASK_STRING_ATTR] == text
        assert (result.metadata["on"], result.metadata["off"], result.metadata["fill"]) == (1, 2, 1)

    def test_or(self, run, qa_file, out_path):
        run(CreateMaskProcessor(), mask=f"{qa_file},state,0==1,OR,*,*,1==1",
            output_path=str(out_path), on_value=1, off_value=0, fill_value=9)
        mask, _ = read_hdf(out_path, MASK_SDS_NAME)
        np.testing.assert_array_equal(mask, [[0, 1], [1, 9]])

    def test_and(self, run, qa_file, out_path):
        run(CreateMaskProcessor(), mask=f"{qa_file},state,0==1,AND,*,*,1==1",
            output_path=str(out_path), on_value=1, off_value=0, fill_value=9)
        mask, _ = read_hdf(out_path, MASK_SDS_NAME)
        np.testing.assert_array_equal(mask, [[0, 0], [0, 9]])

    def test_mixed_resolution_uses_finest(self, run, qa_file, data_file, out_path):
        result = run(CreateMaskProcessor(), mask=f"{qa_file},state,0==1,OR,{data_file},refl,>=100",
                     output_path=str(out_path))
        assert result.metadata["outputs"][MASK_SDS_NAME] == [4, 4]

    def test_equal_on_off_reset(self, run, qa_file, out_path):
        run(CreateMaskProcessor(), mask=f"{qa_file},state,0==1", output_path=str(out_path),
            on_value=3, off_value=3, fill_value=9)
        mask, _ = read_hdf(out_path, MASK_SDS_NAME)
        np.testing.assert_array_equal(mask, [[0, 255], [0, 9]])

    def test_value_out_of_byte_range(self, run, qa_file, out_path):
        result = run(CreateMaskProcessor(), mask=f"{qa_file},state,0==1",
                     output_path=str(out_path), on_value=256)
        assert result.status == "error"
        assert not out_path.exists()


class TestMaskSds:
    """Applying a coarser mask to an SDS"""

    def test_automatic_fill(self, run, qa_file, data_file, out_path):
        result = run(MaskSdsProcessor(), input_path=data_file, output_path=str(out_path),
                     mask=f"{qa_file},state,0==1")
        assert result.status == "success"
        assert result.metadata["mask_fill"] == {"refl": 32767}
        out, attrs = read_hdf(out_path, "refl")
        assert out[0, 0] == -1          # input fill kept
        assert out[0, 1] == 32767       # mask off
        assert out[0, 2] == 20          # mask on
        assert out[1, 3] == 70
        assert out[2, 0] == 32767
        assert out[3, 3] == 32767       # QA fill
        assert first(attrs["_FillValue"]) == -1
        assert first(attrs[MASK_FILL_ATTR]) == 32767

    def test_requested_fill(self, run, qa_file, data_file, out_path):
        result = run(MaskSdsProcessor(), input_path=data_file, output_path=str(out_path),
                     mask=f"{qa_file},state,0==1", fill_value=5000)
        assert result.metadata["mask_fill"] == {"refl": 5000}
        out, _ = read_hdf(out_path, "refl")
        assert out[0, 1] == 5000

    def test_fill_inside_valid_range(self, run, qa_file, data_file, out_path):
        result = run(MaskSdsProcessor(), input_path=data_file, output_path=str(out_path),
                     mask=f"{qa_file},state,0==1", fill_value=500)
        assert result.status == "error"
