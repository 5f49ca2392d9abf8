"""
Tests for the command-line option helpers.
"""
import argparse

import pytest

from utils import reduce_sds_rank_cli
from utils.cli_common import (
    add_common_arguments,
    add_qa_field_arguments,
    check_required,
    finish,
    selected_qa_fields,
    split_list,
)
from utils.comp_sds_hist_cli import parse_value_range
from utils.subset_sds_cli import parse_range
from processors.base import ProcessingResult


def test_split_list():
    assert split_list("a, b,,c") == ["a", "b", "c"]
    assert split_list(None) is None
    assert split_list(" , ") is None


def test_parse_range():
    assert parse_range("2,10") == (2, 10)
    with pytest.raises(argparse.ArgumentTypeError):
        parse_range("2")
    assert parse_value_range("0,0.5") == (0.0, 0.5)
    with pytest.raises(argparse.ArgumentTypeError):
        parse_value_range("a,b")


class TestRequiredOptions:
    def make_parser(self):
        parser = argparse.ArgumentParser()
        parser.add_argument("--input")
        parser.add_argument("--output")
        add_common_arguments(parser)
        return parser

    def test_missing(self):
        parser = self.make_parser()
        args = parser.parse_args(["--input", "a.hdf"])
        with pytest.raises(SystemExit):
            check_required(parser, args, "input", "output")

    def test_info_needs_nothing(self):
        parser = self.make_parser()
        args = parser.parse_args(["--info", "a.hdf"])
        check_required(parser, args, "input", "output")


class TestQaFields:
    def test_selection(self):
        parser = argparse.ArgumentParser()
        add_qa_field_arguments(parser, ["fill", "cloud"], ["cirrus", "snow_ice"])
        args = parser.parse_args(["--fill", "--cirrus", "--snow_ice=high", "--combine"])
        assert selected_qa_fields(args, ["fill", "cloud"], ["cirrus", "snow_ice"]) == {
            "fill": None,
            "cirrus": "med",
            "snow_ice": "high",
        }
        assert args.combine
        assert args.all is None

    def test_bad_level(self):
        parser = argparse.ArgumentParser()
        add_qa_field_arguments(parser, [], ["cirrus"])
        with pytest.raises(SystemExit):
            parser.parse_args(["--cirrus=extreme"])


class TestFinish:
    def test_report_to_stdout(self, capsys):
        finish(ProcessingResult(status="success", message="done",
                                metadata={"report": ["line 1"], "skipped": ["x"]}))
        captured = capsys.readouterr()
        assert captured.out == "line 1\n"
        assert "Skipped: x" in captured.err

    def test_error_exits(self):
        with pytest.raises(SystemExit) as exc:
            finish(ProcessingResult(status="error", message="boom"))
        assert exc.value.code == 1


class TestReduceRankOptions:
    def test_dims_follow_sds(self, monkeypatch):
        monkeypatch.setattr("sys.argv", [
            "reduce_sds_rank", "-i", "in.hdf", "-o", "out.hdf",
            "--sds", "brdf", "--dim", "Bands,1-3", "--dim", "Params,2",
            "--sds", "angles",
        ])
        args = reduce_sds_rank_cli.parse_args()
        assert args.selections == {"brdf": {"Bands": "1-3", "Params": "2"}, "angles": {}}

    def test_dim_without_sds(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["reduce_sds_rank", "-i", "in.hdf", "-o", "o.hdf",
                                         "--dim", "Bands,1"])
        with pytest.raises(SystemExit):
            reduce_sds_rank_cli.parse_args()
