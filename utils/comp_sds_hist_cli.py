#!/usr/bin/env python
"""
Command-line utility for SDS value histograms.

Example usage:
    comp_sds_hist --input MOD09A1.hdf --sds sur_refl_qc_500m
    comp_sds_hist -i MOD43B1.hdf -s BRDF_Albedo_Parameters --per-layer --range 0,32766
"""

import argparse
import asyncio
from typing import Tuple

from processors.histogram import HistogramProcessor
from utils.cli_common import (
    add_common_arguments,
    check_required,
    finish,
    init_logging,
    print_info,
    split_list,
)


def parse_value_range(text: str) -> Tuple[float, float]:
    parts = text.split(",")
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected min,max: {text}")
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected numeric min,max: {text}")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Count the occurrences of SDS values")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--sds", "-s", help="Comma separated SDS names or layers (default: all)")
    parser.add_argument(
        "--per-layer",
        action="store_true",
        help="One histogram column per layer of 3D/4D SDSs"
    )
    parser.add_argument(
        "--range",
        type=parse_value_range,
        help="Histogram range min,max (default: valid_range or the data type range)"
    )

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "input")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = HistogramProcessor()

    params = {
        "input_path": args.input,
        "per_layer": args.per_layer,
        "sds_names": split_list(args.sds),
    }
    if args.range:
        params["value_range"] = args.range

    result = await processor(**params)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
