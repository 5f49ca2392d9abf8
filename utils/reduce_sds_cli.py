#!/usr/bin/env python
"""
Command-line utility for reducing the spatial resolution of SDSs.

Each output pixel summarises a block of factor x factor input pixels by
sampling, averaging, counting bit conditions or keeping the majority class.

Example usage:
    reduce_sds --input MOD09A1.hdf --output reduced.hdf --factor 4 --method avg
    reduce_sds -i MOD09A1.hdf -o counts.hdf -rf 2 --method cnt --cond "0-1==0" --cond "10==1"
"""

import argparse
import asyncio

from processors.reduce import AVG_EXTRAS, METHODS, ReduceProcessor
from utils.cli_common import (
    add_common_arguments,
    check_required,
    finish,
    init_logging,
    print_info,
    split_list,
)


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments
    """
    parser = argparse.ArgumentParser(
        description="Reduce the resolution of SDSs by an integer factor"
    )

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--output", "-o", help="Output HDF file")

    parser.add_argument(
        "--factor", "-rf",
        type=int,
        help="Reduction factor for the coarsest SDS"
    )

    parser.add_argument(
        "--method", "-m",
        choices=METHODS,
        default="avg",
        help="Block summary: sub, avg, cnt or cl (default: avg)"
    )

    parser.add_argument(
        "--sds", "-s",
        help="Comma separated SDS names, with optional layer extensions (default: all)"
    )

    parser.add_argument(
        "--cond",
        action="append",
        help="Bit condition for the cnt method, e.g. '0-3<=2'; may be repeated"
    )

    parser.add_argument(
        "--avg-outputs",
        help=f"Extra outputs of the avg method, out of {','.join(AVG_EXTRAS)}"
    )

    parser.add_argument(
        "--float",
        action="store_true",
        help="Write averages as FLOAT32"
    )

    parser.add_argument(
        "--meta",
        action="store_true",
        help="Copy the file attributes to the output"
    )

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "input", "output", "factor")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = ReduceProcessor()

    params = {
        "input_path": args.input,
        "output_path": args.output,
        "factor": args.factor,
        "method": args.method,
        "float_avg": args.float,
        "copy_meta": args.meta,
    }
    if args.sds:
        params["sds_names"] = split_list(args.sds)
    if args.cond:
        params["conditions"] = args.cond
    if args.avg_outputs:
        params["avg_outputs"] = split_list(args.avg_outputs)

    result = await processor(**params)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
