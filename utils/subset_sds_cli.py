#!/usr/bin/env python
"""
Command-line utility for cutting a row and column window out of SDSs.

Example usage:
    subset_sds --input MOD09A1.hdf --output window.hdf --rows 100,599 --cols 0,1199
"""

import argparse
import asyncio
from typing import Tuple

from processors.subset import SubsetProcessor
from utils.cli_common import (
    add_common_arguments,
    check_required,
    finish,
    init_logging,
    print_info,
    split_list,
)


def parse_range(text: str) -> Tuple[int, int]:
    """Parse an inclusive "start,end" range."""
    parts = text.split(",")
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected start,end: {text}")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected integer start,end: {text}")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments
    """
    parser = argparse.ArgumentParser(description="Spatially subset SDSs")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--output", "-o", help="Output HDF file")
    parser.add_argument("--rows", type=parse_range, help="Inclusive 0-based row range: start,end")
    parser.add_argument("--cols", type=parse_range, help="Inclusive 0-based column range: start,end")
    parser.add_argument("--sds", "-s", help="Comma separated SDS names (default: all)")
    parser.add_argument("--meta", action="store_true", help="Copy the file attributes to the output")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "input", "output", "rows", "cols")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = SubsetProcessor()

    params = {
        "input_path": args.input,
        "output_path": args.output,
        "rows": args.rows,
        "cols": args.cols,
        "copy_meta": args.meta,
    }
    if args.sds:
        params["sds_names"] = split_list(args.sds)

    result = await processor(**params)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
