#!/usr/bin/env python
"""
Command-line utility for reading SDS values at pixel locations.

Example usage:
    read_pixvals --xy 1000,200 --xy 0,0 MOD09A1.hdf
    read_pixvals --xy 100.0.1,200.0.1 --res 1km MOD09GHK.hdf MOD09GQK.hdf
    read_pixvals --xy locations.txt MOD09A1.hdf
"""

import argparse
import asyncio

from processors.pixvals import RESOLUTION_ROWS, PixvalsProcessor
from utils.cli_common import add_common_arguments, check_required, finish, init_logging, print_info


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Read SDS values at pixel locations")

    parser.add_argument(
        "--xy",
        action="append",
        help="col[.cs[.cs]],row[.rs[.rs]] or a file of locations; may be repeated"
    )
    parser.add_argument(
        "--res",
        choices=list(RESOLUTION_ROWS),
        help="Resolution the locations refer to (default: the coarsest SDS)"
    )
    parser.add_argument("inputs", nargs="*", help="Input HDF files")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "xy", "inputs")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = PixvalsProcessor()
    result = await processor(input_paths=args.inputs, locations=args.xy, resolution=args.res)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
