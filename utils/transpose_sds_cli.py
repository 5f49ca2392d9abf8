#!/usr/bin/env python
"""
Command-line utility for turning SDS layers through 180 degrees.

Example usage:
    transpose_sds --input MOD35_L2.hdf --output flipped.hdf --sds Cloud_Mask.1
"""

import argparse
import asyncio

from processors.transpose import TransposeProcessor
from utils.cli_common import (
    add_common_arguments,
    check_required,
    finish,
    init_logging,
    print_info,
    split_list,
)


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Rotate SDS layers by 180 degrees")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--output", "-o", help="Output HDF file")
    parser.add_argument("--sds", "-s", help="Comma separated SDS names or layers (default: all)")
    parser.add_argument("--meta", action="store_true", help="Copy the file attributes to the output")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "input", "output")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = TransposeProcessor()
    result = await processor(
        input_path=args.input,
        output_path=args.output,
        sds_names=split_list(args.sds),
        copy_meta=args.meta,
    )
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
