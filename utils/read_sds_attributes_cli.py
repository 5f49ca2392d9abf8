#!/usr/bin/env python
"""
Command-line utility for printing SDS attributes.

Example usage:
    read_sds_attributes --input MOD35_L2.hdf
    read_sds_attributes -i MOD09.hdf --sds "500m Surface Reflectance Band 1,500m Surface Reflectance Band 3"
"""

import argparse
import asyncio

from processors.attributes import AttributesProcessor
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
    parser = argparse.ArgumentParser(description="Print the attributes of SDSs")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--sds", "-s", help="Comma separated SDS names (default: all)")

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
    processor = AttributesProcessor()
    result = await processor(input_path=args.input, sds_names=split_list(args.sds))
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
