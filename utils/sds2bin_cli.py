#!/usr/bin/env python
"""
Command-line utility for dumping an SDS as raw binary.

Example usage:
    sds2bin --input MOD09A1.hdf --sds sur_refl_b01 --output sur_refl_b01.img
    sds2bin -i MOD43B1.hdf -s BRDF_Albedo_Parameters.1.2 -o brdf.img
"""

import argparse
import asyncio

from processors.sds2bin import Sds2BinProcessor
from utils.cli_common import add_common_arguments, check_required, finish, init_logging, print_info


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Write an SDS or layer as raw binary")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--output", "-o", help="Output binary file")
    parser.add_argument("--sds", "-s", help="SDS name, with a layer extension for 3D/4D SDSs")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "input", "output", "sds")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = Sds2BinProcessor()
    result = await processor(input_path=args.input, output_path=args.output, sds_name=args.sds)
    if result.status == "success":
        dims = " x ".join(str(d) for d in result.metadata["dims"])
        print(f"{result.metadata['sds']}: {dims} {result.metadata['data_type']}")
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
