#!/usr/bin/env python
"""
Command-line utility for pixelwise arithmetic between SDSs.

Each --expr is "sds1,file1,op,sds2,file2[,dt,f_nop1,f_nop2,f_nop3,f_ovf]"
with op one of + - * / |. Every expression writes one SDS to the output.

Example usage:
    math_sds --expr "sur_refl_b02,MOD09A1.hdf,-,sur_refl_b01,MOD09A1.hdf,INT16" --output diff.hdf
"""

import argparse
import asyncio

from processors.arithmetic import ArithmeticProcessor
from utils.cli_common import add_common_arguments, check_required, finish, init_logging, print_info


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Pixelwise arithmetic between two SDSs")

    parser.add_argument(
        "--expr", "-e",
        action="append",
        help="sds1,file1,op,sds2,file2[,dt,f_nop1,f_nop2,f_nop3,f_ovf]; may be repeated"
    )
    parser.add_argument("--output", "-o", help="Output HDF file")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "expr", "output")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = ArithmeticProcessor()
    result = await processor(expressions=args.expr, output_path=args.output)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
