#!/usr/bin/env python
"""
Command-line utility for unpacking bit fields of QA SDSs.

Example usage:
    unpack_sds_bits --input MOD09A1.hdf --output qa_bits.hdf --sds sur_refl_qc_500m --bits 0-1,2-5
"""

import argparse
import asyncio

from processors.unpack_bits import UnpackBitsProcessor
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
    parser = argparse.ArgumentParser(description="Unpack bit fields of SDSs into separate SDSs")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--output", "-o", help="Output HDF file")
    parser.add_argument("--bits", "-b", help="Bit numbers and ranges, e.g. 0-1,2-5,10")
    parser.add_argument("--sds", "-s", help="Comma separated SDS names or layers (default: all)")
    parser.add_argument("--fill", type=float, help="Input fill value overriding _FillValue")
    parser.add_argument("--meta", action="store_true", help="Copy the file attributes to the output")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "input", "output", "bits")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = UnpackBitsProcessor()

    params = {
        "input_path": args.input,
        "output_path": args.output,
        "bits": args.bits,
        "sds_names": split_list(args.sds),
        "copy_meta": args.meta,
    }
    if args.fill is not None:
        params["fill_value"] = args.fill

    result = await processor(**params)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
