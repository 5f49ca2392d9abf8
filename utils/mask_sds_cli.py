#!/usr/bin/env python
"""
Command-line utility for masking SDSs with QA bit tests.

Pixels where the mask does not hold get a mask fill value, which is
chosen outside the SDS valid range unless --fill is given.

Example usage:
    mask_sds --input MOD09A1.hdf --output masked.hdf --sds sur_refl_b01,sur_refl_b02
             --mask "MOD09A1.hdf,sur_refl_state_500m,0-1==00"
"""

import argparse
import asyncio

from processors.mask import MaskSdsProcessor
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
    parser = argparse.ArgumentParser(description="Mask SDSs with QA bit tests")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--output", "-o", help="Output HDF file")
    parser.add_argument("--mask", "-m", help="Mask expression")
    parser.add_argument("--sds", "-s", help="Comma separated SDS names or layers (default: all)")
    parser.add_argument("--fill", type=float, help="Mask fill value (default: chosen per SDS)")
    parser.add_argument("--meta", action="store_true", help="Copy the file attributes to the output")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "input", "output", "mask")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = MaskSdsProcessor()

    params = {
        "input_path": args.input,
        "output_path": args.output,
        "mask": args.mask,
        "sds_names": split_list(args.sds),
        "copy_meta": args.meta,
    }
    if args.fill is not None:
        params["fill_value"] = args.fill

    result = await processor(**params)
    if result.status == "success":
        for name, value in result.metadata["mask_fill"].items():
            print(f"{name}: mask fill value {value}")
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
