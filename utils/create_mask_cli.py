#!/usr/bin/env python
"""
Command-line utility for building a mask SDS from QA bit tests.

The mask is "file,SDS,bits<op>value[,AND|OR,file,SDS,bits<op>value...]";
'*' repeats the previous file or SDS name.

Example usage:
    create_mask --output land.hdf --mask "MOD09A1.hdf,sur_refl_state_500m,3-5==001"
    create_mask -o clear.hdf --on 100 --mask "MOD09A1.hdf,sur_refl_state_500m,3-5==001,AND,*,*,0-1==00"
"""

import argparse
import asyncio

from processors.mask import CreateMaskProcessor
from utils.cli_common import add_common_arguments, check_required, finish, init_logging, print_info


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Create a mask SDS from QA bit tests")

    parser.add_argument("--output", "-o", help="Output HDF file")
    parser.add_argument("--mask", "-m", help="Mask expression")
    parser.add_argument("--on", type=int, help="Value where the mask holds (default: 255)")
    parser.add_argument("--off", type=int, help="Value where it does not (default: 0)")
    parser.add_argument("--fill", type=int, help="Value where a QA SDS is fill (default: 255)")
    parser.add_argument("--meta", action="store_true", help="Copy the attributes of the first mask file")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "output", "mask")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = CreateMaskProcessor()

    params = {"output_path": args.output, "mask": args.mask, "copy_meta": args.meta}
    for key, value in (("on_value", args.on), ("off_value", args.off), ("fill_value", args.fill)):
        if value is not None:
            params[key] = value

    result = await processor(**params)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
