#!/usr/bin/env python
"""
Command-line utility for per-pixel statistics over a time series of files.

Example usage:
    create_sds_ts_stat --sds "sur_refl_b01,0,10000,*,*,INT16" --param avg,std,npix
                       --output stats.hdf MOD09A1.A2002001.hdf MOD09A1.A2002009.hdf
"""

import argparse
import asyncio

from processors.ts_stat import PARAMETERS, TsStatProcessor
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
    parser = argparse.ArgumentParser(
        description="Compute per-pixel SDS statistics over several files"
    )

    parser.add_argument(
        "--sds", "-s",
        action="append",
        help="sds_name,min,max,f_nop_in,f_nop_out,dt with '*' for defaults; may be repeated"
    )
    parser.add_argument("--output", "-o", help="Output HDF file")
    parser.add_argument(
        "--param", "-p",
        help=f"Comma separated statistics out of {','.join(PARAMETERS)} (default: all)"
    )
    parser.add_argument("inputs", nargs="*", help="Input HDF files")

    add_common_arguments(parser)
    args = parser.parse_args()
    check_required(parser, args, "sds", "output", "inputs")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    if args.info:
        print_info(args.info)
        return

    init_logging(args)
    processor = TsStatProcessor()
    result = await processor(
        input_paths=args.inputs,
        output_path=args.output,
        sds_specs=args.sds,
        params=split_list(args.param),
    )
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
