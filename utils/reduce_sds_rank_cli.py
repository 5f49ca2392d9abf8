#!/usr/bin/env python
"""
Command-line utility for splitting 3D/4D SDSs into 2D SDSs.

Each --dim applies to the --sds given before it.

Example usage:
    reduce_sds_rank --input MYD43B1.hdf --output brdf_2d.hdf --sds BRDF_Albedo_Parameters
                    --dim Num_Land_Bands_Plus3,1-7 --dim Num_Parameters,1-3
    reduce_sds_rank -i MODAGAGG.hdf -o angles.hdf --sds Angles --all
"""

import argparse
import asyncio

from processors.reduce_rank import ReduceRankProcessor
from utils.cli_common import add_common_arguments, check_required, finish, init_logging, print_info


class SdsAction(argparse.Action):
    """Start a new SDS selection."""

    def __call__(self, parser, namespace, values, option_string=None):
        selections = getattr(namespace, self.dest) or {}
        selections.setdefault(values, {})
        setattr(namespace, self.dest, selections)
        namespace.last_sds = values


class DimAction(argparse.Action):
    """Attach "DimName,elements" to the most recent --sds."""

    def __call__(self, parser, namespace, values, option_string=None):
        last = getattr(namespace, "last_sds", None)
        if last is None:
            parser.error("--dim must follow an --sds option")
        name, sep, elements = values.partition(",")
        if not sep or not name.strip() or not elements.strip():
            parser.error(f"--dim expects DimName,elements, got {values}")
        namespace.selections[last][name.strip()] = elements.strip()


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Split 3D/4D SDSs into 2D SDSs")

    parser.add_argument("--input", "-i", help="Input HDF file")
    parser.add_argument("--output", "-o", help="Output HDF file")
    parser.add_argument(
        "--sds", "-s",
        dest="selections",
        action=SdsAction,
        help="SDS to split (default: every 3D/4D SDS); may be repeated"
    )
    parser.add_argument(
        "--dim", "-d",
        action=DimAction,
        help="Layer dimension name and 1-based elements, e.g. Num_Parameters,1-3"
    )
    parser.add_argument("--all", action="store_true", help="Also write a mosaic of the layers")
    parser.add_argument("--meta", action="store_true", help="Copy the file attributes to the output")
    parser.set_defaults(last_sds=None)

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
    processor = ReduceRankProcessor()
    result = await processor(
        input_path=args.input,
        output_path=args.output,
        selections=args.selections,
        mosaic=args.all,
        copy_meta=args.meta,
    )
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
