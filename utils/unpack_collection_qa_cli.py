#!/usr/bin/env python
"""
Command-line utility for unpacking the Collection-1 Landsat 4-8 BQA band.

The satellite is read from the input file name (LT04, LT05, LE07, LC08).
--drop_pixel applies to Landsat 4-7 only; --terrain_occl and --cirrus to
Landsat 8 only.

Example usage:
    unpack_collection_qa --input LE07_L1TP_042027_20050927_20160512_01_T1_BQA.TIF
                         --output LE07_L1TP_042027_20050927_20160512_01_T1_BQA --all
    unpack_collection_qa -i LC08_L1GT_029030_20151209_20160131_01_T1_BQA.TIF -o mask.tif
                         --fill --cloud_shadow=high --cirrus=low --combine
"""

import argparse
import asyncio

from processors.landsat_qa import CollectionQaProcessor
from utils.cli_common import (
    add_common_arguments,
    add_qa_field_arguments,
    check_required,
    finish,
    init_logging,
    selected_qa_fields,
)

FLAGS = ["fill", "drop_pixel", "terrain_occl", "radiometric_sat", "cloud"]
CONFIDENCE = ["cloud_confidence", "cloud_shadow", "snow_ice", "cirrus"]


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Unpack the Landsat Collection-1 BQA band")

    parser.add_argument("--input", "-i", help="BQA band GeoTIFF")
    parser.add_argument("--output", "-o", help="Output base name, or the output file with --combine")
    add_qa_field_arguments(parser, FLAGS, CONFIDENCE)

    add_common_arguments(parser, info=False)
    args = parser.parse_args()
    check_required(parser, args, "input", "output")
    return args


async def main() -> None:
    """Main entry point for the script."""
    args = parse_args()
    init_logging(args)
    processor = CollectionQaProcessor()
    result = await processor(
        input_path=args.input,
        output_path=args.output,
        fields=selected_qa_fields(args, FLAGS, CONFIDENCE),
        all_level=args.all,
        combine=args.combine,
    )
    if result.status == "success":
        for path in result.metadata["outputs"]:
            print(path)
    finish(result)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
