#!/usr/bin/env python
"""
Command-line utility for unpacking the pre-collection Landsat 8 OLI QA band.

Without --combine each field is written to <output>_<field>.tif; with it,
one mask is written to <output>.

Example usage:
    unpack_oli_qa --input LC80340322013132LGN01_BQA.TIF --output LC80340322013132LGN01 --all
    unpack_oli_qa -i LC80340322013132LGN01_BQA.TIF -o cloud_mask.tif --cloud=high --cirrus --combine
"""

import argparse
import asyncio

from processors.landsat_qa import OliQaProcessor
from utils.cli_common import (
    add_common_arguments,
    add_qa_field_arguments,
    check_required,
    finish,
    init_logging,
    selected_qa_fields,
)

FLAGS = ["fill", "drop_frame", "terrain_occl"]
CONFIDENCE = ["water", "cloud_shadow", "veg", "snow_ice", "cirrus", "cloud"]


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Unpack the Landsat 8 OLI QA band")

    parser.add_argument("--input", "-i", help="QA band GeoTIFF")
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
    processor = OliQaProcessor()
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
