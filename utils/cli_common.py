"""Shared pieces of the command-line front-ends.

Each tool script builds its own argparse parser and processor keyword
arguments; the options every tool has (--info and --verbose), logging
setup and result printing live here.
"""

import argparse
import sys
from typing import Dict, List, Optional

from lib.hdf_io import describe_sds
from processors.base import ProcessingResult
from utils.logging import setup_logging


def add_common_arguments(parser: argparse.ArgumentParser, info: bool = True) -> None:
    if info:
        parser.add_argument(
            "--info",
            nargs="+",
            metavar="FILE",
            help="List the SDS names, dimensions and data types of the files and exit"
        )
    else:
        parser.set_defaults(info=None)

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log debug messages"
    )


def check_required(parser: argparse.ArgumentParser, args: argparse.Namespace,
                   *names: str) -> None:
    """Exit with a usage error if a required option is missing.

    Note:
        Nothing is required with --info, which only lists file contents.
    """
    if args.info:
        return
    missing = [name for name in names if getattr(args, name) in (None, [])]
    if missing:
        options = ", ".join("--" + name.replace("_", "-") for name in missing)
        parser.error(f"the following arguments are required: {options}")


def split_list(text: Optional[str]) -> Optional[List[str]]:
    """Split a comma separated option value; None stays None."""
    if text is None:
        return None
    items = [item.strip() for item in text.split(",") if item.strip()]
    return items or None


def init_logging(args: argparse.Namespace) -> None:
    setup_logging({"log_level": "DEBUG"} if args.verbose else None)


def print_info(paths: List[str]) -> None:
    """Print the SDSs of each file, one per line."""
    for path in paths:
        print(f"Valid SDS names, dimension and data type in file: {path}")
        for line in describe_sds(path):
            print(f"\t{line}")


def finish(result: ProcessingResult) -> None:
    """Print a processor result; exit with status 1 on error.

    Args:
        result (ProcessingResult): Result returned by a processor

    Note:
        Report lines in metadata["report"] go to stdout, everything else to
        stderr so reports can be redirected to a file.
    """
    if result.status != "success":
        print(f"Error: {result.message}", file=sys.stderr)
        sys.exit(1)

    for line in result.metadata.get("report", []):
        print(line)
    skipped = result.metadata.get("skipped")
    if skipped:
        print(f"Skipped: {', '.join(skipped)}", file=sys.stderr)
    print(result.message, file=sys.stderr)


def add_qa_field_arguments(parser: argparse.ArgumentParser, flags: List[str],
                           confidence: List[str]) -> None:
    """Add one option per QA field: plain flags, and fields taking a confidence level."""
    parser.add_argument(
        "--all",
        nargs="?",
        const="med",
        metavar="LEVEL",
        help="Unpack every field, confidence fields at LEVEL (default: med)"
    )
    for key in flags:
        parser.add_argument(f"--{key}", action="store_true", help=f"Unpack the {key} bit")
    for key in confidence:
        parser.add_argument(
            f"--{key}",
            nargs="?",
            const="med",
            choices=["low", "med", "high"],
            help=f"Unpack {key} at a confidence level: low, med or high (default: med)"
        )
    parser.add_argument(
        "--combine",
        action="store_true",
        help="Write one mask flagging pixels where any selected field is set"
    )


def selected_qa_fields(args: argparse.Namespace, flags: List[str],
                       confidence: List[str]) -> Dict[str, Optional[str]]:
    """Collect the QA fields chosen on the command line with their levels."""
    fields: Dict[str, Optional[str]] = {key: None for key in flags if getattr(args, key)}
    fields.update({key: getattr(args, key) for key in confidence if getattr(args, key)})
    return fields
