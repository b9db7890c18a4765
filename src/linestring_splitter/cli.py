"""Command line interface: ``linestring-splitter [OPTIONS] INFILE OUTFILE``."""

from __future__ import annotations

import argparse
import logging
import sys

from .errors import SplitterError
from .models import (
    DEFAULT_MAX_LENGTH,
    DEFAULT_MIN_LENGTH,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_TRANSACTION_SIZE,
    Options,
)
from .pipeline import split_dataset
from .writer import parse_creation_options

logger = logging.getLogger("linestring_splitter")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linestring-splitter",
        description="Split the linestrings of INFILE into parts no longer than the maximum length.",
    )
    parser.add_argument("infile", metavar="INFILE", help="Input dataset (shapefile, KML or KMZ)")
    parser.add_argument("outfile", metavar="OUTFILE", help="Output dataset")
    parser.add_argument(
        "-f", "--format", default=DEFAULT_OUTPUT_FORMAT, help=f"Output format (default: {DEFAULT_OUTPUT_FORMAT})"
    )
    parser.add_argument(
        "--dsco", action="append", metavar="KEY=VALUE", help="Dataset creation options for output format"
    )
    parser.add_argument("--lco", action="append", metavar="KEY=VALUE", help="Layer creation options for output format")
    parser.add_argument(
        "--gt",
        type=int,
        default=DEFAULT_TRANSACTION_SIZE,
        metavar="NUMBER",
        help="Group NUMBER features per transaction (0: one transaction for the whole run)",
    )
    parser.add_argument(
        "--geographic",
        action="store_true",
        help="Treat coordinates as geographic (lat/long) and calculate distances on a sphere. "
        "Not required if the coordinate system is recognized correctly.",
    )
    parser.add_argument(
        "-m",
        "--min-length",
        type=float,
        default=DEFAULT_MIN_LENGTH,
        metavar="NUM",
        help="Minimum length of a linestring; closed rings with more than 5 points are always kept",
    )
    parser.add_argument(
        "-M", "--max-length", type=float, default=DEFAULT_MAX_LENGTH, metavar="NUM", help="Maximum length of a linestring"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    try:
        options = Options.build(
            min_length=args.min_length,
            max_length=args.max_length,
            geographic=args.geographic,
            transaction_size=args.gt,
            output_format=args.format,
            dataset_creation_options=parse_creation_options(args.dsco),
            layer_creation_options=parse_creation_options(args.lco),
        )
        summary = split_dataset(args.infile, args.outfile, options)
    except SplitterError as exc:
        logger.error("ERROR: %s", exc)
        return 1

    logger.info(
        "Read %d features, skipped %d short linestrings, wrote %d linestrings in %d commits (%s distances)",
        summary.features_read,
        summary.lines_skipped,
        summary.segments_written,
        summary.commits,
        "geographic" if summary.geographic else "planar",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
