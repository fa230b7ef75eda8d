#!/usr/bin/env python3
"""
Command-line interface for melt.

Decomposes a guide tree into size-bounded taxon ranges, writes one
sub-alignment per range, and stores the per-range non-gap count index.
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from ._backend import BACKENDS
from ._melt import oneshot_melt


class PositiveIntegerAction(argparse.Action):
    """Reject integer arguments below 1."""

    def __call__(self, parser, namespace, values, option_string=None):
        if values < 1:
            parser.error(f"{option_string} must be a positive integer, got {values}")
        setattr(namespace, self.dest, values)


def setup_argument_parser() -> argparse.ArgumentParser:
    """
    Configure and return the argument parser.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="melt",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-i",
        "--input",
        help="Path to the FASTA alignment",
        required=True,
        type=Path,
    )
    parser.add_argument(
        "-t",
        "--tree",
        help="Path to the NEWICK guide tree",
        required=True,
        type=Path,
    )
    parser.add_argument(
        "-m",
        "--max-size",
        help="Split units holding at least this many taxa",
        required=True,
        type=int,
        action=PositiveIntegerAction,
    )
    parser.add_argument(
        "-o",
        "--outdir",
        help="Output directory for subsets/ and melt.json",
        required=True,
        type=Path,
    )
    parser.add_argument(
        "--gap",
        help="Gap symbol (default: '-')",
        default="-",
    )
    parser.add_argument(
        "--backend",
        help="Execution backend (default: best)",
        choices=("best",) + BACKENDS,
        default="best",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug messages"
    )
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Log warnings and errors only"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = setup_argument_parser()
    args = parser.parse_args(argv)

    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    oneshot_melt(
        args.input,
        args.tree,
        args.max_size,
        args.outdir,
        gap=args.gap,
        backend=args.backend,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
