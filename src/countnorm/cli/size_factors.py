"""
countnorm size-factors - print median-of-ratios size factors.

Usage:
    countnorm size-factors --input counts.txt
    countnorm size-factors -i counts.txt --output size_factors.csv
"""

import argparse
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the size-factors subcommand."""
    parser = subparsers.add_parser(
        "size-factors",
        help="Estimate per-sample size factors",
        description="Median-of-ratios size factors after removing all-zero genes.",
    )
    parser.add_argument("--input", "-i", type=Path, required=True,
                        help="Count table")
    parser.add_argument("--format", choices=["featurecounts", "htseq", "generic"],
                        default="featurecounts",
                        help="Count table layout (default: featurecounts)")
    parser.add_argument("--output", "-o", type=Path, default=None,
                        help="Write factors to this CSV instead of stdout")
    parser.set_defaults(func=run_size_factors)


def run_size_factors(args: argparse.Namespace) -> int:
    """Execute the size-factors command."""
    from countnorm.core.errors import DomainError
    from countnorm.io.loaders import load_count_table
    from countnorm.io.writers import write_size_factors
    from countnorm.quality.filtering import ZeroCountFilter
    from countnorm.stats.size_factors import estimate_size_factors

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        counts = ZeroCountFilter().apply(load_count_table(args.input, fmt=args.format))
        factors = estimate_size_factors(counts)
    except DomainError as e:
        logger.error(f"Size factor estimation failed: {e}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not load input: {e}")
        return 1

    if args.output:
        write_size_factors(factors, args.output)
    else:
        print(factors.rename_axis("sample_id").to_csv(), end="")
    return 0
