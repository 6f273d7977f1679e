"""
countnorm CLI - Command-line interface for count normalization.

Commands:
    countnorm run           - Normalize, stabilize and cluster a count table
    countnorm size-factors  - Estimate per-sample size factors only
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for countnorm."""
    parser = argparse.ArgumentParser(
        prog="countnorm",
        description="Size-factor normalization and variance stabilization for RNA-seq counts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run           Normalize, stabilize and cluster a count table
  size-factors  Estimate per-sample size factors only

Examples:
  countnorm run --input counts.txt --output results/run1
  countnorm run -i counts.txt -o results/run1 --stabilizer rlog --no-blind
  countnorm size-factors --input counts.txt
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Import and register subcommands
    from countnorm.cli import run, size_factors
    run.register_parser(subparsers)
    size_factors.register_parser(subparsers)

    argv = list(sys.argv[1:] if args is None else args)
    parsed_args = parser.parse_args(argv)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    # Raw arguments after the subcommand, for config-file override detection
    parsed_args.cli_args = argv[argv.index(parsed_args.command) + 1:]

    # Dispatch to subcommand
    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
