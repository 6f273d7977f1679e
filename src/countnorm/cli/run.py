"""
countnorm run - full normalization pipeline on a count table.

Loads a featureCounts-style table, removes all-zero genes, estimates size
factors, writes normalized / log2 / stabilized matrices, the sample
correlation matrix and its hierarchical clustering.

Usage:
    countnorm run --input counts.txt --output results/run1
    countnorm run -i counts.txt -o results/run1 --stabilizer rlog --no-blind
    countnorm run --config pipeline.yaml --linkage complete
"""

import argparse
import logging
from datetime import datetime
from pathlib import Path

from countnorm.cli._validators import _positive_float, _positive_int

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Normalize, stabilize and cluster a count table",
        description=(
            "Size-factor normalization, log2 and variance-stabilizing transforms, "
            "sample correlation and hierarchical clustering of an RNA-seq count table."
        )
    )

    # Input/output
    parser.add_argument("--input", "-i", type=Path, default=None,
                        help="Count table (featureCounts output or genes x samples matrix)")
    parser.add_argument("--output", "-o", type=Path, default=None,
                        help="Output directory")
    parser.add_argument("--format", choices=["featurecounts", "htseq", "generic"],
                        default="featurecounts",
                        help="Count table layout (default: featurecounts)")
    parser.add_argument("--metadata", "-m", type=Path, default=None,
                        help="Sample metadata CSV/TSV with a 'condition' column "
                             "(default: infer conditions from sample names)")
    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (optional, CLI args override config values)")

    # Pipeline parameters
    parser.add_argument("--stabilizer", choices=["vst", "rlog"], default="vst",
                        help="Variance-stabilizing transform (default: vst)")
    parser.add_argument("--no-blind", dest="blind", action="store_false", default=True,
                        help="Use condition labels when estimating dispersions")
    parser.add_argument("--fit-type", choices=["parametric", "local", "mean"],
                        default="parametric",
                        help="Mean-dispersion trend (default: parametric)")
    parser.add_argument("--linkage", choices=["average", "complete"], default="average",
                        help="Hierarchical clustering linkage (default: average)")
    parser.add_argument("--pseudocount", type=_positive_float, default=1.0,
                        help="Pseudocount for the log2 transform (default: 1)")
    parser.add_argument("--min-total", type=_positive_int, default=1,
                        help="Drop genes with total count below this (default: 1)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")

    parser.set_defaults(func=run_pipeline_command)


def run_pipeline_command(args: argparse.Namespace) -> int:
    """Execute the run command."""
    from countnorm.core.errors import DomainError
    from countnorm.io.loaders import load_count_table
    from countnorm.io.metadata import load_sample_metadata
    from countnorm.io.writers import (
        write_correlation,
        write_csv_matrix,
        write_dendrogram,
        write_run_summary,
        write_sample_metadata,
        write_size_factors,
    )
    from countnorm.pipeline import run_pipeline

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    # Load and merge config file if provided
    if args.config:
        from countnorm.cli.config import load_config, merge_config_with_args, validate_config

        logger.info(f"Loading configuration from: {args.config}")
        try:
            config = load_config(args.config)
            validate_config(config)
            args = merge_config_with_args(config, args, getattr(args, "cli_args", None))
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Config file error: {e}")
            return 1

    # Validate required arguments (after config merge)
    if not args.input:
        logger.error("--input is required (via CLI or config file)")
        return 1
    if not args.output:
        logger.error("--output is required (via CLI or config file)")
        return 1

    start_time = datetime.now()
    output = Path(args.output)

    try:
        conditions = load_sample_metadata(Path(args.metadata)) if args.metadata else None
        counts = load_count_table(Path(args.input), fmt=args.format, conditions=conditions)
        result = run_pipeline(
            counts,
            stabilizer=args.stabilizer,
            blind=args.blind,
            fit_type=args.fit_type,
            linkage=args.linkage,
            pseudocount=args.pseudocount,
            min_total=args.min_total,
        )
    except DomainError as e:
        logger.error(f"Pipeline failed: {e}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not load input: {e}")
        return 1

    output.mkdir(parents=True, exist_ok=True)
    write_csv_matrix(result.normalized, output / "normalized")
    write_csv_matrix(result.log, output / "log2")
    write_csv_matrix(result.stabilized, output / f"{args.stabilizer}")
    write_size_factors(result.size_factors, output / "size_factors.csv")
    write_sample_metadata(result.counts, output / "samples.csv")
    write_correlation(result.correlation, output / "correlation.csv")
    write_dendrogram(result.dendrogram, output / "linkage.csv")

    summary = result.summary()
    summary["input"] = str(args.input)
    summary["started"] = start_time.isoformat(timespec="seconds")
    summary["elapsed_seconds"] = round((datetime.now() - start_time).total_seconds(), 3)
    write_run_summary(summary, output / "summary.json")

    logger.info(f"Sample order: {', '.join(map(str, result.dendrogram.leaf_order))}")
    logger.info(f"Done in {summary['elapsed_seconds']}s. Results in {output}")
    return 0
