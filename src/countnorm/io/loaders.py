"""
Loader for per-gene read-count tables.

Reads the output of a feature-counting tool into a COUNTS-scale
ExpressionMatrix. Handles tool comment lines, strips annotation columns
(chromosome, coordinates, gene length), cleans sample names and attaches
a condition label per sample.

Biological Context:
    featureCounts writes one row per gene with its genomic coordinates and
    length followed by one count column per BAM file, the column header
    being the BAM path. Only the count columns enter normalization; gene
    length matters for TPM/FPKM but not for size-factor normalization.

Engineering Design:
    - Robust error handling for malformed tables
    - Clear validation messages (non-numeric, negative, fractional counts)
    - Duplicate gene ids: warn and keep the first occurrence
    - Preset formats with explicit metadata-column configuration

Examples:
    >>> from pathlib import Path
    >>> from countnorm.io.loaders import load_count_table
    >>>
    >>> counts = load_count_table(Path("counts.txt"))
    >>> print(f"Loaded {counts.n_genes} genes × {counts.n_samples} samples")
    >>> counts.sample_metadata['condition'].value_counts()
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Mapping, Optional

import numpy as np
import pandas as pd

from countnorm.core.errors import NumericDomainError
from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale
from countnorm.io.formats import PRESETS, CountTableFormat, sniff_delimiter
from countnorm.io.metadata import build_sample_metadata, clean_sample_name

logger = logging.getLogger(__name__)

__all__ = ['load_count_table', 'read_count_frame']


def read_count_frame(path: Path, fmt: CountTableFormat = PRESETS['featurecounts']) -> pd.DataFrame:
    """
    Read a count table into a genes x samples DataFrame of integers.

    Annotation columns named in ``fmt.metadata_columns`` are dropped
    (case-insensitive); everything else must be numeric.

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the table is empty, has no count columns, or contains
            non-numeric values
        NumericDomainError: If counts are negative or fractional
    """
    if not isinstance(path, Path):
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Count table not found: {path}")

    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")

    delimiter = fmt.delimiter or sniff_delimiter(path, comment=fmt.comment)

    try:
        df = pd.read_csv(path, sep=delimiter, comment=fmt.comment, index_col=fmt.index_col)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"Count table is empty: {path}") from e
    except Exception as e:
        raise ValueError(f"Failed to read count table {path}: {e}") from e

    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)

    # Strip annotation columns
    wanted = {c.lower() for c in fmt.metadata_columns}
    annotation = [c for c in df.columns if c.lower() in wanted]
    if annotation:
        logger.debug(f"Dropping annotation columns: {annotation}")
        df = df.drop(columns=annotation)

    if fmt.drop_rows:
        df = df.loc[~df.index.isin(fmt.drop_rows)]

    if df.shape[1] == 0:
        raise ValueError(f"Count table contains no sample columns: {path}")
    if df.shape[0] == 0:
        raise ValueError(f"Count table contains no genes: {path}")

    # Check for duplicate gene IDs
    if df.index.duplicated().any():
        n_duplicates = df.index.duplicated().sum()
        warnings.warn(
            f"Found {n_duplicates} duplicate gene IDs. "
            "Using first occurrence of each.",
            UserWarning
        )
        df = df[~df.index.duplicated(keep='first')]

    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(
            f"Count table has non-numeric columns {non_numeric}; "
            "add them to the format's metadata_columns if they are annotations"
        )

    values = df.to_numpy(dtype=float)
    if np.isnan(values).any():
        raise ValueError(f"Count table contains {int(np.isnan(values).sum())} missing values")
    if (values < 0).any():
        raise NumericDomainError(f"Count table contains negative counts: {path}")
    if not np.array_equal(values, np.floor(values)):
        raise NumericDomainError(
            f"Count table contains fractional values: {path}. "
            "Expected integer read counts"
        )

    return df.astype(np.int64)


def load_count_table(
    path: Path,
    fmt: CountTableFormat | str = 'featurecounts',
    clean_names: bool = True,
    conditions: Optional[Mapping[str, str]] = None,
) -> ExpressionMatrix:
    """
    Load a count table into a COUNTS-scale ExpressionMatrix.

    Args:
        path: Path to the count table
        fmt: CountTableFormat or preset name ('featurecounts', 'htseq', 'generic')
        clean_names: Strip directories and alignment suffixes from sample names
        conditions: Explicit sample -> condition mapping (keys are the cleaned
            names when clean_names=True). If None, conditions are inferred
            from sample names.

    Returns:
        ExpressionMatrix with a 'condition' column in sample_metadata

    Raises:
        FileNotFoundError, ValueError, NumericDomainError: See read_count_frame
        ShapeMismatchError: If cleaning makes sample names collide, or an
            explicit condition mapping misses samples
    """
    if isinstance(fmt, str):
        try:
            fmt = PRESETS[fmt]
        except KeyError:
            raise ValueError(
                f"Unknown count table format '{fmt}'. Choose from: {', '.join(PRESETS)}"
            ) from None

    df = read_count_frame(path, fmt)

    if clean_names:
        df.columns = [clean_sample_name(c) for c in df.columns]

    sample_metadata = build_sample_metadata(df.columns, conditions)

    matrix = ExpressionMatrix(
        data=df.to_numpy(dtype=float),
        gene_ids=pd.Index(df.index),
        sample_ids=pd.Index(df.columns),
        sample_metadata=sample_metadata,
        scale=MatrixScale.COUNTS,
    )
    logger.info(f"Loaded {matrix.n_genes} genes × {matrix.n_samples} samples from {path}")
    return matrix
