"""
Sample names and condition labels.

Count tables label samples with whatever the aligner produced, typically a
path such as ``/scratch/run42/WT_1.sorted.bam``. This module turns those
into clean sample ids and derives a condition label per sample, either
from an explicit table or from the naming convention
``{condition}{separator}{replicate number}``:

    WT_1, WT_2, KO_1, KO_2   ->  WT, WT, KO, KO
    ctrl-rep1, treated-rep3  ->  ctrl, treated

Condition labels never influence size factors or normalization; they are
used only for non-blind stabilization and for grouping in downstream plots.

Examples:
    >>> clean_sample_name("/data/bam/WT_1.sorted.bam")
    'WT_1'
    >>> infer_condition("KO-rep2")
    'KO'
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Mapping, Optional, Sequence

import pandas as pd

from countnorm.core.errors import ShapeMismatchError

logger = logging.getLogger(__name__)

__all__ = [
    'ALIGNMENT_SUFFIXES',
    'clean_sample_name',
    'infer_condition',
    'build_sample_metadata',
    'load_sample_metadata',
]

# longer suffixes first: the first match wins on each pass
ALIGNMENT_SUFFIXES = (
    'Aligned.sortedByCoord.out',
    'Aligned.out',
    '.sortedByCoord.out',
    '.bam',
    '.sam',
    '.cram',
    '.sorted',
    '.dedup',
)

_REPLICATE_SUFFIX = re.compile(r'(?:[_\-.](?:rep(?:licate)?)?|rep(?:licate)?)?\d+$', re.IGNORECASE)


def clean_sample_name(name: str) -> str:
    """Strip directory components and alignment-file suffixes from a sample label."""
    base = re.split(r'[\\/]', str(name).strip())[-1]
    stripped = True
    while stripped:
        stripped = False
        for suffix in ALIGNMENT_SUFFIXES:
            if base.endswith(suffix) and len(base) > len(suffix):
                base = base[: -len(suffix)]
                stripped = True
    return base


def infer_condition(sample_id: str) -> str:
    """
    Condition label from a sample id by dropping a trailing replicate number.

    Ids without a numeric suffix, or consisting only of digits, are
    returned unchanged.
    """
    label = _REPLICATE_SUFFIX.sub('', sample_id)
    return label if label else sample_id


def build_sample_metadata(
    sample_ids: Sequence[str] | pd.Index,
    conditions: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """
    Sample metadata frame with a 'condition' column.

    Args:
        sample_ids: Sample ids, in matrix column order
        conditions: Explicit sample -> condition mapping. If None, labels
            are inferred from the ids.

    Returns:
        DataFrame indexed by sample id

    Raises:
        ShapeMismatchError: If an explicit mapping misses any sample
    """
    index = pd.Index(sample_ids)
    if conditions is None:
        labels = [infer_condition(str(s)) for s in index]
        logger.info(f"Inferred conditions from sample names: {sorted(set(labels))}")
    else:
        missing = [s for s in index if s not in conditions]
        if missing:
            raise ShapeMismatchError(f"no condition given for samples: {missing}")
        labels = [conditions[s] for s in index]
    return pd.DataFrame({'condition': labels}, index=index)


def load_sample_metadata(path: Path, condition_column: str = 'condition') -> dict[str, str]:
    """
    Read an explicit sample -> condition table.

    The first column holds sample ids; ``condition_column`` the labels.
    CSV or TSV, detected from the extension (.tsv/.txt are tab-separated).

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the condition column is missing
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sample metadata file not found: {path}")

    sep = '\t' if path.suffix.lower() in ('.tsv', '.txt') else ','
    df = pd.read_csv(path, sep=sep, index_col=0)
    if condition_column not in df.columns:
        raise ValueError(
            f"Column '{condition_column}' not found in {path}; "
            f"available: {list(df.columns)}"
        )
    return {str(k): str(v) for k, v in df[condition_column].items()}
