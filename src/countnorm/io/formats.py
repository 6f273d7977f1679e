"""
Format configuration for count tables.

Feature-counting tools agree on the essentials (one row per gene, one
integer column per sample) but differ in the columns around them:

featureCounts:
    # Program:featureCounts v2.0.1; Command:"featureCounts" ...
    Geneid  Chr  Start  End  Strand  Length  /data/WT_1.bam  /data/WT_2.bam ...

Generic matrix (e.g. exported from R):
    "",WT_1,WT_2,KO_1,KO_2
    ENSG00000000003,612,1056,...

Auto-detect what is safe (delimiter), require explicit configuration
for semantics (which columns are annotation rather than counts).

Examples:
    >>> from countnorm.io.formats import PRESETS
    >>> fmt = PRESETS['featurecounts']
    >>> fmt.metadata_columns
    ('Chr', 'Start', 'End', 'Strand', 'Length')
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

__all__ = [
    'FEATURECOUNTS_METADATA_COLUMNS',
    'CountTableFormat',
    'PRESETS',
    'sniff_delimiter',
]

FEATURECOUNTS_METADATA_COLUMNS = ('Chr', 'Start', 'End', 'Strand', 'Length')

# HTSeq-count summary rows, not genes
HTSEQ_SPECIAL_ROWS = (
    '__no_feature',
    '__ambiguous',
    '__too_low_aQual',
    '__not_aligned',
    '__alignment_not_unique',
)


@dataclass(frozen=True)
class CountTableFormat:
    """
    How to read a count table.

    Attributes:
        name: Human-readable format name
        delimiter: Column delimiter (None = sniff from '\\t', ',', ';', '|')
        comment: Lines starting with this are skipped (None = no comments)
        index_col: Column holding gene identifiers
        metadata_columns: Non-count columns to strip (matched case-insensitively)
        drop_rows: Row identifiers to drop (tool summary rows)
    """

    name: str = "generic"
    delimiter: Optional[str] = None
    comment: Optional[str] = "#"
    index_col: int = 0
    metadata_columns: tuple = ()
    drop_rows: tuple = ()

    def with_options(self, **changes) -> CountTableFormat:
        """Copy with some fields replaced."""
        return replace(self, **changes)


PRESETS = {
    'featurecounts': CountTableFormat(
        name="featureCounts",
        delimiter='\t',
        comment='#',
        metadata_columns=FEATURECOUNTS_METADATA_COLUMNS,
    ),
    'htseq': CountTableFormat(
        name="HTSeq-count matrix",
        delimiter='\t',
        comment=None,
        drop_rows=HTSEQ_SPECIAL_ROWS,
    ),
    'generic': CountTableFormat(),
}


def sniff_delimiter(path: Path, comment: Optional[str] = "#", sample_size: int = 8192) -> str:
    """
    Auto-detect delimiter from file content.

    Comment lines are ignored. Uses csv.Sniffer with a first-line count
    fallback.

    Raises:
        ValueError: If delimiter cannot be determined
    """
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        sample = f.read(sample_size)

    lines = [
        line for line in sample.splitlines()
        if line.strip() and not (comment and line.startswith(comment))
    ]
    body = "\n".join(lines)

    try:
        dialect = csv.Sniffer().sniff(body, delimiters='\t,;|')
        return dialect.delimiter
    except csv.Error:
        pass

    first_line = lines[0] if lines else ""
    counts = {
        '\t': first_line.count('\t'),
        ',': first_line.count(','),
        ';': first_line.count(';'),
    }

    if max(counts.values()) == 0:
        raise ValueError(
            f"Could not detect delimiter in {path}. "
            "Please specify it explicitly"
        )

    return max(counts, key=counts.get)
