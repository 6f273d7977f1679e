"""
I/O for count tables and pipeline outputs.

Key Functions:
    - load_count_table: featureCounts-style table -> COUNTS ExpressionMatrix
    - clean_sample_name / infer_condition: sample labels and condition labels
    - write_csv_matrix, write_size_factors, write_correlation,
      write_dendrogram, write_run_summary: results to disk

Examples:
    >>> from countnorm.io import load_count_table, write_csv_matrix
    >>> counts = load_count_table("counts.txt")
    >>> write_csv_matrix(counts, "results/raw")
"""

from countnorm.io.formats import CountTableFormat, PRESETS, FEATURECOUNTS_METADATA_COLUMNS
from countnorm.io.loaders import load_count_table, read_count_frame
from countnorm.io.metadata import (
    clean_sample_name,
    infer_condition,
    build_sample_metadata,
    load_sample_metadata,
)
from countnorm.io.writers import (
    write_csv_matrix,
    write_sample_metadata,
    write_size_factors,
    write_correlation,
    write_dendrogram,
    write_run_summary,
)

__all__ = [
    'CountTableFormat',
    'PRESETS',
    'FEATURECOUNTS_METADATA_COLUMNS',
    'load_count_table',
    'read_count_frame',
    'clean_sample_name',
    'infer_condition',
    'build_sample_metadata',
    'load_sample_metadata',
    'write_csv_matrix',
    'write_sample_metadata',
    'write_size_factors',
    'write_correlation',
    'write_dendrogram',
    'write_run_summary',
]
