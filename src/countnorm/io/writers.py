"""
CSV/JSON writers for pipeline outputs.

The core keeps everything in memory; these helpers put results on disk in
formats R, Excel and pandas all read. `countnorm run` produces:

    normalized.data.csv   genes x samples (also log2.data.csv, vst.data.csv or rlog.data.csv)
    size_factors.csv      sample_id,size_factor
    samples.csv           sample_id,condition
    correlation.csv       samples x samples
    linkage.csv           scipy linkage matrix with sample members
    summary.json          parameters and per-stage statistics

Engineering Design:
    - Creates parent directories if they don't exist
    - Overwrites existing files without warning
    - JSON summaries are written atomically (temp file + rename)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import pandas as pd

from countnorm.core.matrix import ExpressionMatrix
from countnorm.stats.similarity import Dendrogram
from countnorm.utils.fileio import atomic_write_json

logger = logging.getLogger(__name__)

__all__ = [
    'write_csv_matrix',
    'write_sample_metadata',
    'write_size_factors',
    'write_correlation',
    'write_dendrogram',
    'write_run_summary',
]


def _prepare(path: Path) -> Path:
    if not isinstance(path, Path):
        path = Path(path)
    if path.parent != Path('.') and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_csv_matrix(matrix: ExpressionMatrix, path: Path) -> Path:
    """
    Write an ExpressionMatrix to ``{path}.data.csv``.

    Args:
        matrix: ExpressionMatrix to write
        path: Base path (without extension)

    Returns:
        Path of the written file

    Raises:
        TypeError: If matrix is not an ExpressionMatrix
        ValueError: If matrix is empty
        OSError: If the file cannot be written
    """
    if not isinstance(matrix, ExpressionMatrix):
        raise TypeError(f"matrix must be ExpressionMatrix, got {type(matrix)}")

    if matrix.data.size == 0:
        raise ValueError("Cannot write empty matrix")

    path = _prepare(path)
    data_path = Path(str(path) + ".data.csv")
    try:
        matrix.to_frame().to_csv(data_path)
    except Exception as e:
        raise OSError(f"Failed to write data file {data_path}: {e}") from e
    logger.info(f"Wrote {matrix.scale.value} matrix to {data_path}")
    return data_path


def write_sample_metadata(matrix: ExpressionMatrix, path: Path) -> Path:
    """Write sample annotations (sample_id as first column) to ``path``."""
    if not isinstance(matrix, ExpressionMatrix):
        raise TypeError(f"matrix must be ExpressionMatrix, got {type(matrix)}")

    path = _prepare(path)
    try:
        matrix.sample_metadata.rename_axis('sample_id').reset_index().to_csv(path, index=False)
    except Exception as e:
        raise OSError(f"Failed to write metadata file {path}: {e}") from e
    logger.info(f"Wrote sample metadata to {path}")
    return path


def write_size_factors(size_factors: pd.Series, path: Path) -> Path:
    """Write size factors as a two-column CSV (sample_id, size_factor)."""
    path = _prepare(path)
    size_factors.rename('size_factor').rename_axis('sample_id').to_csv(path)
    logger.info(f"Wrote size factors to {path}")
    return path


def write_correlation(correlation: pd.DataFrame, path: Path) -> Path:
    """Write a samples x samples correlation matrix."""
    path = _prepare(path)
    correlation.to_csv(path)
    logger.info(f"Wrote correlation matrix to {path}")
    return path


def write_dendrogram(dendrogram: Dendrogram, path: Path) -> Path:
    """
    Write the linkage matrix as CSV.

    Columns: left, right, height, size, left_members, right_members.
    Member columns list sample ids joined by ';' so the tree can be read
    without scipy.
    """
    path = _prepare(path)
    merges = dendrogram.merges()
    df = pd.DataFrame(
        {
            'left': dendrogram.linkage[:, 0].astype(int),
            'right': dendrogram.linkage[:, 1].astype(int),
            'height': dendrogram.linkage[:, 2],
            'size': dendrogram.linkage[:, 3].astype(int),
            'left_members': [";".join(sorted(map(str, a))) for a, _, _ in merges],
            'right_members': [";".join(sorted(map(str, b))) for _, b, _ in merges],
        }
    )
    df.to_csv(path, index=False)
    logger.info(f"Wrote {dendrogram.method}-linkage dendrogram to {path}")
    return path


def write_run_summary(summary: Mapping[str, Any], path: Path) -> Path:
    """Write a JSON run summary atomically."""
    path = _prepare(path)
    atomic_write_json(path, dict(summary))
    logger.info(f"Wrote run summary to {path}")
    return path
