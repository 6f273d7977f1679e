"""
Mean-sd diagnostics for judging variance stabilization.

The usual visual check (a "meanSdPlot") ranks genes by their mean across
samples and plots each gene's standard deviation against that rank, with a
running median on top. On the log2(x + 1) scale the running median rises
sharply at low ranks; after a successful stabilization it is roughly flat.

This module computes the numbers behind that plot so the property can be
asserted without rendering anything.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from countnorm.core.errors import DegenerateInputError
from countnorm.core.matrix import ExpressionMatrix

__all__ = ['mean_sd_trend', 'trend_flatness']


def mean_sd_trend(matrix: ExpressionMatrix, window: Optional[int] = None) -> pd.DataFrame:
    """
    Per-gene mean, sd and running median of sd over mean rank.

    Args:
        matrix: Any ExpressionMatrix with at least 2 samples
        window: Running-median window in genes (default: 10% of genes, min 3)

    Returns:
        DataFrame indexed by gene id, sorted by mean, with columns
        'rank' (0..1), 'mean', 'sd', 'running_median_sd'

    Raises:
        DegenerateInputError: With fewer than 2 samples or no genes
    """
    if matrix.n_samples < 2:
        raise DegenerateInputError("standard deviation needs at least 2 samples")
    if matrix.n_genes == 0:
        raise DegenerateInputError("matrix has no genes")

    means = matrix.data.mean(axis=1)
    sds = matrix.data.std(axis=1, ddof=1)

    order = np.argsort(means, kind="stable")
    n = len(order)
    if window is None:
        window = max(3, n // 10)

    df = pd.DataFrame(
        {
            'rank': np.arange(n) / max(n - 1, 1),
            'mean': means[order],
            'sd': sds[order],
        },
        index=matrix.gene_ids[order],
    )
    df['running_median_sd'] = (
        df['sd'].rolling(window=window, center=True, min_periods=1).median().to_numpy()
    )
    return df


def trend_flatness(trend: pd.DataFrame, low: float = 0.5) -> float:
    """
    Ratio of the peak running-median sd among low-ranked genes to the
    median sd among the rest.

    Values near 1 indicate a flat mean-sd relationship; values well above 1
    are the low-count variance inflation stabilization is meant to remove.

    Args:
        trend: Output of mean_sd_trend()
        low: Rank cutoff separating low from high expressed genes
    """
    low_part = trend.loc[trend['rank'] <= low, 'running_median_sd']
    high_part = trend.loc[trend['rank'] > low, 'sd']
    if low_part.empty or high_part.empty:
        raise DegenerateInputError("not enough genes on both sides of the rank cutoff")
    return float(low_part.max() / high_part.median())
