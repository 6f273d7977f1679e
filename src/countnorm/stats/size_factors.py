"""
Median-of-ratios size factor estimation for RNA-seq count data.

Sequencing depth differs between libraries, and a handful of very highly
expressed, strongly changing genes can dominate a library's total count.
Total-count ratios are therefore a poor depth estimate. The median-of-ratios
estimator compares each sample to a per-gene pseudo-reference sample and
takes the median ratio, which is insensitive to a minority of
differentially expressed genes.

Algorithm:
    1. Pseudo-reference per gene = geometric mean of its strictly positive
       counts, exp(mean(log(x[x > 0]))). Zeros are excluded from both the
       product and the root. All-zero genes have no reference and are
       dropped.
    2. Ratio for every (gene, sample) = count / pseudo-reference. A zero
       count gives ratio 0 and is kept.
    3. Size factor of a sample = median of its ratios over genes with a
       reference.

The zero-handling in steps 1 and 3 is deliberate and differs from the
classic "only genes with no zeros" estimator: a gene that is silent in one
sample still provides a reference for the others and pulls that sample's
median towards zero.

References:
    Anders & Huber (2010) Genome Biology 11:R106
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from countnorm.core.errors import DegenerateInputError, NumericDomainError
from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale

logger = logging.getLogger(__name__)

__all__ = [
    'SizeFactorResult',
    'positive_geometric_mean',
    'median',
    'estimate_size_factors',
    'estimate_size_factors_detailed',
]


@dataclass(frozen=True)
class SizeFactorResult:
    """Size factors with the intermediate quantities used to derive them.

    Attributes:
        size_factors: One positive factor per sample (Series indexed by sample id)
        pseudo_reference: Geometric mean per contributing gene (Series indexed by gene id)
        ratios: Ratio matrix (contributing genes x samples)
        n_genes_used: Number of genes with a defined pseudo-reference
        n_genes_excluded: Number of all-zero genes skipped
    """

    size_factors: pd.Series
    pseudo_reference: pd.Series
    ratios: pd.DataFrame
    n_genes_used: int
    n_genes_excluded: int


def positive_geometric_mean(values: NDArray[np.float64]) -> float:
    """
    Geometric mean over the strictly positive entries of ``values``.

    Returns 0.0 if no entry is positive (undefined reference).

    Examples:
        >>> positive_geometric_mean(np.array([10, 20, 10, 20]))  # sqrt(200)
        14.142135623730951
        >>> round(positive_geometric_mean(np.array([0, 4, 9])), 6)
        6.0
    """
    values = np.asarray(values, dtype=float)
    positive = values[values > 0]
    if positive.size == 0:
        return 0.0
    return float(np.exp(np.mean(np.log(positive))))


def median(values: NDArray[np.float64]) -> float:
    """
    Median of a non-empty sequence, zeros included.

    Even-length input averages the two middle order statistics.

    Raises:
        DegenerateInputError: If ``values`` is empty
    """
    ordered = np.sort(np.asarray(values, dtype=float))
    n = ordered.size
    if n == 0:
        raise DegenerateInputError("median of an empty ratio list is undefined")
    mid = n // 2
    if n % 2:
        return float(ordered[mid])
    return float((ordered[mid - 1] + ordered[mid]) / 2.0)


def _row_positive_geometric_means(counts: NDArray[np.float64]) -> NDArray[np.float64]:
    """Vectorised positive_geometric_mean over rows; 0.0 where a row has no positive entry."""
    positive = counts > 0
    n_positive = positive.sum(axis=1)
    log_counts = np.log(np.where(positive, counts, 1.0))
    log_sums = np.where(positive, log_counts, 0.0).sum(axis=1)
    with np.errstate(invalid='ignore', divide='ignore'):
        log_means = log_sums / n_positive
    return np.where(n_positive > 0, np.exp(log_means), 0.0)


def estimate_size_factors_detailed(counts: ExpressionMatrix) -> SizeFactorResult:
    """
    Median-of-ratios size factors with diagnostics.

    Args:
        counts: COUNTS-scale ExpressionMatrix (genes x samples)

    Returns:
        SizeFactorResult

    Raises:
        NumericDomainError: If the matrix is not on the COUNTS scale
        DegenerateInputError: If every gene is all-zero, or a sample ends
            up with a size factor that is not strictly positive
    """
    if counts.scale is not MatrixScale.COUNTS:
        raise NumericDomainError(
            f"size factors are estimated from raw counts, got scale '{counts.scale.value}'"
        )
    if counts.n_samples == 0:
        raise DegenerateInputError("count matrix has no samples")

    data = counts.data.astype(float)
    reference = _row_positive_geometric_means(data)
    has_reference = reference > 0
    n_used = int(has_reference.sum())
    n_excluded = counts.n_genes - n_used

    if n_used == 0:
        raise DegenerateInputError(
            "every gene has zero total count; size factors cannot be estimated"
        )
    if n_excluded:
        logger.debug(f"Skipping {n_excluded} all-zero genes in pseudo-reference")

    ratios = data[has_reference, :] / reference[has_reference, None]

    factors = np.array([median(ratios[:, j]) for j in range(counts.n_samples)])

    non_positive = factors <= 0
    if non_positive.any():
        bad = list(counts.sample_ids[non_positive])
        raise DegenerateInputError(
            f"size factor is not positive for samples {bad}: more than half of "
            "their ratios are zero"
        )

    gene_ids = counts.gene_ids[has_reference]
    size_factors = pd.Series(factors, index=counts.sample_ids.copy(), name="size_factor")

    logger.info(
        f"Estimated size factors from {n_used} genes "
        f"(range {factors.min():.3f}-{factors.max():.3f})"
    )

    return SizeFactorResult(
        size_factors=size_factors,
        pseudo_reference=pd.Series(reference[has_reference], index=gene_ids, name="pseudo_reference"),
        ratios=pd.DataFrame(ratios, index=gene_ids, columns=counts.sample_ids),
        n_genes_used=n_used,
        n_genes_excluded=n_excluded,
    )


def estimate_size_factors(counts: ExpressionMatrix) -> pd.Series:
    """
    Per-sample size factors by the median-of-ratios method.

    Args:
        counts: COUNTS-scale ExpressionMatrix

    Returns:
        Series of strictly positive factors indexed by sample id

    Examples:
        >>> sf = estimate_size_factors(counts)
        >>> normalized = normalize(counts, sf)
    """
    return estimate_size_factors_detailed(counts).size_factors
