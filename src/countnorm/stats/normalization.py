"""
Depth normalization and log transform for RNA-seq counts.

Implements the two simple stages between raw counts and variance
stabilization:
- Size factor normalization: divide each sample's counts by its size factor
- Pseudocount log transform: log2(x + pseudocount)

Both are exposed as plain functions operating on ExpressionMatrix and as
Transform subclasses for pipeline composition.

The log transform alone does not stabilize variance: for genes with few
reads the Poisson noise dominates and log2(x + 1) inflates their spread.
See countnorm.stats.stabilization for the transforms that address this.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Union

import numpy as np
import pandas as pd

from countnorm.core.errors import NumericDomainError, ShapeMismatchError
from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale
from countnorm.core.transform import Transform
from countnorm.stats.size_factors import estimate_size_factors

logger = logging.getLogger(__name__)

__all__ = [
    'align_size_factors',
    'normalize',
    'log_transform',
    'SizeFactorNormalizer',
    'LogTransform',
]

SizeFactorsLike = Union[pd.Series, Mapping[str, float]]


def align_size_factors(size_factors: SizeFactorsLike, sample_ids: pd.Index) -> np.ndarray:
    """
    Order size factors to match ``sample_ids``.

    Args:
        size_factors: Series or mapping sample id -> factor
        sample_ids: Column order of the target matrix

    Returns:
        1D array of factors in sample_ids order

    Raises:
        ShapeMismatchError: If the sample sets differ
        NumericDomainError: If any factor is not a finite positive number
    """
    if not isinstance(size_factors, pd.Series):
        size_factors = pd.Series(dict(size_factors), dtype=float)

    if size_factors.index.has_duplicates:
        raise ShapeMismatchError("size factors contain duplicate sample ids")

    provided = set(size_factors.index)
    expected = set(sample_ids)
    if provided != expected:
        missing = sorted(map(str, expected - provided))
        extra = sorted(map(str, provided - expected))
        raise ShapeMismatchError(
            f"size factors do not match matrix samples (missing: {missing}, unexpected: {extra})"
        )

    factors = size_factors.reindex(sample_ids).to_numpy(dtype=float)
    if not np.all(np.isfinite(factors)) or np.any(factors <= 0):
        raise NumericDomainError("size factors must be finite and strictly positive")
    return factors


def normalize(counts: ExpressionMatrix, size_factors: SizeFactorsLike) -> ExpressionMatrix:
    """
    Divide raw counts by per-sample size factors.

    entry[g, s] = raw[g, s] / size_factors[s]

    Args:
        counts: COUNTS-scale ExpressionMatrix
        size_factors: Factors keyed by sample id. Order does not matter,
            the set of samples must match exactly.

    Returns:
        NORMALIZED-scale ExpressionMatrix

    Raises:
        ShapeMismatchError: On mismatched sample sets
        NumericDomainError: If counts are not raw counts or factors are invalid
    """
    if counts.scale is not MatrixScale.COUNTS:
        raise NumericDomainError(
            f"normalize expects raw counts, got scale '{counts.scale.value}'"
        )

    factors = align_size_factors(size_factors, counts.sample_ids)
    normalized = counts.data.astype(float) / factors[np.newaxis, :]
    return counts.with_data(normalized, MatrixScale.NORMALIZED)


def log_transform(matrix: ExpressionMatrix, pseudocount: float = 1.0) -> ExpressionMatrix:
    """
    Pseudocount log2 transform: log2(entry + pseudocount).

    Args:
        matrix: COUNTS or NORMALIZED ExpressionMatrix
        pseudocount: Added before the log to keep log(0) defined (default 1)

    Returns:
        LOG2-scale ExpressionMatrix

    Raises:
        NumericDomainError: If the matrix is already log-scaled, has negative
            entries, or entry + pseudocount is not positive somewhere
    """
    if matrix.scale.is_log:
        raise NumericDomainError(
            f"matrix is already on a log scale ('{matrix.scale.value}')"
        )
    if pseudocount < 0:
        raise NumericDomainError(f"pseudocount must be non-negative, got {pseudocount}")

    data = matrix.data.astype(float)
    if np.any(data < 0):
        raise NumericDomainError(
            f"log transform of negative values ({int((data < 0).sum())} entries)"
        )
    shifted = data + pseudocount
    if np.any(shifted <= 0):
        raise NumericDomainError(
            "log transform of zero: use a positive pseudocount for matrices with zero entries"
        )

    return matrix.with_data(np.log2(shifted), MatrixScale.LOG2)


class SizeFactorNormalizer(Transform):
    """
    Transform wrapper around normalize().

    If no size factors are given they are estimated from the matrix being
    transformed (median-of-ratios) and kept on ``size_factors_`` after apply().

    Examples:
        >>> normalizer = SizeFactorNormalizer()
        >>> normalized = normalizer.apply(counts)
        >>> normalizer.size_factors_
    """

    accepts = (MatrixScale.COUNTS,)

    def __init__(self, size_factors: Optional[SizeFactorsLike] = None):
        super().__init__(
            name="SizeFactorNormalizer",
            params={"size_factors": "estimated" if size_factors is None else "provided"},
        )
        self.size_factors = size_factors
        self.size_factors_: Optional[pd.Series] = None

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        if self.size_factors is None:
            factors = estimate_size_factors(matrix)
        elif isinstance(self.size_factors, pd.Series):
            factors = self.size_factors
        else:
            factors = pd.Series(dict(self.size_factors), dtype=float, name="size_factor")
        self.size_factors_ = factors
        return normalize(matrix, factors)


class LogTransform(Transform):
    """Transform wrapper around log_transform()."""

    accepts = (MatrixScale.COUNTS, MatrixScale.NORMALIZED)

    def __init__(self, pseudocount: float = 1.0):
        super().__init__(name="LogTransform", params={"pseudocount": pseudocount})
        self.pseudocount = pseudocount

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        return log_transform(matrix, pseudocount=self.pseudocount)

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if np.any(matrix.data < 0):
            errors.append("Matrix contains negative values (log2 is undefined)")
        return errors
