"""
Measurement scale tags for expression matrices.

A count table passes through several numerically distinct representations
on its way to a clustering. They share a shape and labels, but mixing them
up is a classic source of silent errors (log-transforming twice, estimating
size factors from already-normalized values, correlating raw counts).

Each ExpressionMatrix carries exactly one MatrixScale so that operations can
check their precondition before touching the data.

Examples:
    >>> from countnorm.core.scale import MatrixScale
    >>> MatrixScale.COUNTS.is_log
    False
    >>> MatrixScale.STABILIZED.is_log
    True
"""

from __future__ import annotations

from enum import Enum

__all__ = ['MatrixScale']


class MatrixScale(Enum):
    """
    Scale of the values stored in an ExpressionMatrix.

    Attributes:
        COUNTS: Raw non-negative integer read counts
        NORMALIZED: Counts divided by per-sample size factors
        LOG2: log2(value + pseudocount) of counts or normalized counts
        STABILIZED: Output of a variance-stabilizing transform (log2-like)
    """

    COUNTS = "counts"
    """Raw read counts from the feature-counting tool (integers >= 0)."""

    NORMALIZED = "normalized"
    """Depth-corrected counts: raw / size factor. Real-valued, >= 0."""

    LOG2 = "log2"
    """Pseudocount log2 transform. Variance still depends on the mean."""

    STABILIZED = "stabilized"
    """vst/rlog output. Approximately mean-independent variance."""

    @property
    def is_log(self) -> bool:
        """True for scales already on a log2-like axis."""
        return self in (MatrixScale.LOG2, MatrixScale.STABILIZED)
