"""
Error taxonomy for the normalization pipeline.

Every numerical stage either produces a complete matrix or raises one of
these exceptions. Nothing is retried and no default is substituted: the
pipeline is deterministic, so the same input fails the same way every time.

Hierarchy:
    DomainError (ValueError)
        ShapeMismatchError   - sample/gene sets or dimensions disagree
        DegenerateInputError - too little signal to compute anything
        NumericDomainError   - value outside a function's domain (log of negative)

DomainError subclasses ValueError so callers that already catch ValueError
around data-loading code keep working.
"""

from __future__ import annotations

__all__ = [
    'DomainError',
    'ShapeMismatchError',
    'DegenerateInputError',
    'NumericDomainError',
]


class DomainError(ValueError):
    """Base class for all numerical-pipeline failures."""


class ShapeMismatchError(DomainError):
    """
    Raised when labelled inputs do not line up.

    Examples: size factors covering a different sample set than the count
    matrix, a correlation matrix whose rows and columns differ, or condition
    labels missing for some samples.
    """


class DegenerateInputError(DomainError):
    """
    Raised when the input cannot support the requested computation.

    Examples: every gene has zero total count, fewer than two samples for
    correlation/clustering, or a size factor that is not strictly positive.
    """


class NumericDomainError(DomainError):
    """Raised for values outside a function's domain (negative counts, log of negatives)."""
