"""
Core data structures for count normalization.

1. ExpressionMatrix: gene x sample matrix with labels, sample metadata and scale
2. MatrixScale: which representation a matrix holds (counts, normalized, log2, stabilized)
3. Transform: Abstract base class for immutable matrix transformations
4. DomainError and subclasses: the error taxonomy shared by every stage

Examples:
    >>> from countnorm.core import ExpressionMatrix, MatrixScale
    >>>
    >>> counts = ExpressionMatrix(data, gene_ids, sample_ids)
    >>> counts.scale is MatrixScale.COUNTS
    True
"""

from countnorm.core.errors import (
    DomainError,
    ShapeMismatchError,
    DegenerateInputError,
    NumericDomainError,
)
from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale
from countnorm.core.transform import Transform

__all__ = [
    'ExpressionMatrix',
    'MatrixScale',
    'Transform',
    'DomainError',
    'ShapeMismatchError',
    'DegenerateInputError',
    'NumericDomainError',
]
