"""
Base transformation framework for immutable matrix operations.

Every pipeline stage that maps one ExpressionMatrix to another (zero-count
filtering, size-factor normalization, log transform, variance
stabilization) is a Transform: a pure function with recorded parameters.

Biological Context:
    A count table goes through a fixed sequence before it is fit for
    clustering or PCA:
    1. Remove genes with no reads in any sample
    2. Correct for sequencing depth (size factors)
    3. Move to a log scale
    4. Stabilize variance for low-count genes

    Each step must be:
    - Reproducible (same input -> same output)
    - Auditable (parameters recorded for the methods section)
    - Non-destructive (the input matrix stays usable)

Examples:
    >>> from countnorm.core.transform import Transform
    >>> from countnorm.core.scale import MatrixScale
    >>>
    >>> class Asinh(Transform):
    ...     def __init__(self):
    ...         super().__init__(name="Asinh", params={})
    ...
    ...     def apply(self, matrix):
    ...         import numpy as np
    ...         return matrix.with_data(np.arcsinh(matrix.data), MatrixScale.LOG2)
    >>>
    >>> transformed = Asinh().apply(counts)
    >>> # counts is unchanged
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, TYPE_CHECKING
from datetime import datetime

if TYPE_CHECKING:
    from countnorm.core.matrix import ExpressionMatrix

__all__ = ['Transform', 'describe_chain']


class Transform(ABC):
    """
    Abstract base class for all matrix transformations.

    Transformations take a matrix and parameters and return a new matrix.
    The input matrix is never modified.

    Attributes:
        name: Human-readable transformation name (e.g., "LogTransform")
        params: Dictionary of parameters used for this transformation
        timestamp: When this transform instance was created (for audit trail)
    """

    #: Scales this transform accepts as input. Empty means any scale.
    accepts: tuple = ()

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        """
        Initialize transformation with name and parameters.

        Args:
            name: Human-readable transformation name
            params: Dictionary of parameters. Must be JSON-serializable for
                the run summary.
        """
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        """
        Execute transformation and return new matrix.

        Must never modify the input matrix.

        Args:
            matrix: Input ExpressionMatrix to transform

        Returns:
            New ExpressionMatrix with transformation applied (input unchanged)

        Raises:
            DomainError: If the transformation cannot be applied
        """
        pass

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        """
        Check preconditions before applying transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if matrix.data.size == 0:
            errors.append("Cannot process empty matrix")

        if self.accepts and matrix.scale not in self.accepts:
            expected = ", ".join(s.value for s in self.accepts)
            errors.append(
                f"{self.name} expects a matrix on scale [{expected}], got '{matrix.scale.value}'"
            )

        return errors

    def __repr__(self) -> str:
        """
        String representation for logging.

        Returns:
            String like "LogTransform(pseudocount=1.0)"
        """
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"


def describe_chain(transforms: Iterable[Transform]) -> str:
    """Render a sequence of transforms as "A(...) -> B(...)" for log lines."""
    return " -> ".join(repr(t) for t in transforms)
