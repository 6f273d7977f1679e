"""
countnorm - Size-factor normalization and variance stabilization for RNA-seq counts

Turns a per-gene read-count table into depth-normalized, log-transformed and
variance-stabilized matrices, then compares samples by correlation and
hierarchical clustering.
"""

__version__ = "0.1.0"

from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale
from countnorm.core.transform import Transform
from countnorm.core.errors import (
    DomainError,
    ShapeMismatchError,
    DegenerateInputError,
    NumericDomainError,
)
from countnorm.pipeline import PipelineResult, run_pipeline

__all__ = [
    "ExpressionMatrix",
    "MatrixScale",
    "Transform",
    "DomainError",
    "ShapeMismatchError",
    "DegenerateInputError",
    "NumericDomainError",
    "PipelineResult",
    "run_pipeline",
]
