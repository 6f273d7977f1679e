"""
Gene filtering before size-factor estimation.

Genes with no reads in any sample carry no information about sequencing
depth and have no pseudo-reference. They are removed once, at ingestion,
and every downstream matrix is built from the retained rows. Removal changes
size factors, so it must happen before estimation, never after.

Implements the Transform interface for composable pipelines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Set
import numpy as np

from countnorm.core.errors import DegenerateInputError
from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale
from countnorm.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = ['ZeroCountFilter', 'CountFilterResult']


@dataclass
class CountFilterResult:
    """Genes kept and removed by a count filter."""
    passed_genes: Set[str]
    failed_genes: Set[str]
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_passed(self) -> int:
        return len(self.passed_genes)

    @property
    def n_failed(self) -> int:
        return len(self.failed_genes)

    @property
    def pass_rate(self) -> float:
        total = self.n_passed + self.n_failed
        return self.n_passed / total if total > 0 else 0.0


class ZeroCountFilter(Transform):
    """
    Remove genes whose total count across samples is below ``min_total``.

    With the default min_total=1 this drops exactly the all-zero genes.

    Params:
        min_total: Minimum summed count across all samples to keep a gene.

    Raises (from apply):
        DegenerateInputError: If no gene survives

    Examples:
        >>> expressed = ZeroCountFilter().apply(counts)
        >>> result = ZeroCountFilter().get_passing_genes(counts)
        >>> result.n_failed
        12
    """

    accepts = (MatrixScale.COUNTS,)

    def __init__(self, min_total: int = 1):
        if min_total < 1:
            raise ValueError(f"min_total must be at least 1, got {min_total}")
        super().__init__(name="ZeroCountFilter", params={"min_total": min_total})
        self.min_total = min_total

    def _compute_keep_mask(self, matrix: ExpressionMatrix) -> np.ndarray:
        return matrix.data.sum(axis=1) >= self.min_total

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        keep_mask = self._compute_keep_mask(matrix)

        n_kept = int(keep_mask.sum())
        n_removed = matrix.n_genes - n_kept
        if n_kept == 0:
            raise DegenerateInputError(
                f"all {matrix.n_genes} genes have total count below {self.min_total}"
            )

        logger.info(f"Filtering complete: Kept {n_kept}/{matrix.n_genes} genes "
                    f"({100*n_kept/matrix.n_genes:.1f}%), Removed {n_removed}")

        return matrix.select_genes(keep_mask)

    def get_passing_genes(self, matrix: ExpressionMatrix) -> CountFilterResult:
        """Genes passing the filter without subsetting the matrix."""
        keep_mask = self._compute_keep_mask(matrix)
        return CountFilterResult(
            passed_genes=set(matrix.gene_ids[keep_mask]),
            failed_genes=set(matrix.gene_ids[~keep_mask]),
            parameters={"min_total": self.min_total},
        )

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if np.any(matrix.data < 0):
            errors.append("Matrix contains negative values (expected raw counts)")
        return errors
