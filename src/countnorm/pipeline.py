"""
End-to-end normalization pipeline.

    raw counts
      -> ZeroCountFilter                (drop genes with no reads)
      -> estimate_size_factors          (median of ratios)
      -> normalize                      (counts / size factor)
      -> log_transform                  (log2(x + 1))
      -> stabilize                      (vst or rlog, blind by default)
      -> correlate                      (Pearson, samples x samples)
      -> cluster                        (average/complete linkage on 1 - r)

Each stage consumes the previous stage's output and produces a new object;
nothing is modified in place. If any stage raises, the exception propagates
and no PipelineResult is produced.

Examples:
    >>> from countnorm.io import load_count_table
    >>> from countnorm.pipeline import run_pipeline
    >>>
    >>> result = run_pipeline(load_count_table("counts.txt"), stabilizer="vst")
    >>> result.size_factors
    >>> result.dendrogram.leaf_order
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import pandas as pd

from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.transform import describe_chain
from countnorm.quality.filtering import ZeroCountFilter
from countnorm.stats.dispersion import DispersionTrend, FitType
from countnorm.stats.normalization import LogTransform, SizeFactorNormalizer
from countnorm.stats.similarity import Dendrogram, LinkageMethod, cluster, correlate
from countnorm.stats.size_factors import estimate_size_factors
from countnorm.stats.stabilization import STABILIZERS

logger = logging.getLogger(__name__)

__all__ = ['PipelineResult', 'run_pipeline']


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """
    All outputs of one pipeline run.

    Attributes:
        counts: Filtered COUNTS matrix every other output derives from
        n_genes_removed: Genes dropped by the zero-count filter
        size_factors: Series indexed by sample id
        normalized: NORMALIZED matrix
        log: LOG2 matrix
        stabilized: STABILIZED matrix
        correlation: samples x samples Pearson correlation of `stabilized`
        dendrogram: Clustering of `correlation`
        trend: Dispersion trend used by the stabilizer
        parameters: Run parameters
    """

    counts: ExpressionMatrix
    n_genes_removed: int
    size_factors: pd.Series
    normalized: ExpressionMatrix
    log: ExpressionMatrix
    stabilized: ExpressionMatrix
    correlation: pd.DataFrame
    dendrogram: Dendrogram
    trend: DispersionTrend
    parameters: dict

    def summary(self) -> dict[str, Any]:
        """JSON-friendly overview for the run summary file."""
        return {
            "parameters": self.parameters,
            "n_genes": self.counts.n_genes,
            "n_genes_removed": self.n_genes_removed,
            "n_samples": self.counts.n_samples,
            "size_factors": {str(k): float(v) for k, v in self.size_factors.items()},
            "dispersion_trend": {
                "fit_type": self.trend.fit_type,
                "asympt_disp": self.trend.asympt_disp,
                "extra_pois": self.trend.extra_pois,
                "n_genes_fit": self.trend.n_genes_fit,
            },
            "leaf_order": [str(s) for s in self.dendrogram.leaf_order],
        }


def run_pipeline(
    counts: ExpressionMatrix,
    stabilizer: str = "vst",
    blind: bool = True,
    fit_type: FitType = "parametric",
    linkage: LinkageMethod = "average",
    pseudocount: float = 1.0,
    min_total: int = 1,
    size_factors: Optional[pd.Series] = None,
) -> PipelineResult:
    """
    Run filter -> size factors -> normalize -> log -> stabilize -> correlate -> cluster.

    Args:
        counts: COUNTS-scale ExpressionMatrix
        stabilizer: "vst" or "rlog"
        blind: Ignore condition labels when fitting dispersions
        fit_type: Dispersion trend type ("parametric", "local", "mean")
        linkage: "average" or "complete"
        pseudocount: Added before the log2 transform
        min_total: Genes with total count below this are removed (1 = all-zero only)
        size_factors: Precomputed size factors for the filtered matrix.
            Estimated when None.

    Returns:
        PipelineResult

    Raises:
        ValueError: For unknown stabilizer/linkage names
        DomainError: From any stage
    """
    if stabilizer not in STABILIZERS:
        raise ValueError(
            f"Unknown stabilizer '{stabilizer}'. Choose from: {', '.join(STABILIZERS)}"
        )

    parameters = {
        "stabilizer": stabilizer,
        "blind": blind,
        "fit_type": fit_type,
        "linkage": linkage,
        "pseudocount": pseudocount,
        "min_total": min_total,
    }
    logger.info(f"Running pipeline on {counts.n_genes} genes × {counts.n_samples} samples: {parameters}")

    zero_filter = ZeroCountFilter(min_total=min_total)
    filtered = zero_filter.apply(counts)

    if size_factors is None:
        size_factors = estimate_size_factors(filtered)

    normalizer = SizeFactorNormalizer(size_factors)
    log_step = LogTransform(pseudocount=pseudocount)
    stabilizing_step = STABILIZERS[stabilizer](
        blind=blind, fit_type=fit_type, size_factors=size_factors
    )
    logger.info(describe_chain([zero_filter, normalizer, log_step, stabilizing_step]))

    normalized = normalizer.apply(filtered)
    log_matrix = log_step.apply(normalized)
    stabilized = stabilizing_step.apply(filtered)

    correlation = correlate(stabilized)
    dendrogram = cluster(correlation, method=linkage)

    return PipelineResult(
        counts=filtered,
        n_genes_removed=counts.n_genes - filtered.n_genes,
        size_factors=size_factors,
        normalized=normalized,
        log=log_matrix,
        stabilized=stabilized,
        correlation=correlation,
        dendrogram=dendrogram,
        trend=stabilizing_step.trend_,
        parameters=parameters,
    )
