"""
Numerical core: size factors, normalization, variance stabilization, similarity.

Pipeline order:
    counts -> estimate_size_factors -> normalize -> log_transform
           -> stabilize (vst / rlog) -> correlate -> cluster
"""

from countnorm.stats.size_factors import (
    SizeFactorResult,
    positive_geometric_mean,
    median,
    estimate_size_factors,
    estimate_size_factors_detailed,
)
from countnorm.stats.normalization import (
    normalize,
    log_transform,
    SizeFactorNormalizer,
    LogTransform,
)
from countnorm.stats.dispersion import (
    DispersionTrend,
    gene_dispersions,
    fit_dispersion_trend,
)
from countnorm.stats.stabilization import (
    Stabilizer,
    VarianceStabilizingTransform,
    RegularizedLogTransform,
    STABILIZERS,
    stabilize,
)
from countnorm.stats.similarity import (
    Dendrogram,
    correlate,
    correlation_distance,
    cluster,
)
from countnorm.stats.diagnostics import mean_sd_trend, trend_flatness

__all__ = [
    # Size factors
    'SizeFactorResult',
    'positive_geometric_mean',
    'median',
    'estimate_size_factors',
    'estimate_size_factors_detailed',
    # Normalization
    'normalize',
    'log_transform',
    'SizeFactorNormalizer',
    'LogTransform',
    # Dispersion
    'DispersionTrend',
    'gene_dispersions',
    'fit_dispersion_trend',
    # Stabilization
    'Stabilizer',
    'VarianceStabilizingTransform',
    'RegularizedLogTransform',
    'STABILIZERS',
    'stabilize',
    # Similarity
    'Dendrogram',
    'correlate',
    'correlation_distance',
    'cluster',
    # Diagnostics
    'mean_sd_trend',
    'trend_flatness',
]
