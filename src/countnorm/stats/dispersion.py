"""
Gene-wise dispersion estimates and mean-dispersion trend fitting.

Read counts are overdispersed relative to Poisson. Under a negative binomial
model a gene with mean mu and dispersion alpha has variance
mu + alpha * mu^2. Dispersion is strongly mean-dependent: low-count genes
carry much more relative noise. Variance stabilization needs a smooth
function alpha(mu) across genes, not per-gene estimates, so this module
provides:

- gene_dispersions(): method-of-moments dispersion per gene
- fit_dispersion_trend(): smooth alpha(mu) of one of three types
    - "parametric": alpha(mu) = asympt_disp + extra_pois / mu, fit by an
      iterated Gamma-family GLM with identity link (statsmodels)
    - "local": lowess of log dispersion on log mean (statsmodels)
    - "mean": a single constant dispersion

A parametric fit that fails to converge or gives non-positive coefficients
falls back to the local fit.

References:
    Anders & Huber (2010) Genome Biology 11:R106
    Love, Huber & Anders (2014) Genome Biology 15:550
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Literal, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
from numpy.typing import NDArray
from scipy.stats import trim_mean
from statsmodels.nonparametric.smoothers_lowess import lowess

from countnorm.core.errors import DegenerateInputError, ShapeMismatchError

logger = logging.getLogger(__name__)

__all__ = [
    'MIN_DISPERSION',
    'FitType',
    'DispersionTrend',
    'gene_dispersions',
    'fit_dispersion_trend',
]

MIN_DISPERSION = 1e-8

FitType = Literal["parametric", "local", "mean"]


class _ParametricFitError(RuntimeError):
    """Parametric dispersion fit failed; caller falls back to a local fit."""


@dataclass(frozen=True, eq=False)
class DispersionTrend:
    """
    Fitted mean-dispersion relationship alpha(mu).

    Attributes:
        fit_type: "parametric", "local" or "mean"
        asympt_disp: Asymptotic dispersion a0 (parametric and mean fits)
        extra_pois: Extra-Poisson coefficient a1 (parametric fit, 0 otherwise)
        log_means: Sorted lowess support, log scale (local fit)
        log_dispersions: Fitted log dispersion at log_means (local fit)
        n_genes_fit: Genes that entered the fit
    """

    fit_type: str
    asympt_disp: float = 0.0
    extra_pois: float = 0.0
    log_means: Optional[NDArray[np.float64]] = field(default=None, repr=False)
    log_dispersions: Optional[NDArray[np.float64]] = field(default=None, repr=False)
    n_genes_fit: int = 0

    @property
    def has_closed_form(self) -> bool:
        """True when alpha(mu) = a0 + a1 / mu, which admits an analytic vst."""
        return self.fit_type in ("parametric", "mean")

    def __call__(self, means: NDArray[np.float64]) -> NDArray[np.float64]:
        """Evaluate the fitted dispersion at the given means."""
        means = np.asarray(means, dtype=float)
        if self.fit_type == "parametric":
            return self.asympt_disp + self.extra_pois / means
        if self.fit_type == "mean":
            return np.full(means.shape, self.asympt_disp)
        with np.errstate(divide='ignore'):
            log_mu = np.log(means)
        return np.exp(np.interp(log_mu, self.log_means, self.log_dispersions))


def gene_dispersions(
    normalized: NDArray[np.float64],
    size_factors: NDArray[np.float64],
    conditions: Optional[pd.Series] = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Method-of-moments dispersion for every gene.

    alpha_g = (var_g - xim * mean_g) / mean_g^2, with xim = mean(1 / size_factors)
    and floored at MIN_DISPERSION.

    Args:
        normalized: Size-factor normalized counts (genes x samples)
        size_factors: Per-sample factors, same column order
        conditions: Optional condition label per sample, same order. When
            given, the variance is the pooled within-condition variance, so
            differences between conditions are not counted as noise.

    Returns:
        (means, dispersions), both length n_genes

    Raises:
        DegenerateInputError: If a gene has zero mean, or there are no
            residual degrees of freedom
        ShapeMismatchError: If conditions do not match the sample count
    """
    n_genes, n_samples = normalized.shape
    means = normalized.mean(axis=1)

    if np.any(means <= 0):
        raise DegenerateInputError(
            f"{int((means <= 0).sum())} genes have zero counts in every sample; "
            "filter them before fitting dispersions"
        )

    if conditions is None:
        if n_samples < 2:
            raise DegenerateInputError("dispersion estimation needs at least 2 samples")
        variances = normalized.var(axis=1, ddof=1)
    else:
        labels = np.asarray(conditions)
        if labels.shape[0] != n_samples:
            raise ShapeMismatchError(
                f"got {labels.shape[0]} condition labels for {n_samples} samples"
            )
        groups = pd.unique(labels)
        residual_df = n_samples - len(groups)
        if residual_df <= 0:
            raise DegenerateInputError(
                "no replicates within conditions: non-blind dispersion estimation "
                "needs more samples than conditions"
            )
        ss = np.zeros(n_genes)
        for group in groups:
            block = normalized[:, labels == group]
            ss += ((block - block.mean(axis=1, keepdims=True)) ** 2).sum(axis=1)
        variances = ss / residual_df

    xim = float(np.mean(1.0 / size_factors))
    dispersions = (variances - xim * means) / means ** 2
    return means, np.maximum(dispersions, MIN_DISPERSION)


def _fit_parametric(means: NDArray[np.float64], dispersions: NDArray[np.float64]) -> DispersionTrend:
    """Iterated Gamma GLM of dispersion on 1/mean, dropping outlying genes each round."""
    coefs = np.array([0.1, 1.0])
    for _ in range(11):
        residuals = dispersions / (coefs[0] + coefs[1] / means)
        good = (residuals > 1e-4) & (residuals < 15)
        if good.sum() < 3:
            raise _ParametricFitError("too few genes left after outlier removal")

        design = np.column_stack([np.ones(good.sum()), 1.0 / means[good]])
        model = sm.GLM(
            dispersions[good],
            design,
            family=sm.families.Gamma(link=sm.families.links.Identity()),
        )
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                result = model.fit(start_params=coefs)
        except (ValueError, np.linalg.LinAlgError) as e:
            raise _ParametricFitError(str(e)) from e

        old = coefs
        coefs = np.asarray(result.params, dtype=float)
        if not np.all(np.isfinite(coefs)) or not np.all(coefs > 0):
            raise _ParametricFitError(f"non-positive coefficients {coefs.tolist()}")
        if np.sum(np.log(coefs / old) ** 2) < 1e-6 and result.converged:
            return DispersionTrend(
                fit_type="parametric",
                asympt_disp=float(coefs[0]),
                extra_pois=float(coefs[1]),
                n_genes_fit=int(good.sum()),
            )
    raise _ParametricFitError("dispersion fit did not converge")


def _fit_local(
    means: NDArray[np.float64],
    dispersions: NDArray[np.float64],
    frac: float,
) -> DispersionTrend:
    log_mu = np.log(means)
    log_disp = np.log(dispersions)
    fitted = lowess(log_disp, log_mu, frac=frac, return_sorted=True)

    # lowess returns one row per input point; collapse tied means
    xs, inverse = np.unique(fitted[:, 0], return_inverse=True)
    ys = np.bincount(inverse, weights=fitted[:, 1]) / np.bincount(inverse)
    return DispersionTrend(
        fit_type="local",
        log_means=xs,
        log_dispersions=ys,
        n_genes_fit=len(means),
    )


def _fit_mean(dispersions: NDArray[np.float64]) -> DispersionTrend:
    return DispersionTrend(
        fit_type="mean",
        asympt_disp=float(trim_mean(dispersions, 0.001)),
        n_genes_fit=len(dispersions),
    )


def fit_dispersion_trend(
    means: NDArray[np.float64],
    dispersions: NDArray[np.float64],
    fit_type: FitType = "parametric",
    lowess_frac: float = 2.0 / 3.0,
) -> DispersionTrend:
    """
    Fit a smooth mean-dispersion trend across genes.

    Only genes with nonzero mean and a dispersion well above the floor
    (100 x MIN_DISPERSION) are used for fitting.

    Args:
        means: Per-gene mean of normalized counts
        dispersions: Per-gene dispersion estimates
        fit_type: "parametric", "local" or "mean"
        lowess_frac: Span for the local fit

    Returns:
        DispersionTrend

    Raises:
        DegenerateInputError: If no gene is usable for fitting (data look
            Poisson or constant)
        ValueError: For an unknown fit_type
    """
    if fit_type not in ("parametric", "local", "mean"):
        raise ValueError(f"Unknown fit type: {fit_type}")

    use = (means > 0) & (dispersions >= 100 * MIN_DISPERSION)
    n_use = int(use.sum())
    if n_use == 0:
        raise DegenerateInputError(
            "all gene-wise dispersion estimates are at the minimum; "
            "no mean-dispersion trend can be fit"
        )

    mu = means[use]
    disp = dispersions[use]

    if fit_type == "parametric":
        try:
            trend = _fit_parametric(mu, disp)
        except _ParametricFitError as e:
            logger.warning(f"Parametric dispersion fit failed ({e}); using local fit instead")
            fit_type = "local"
        else:
            logger.info(
                f"Parametric dispersion trend: asymptDisp={trend.asympt_disp:.4g}, "
                f"extraPois={trend.extra_pois:.4g} ({trend.n_genes_fit} genes)"
            )
            return trend

    if fit_type == "local":
        if n_use < 5:
            logger.warning(f"Only {n_use} genes usable for a local fit; using mean dispersion")
        else:
            trend = _fit_local(mu, disp, lowess_frac)
            logger.info(f"Local dispersion trend fit on {trend.n_genes_fit} genes")
            return trend

    trend = _fit_mean(disp)
    logger.info(f"Mean dispersion trend: {trend.asympt_disp:.4g} ({trend.n_genes_fit} genes)")
    return trend
