"""
Tests for variance-stabilizing transforms (vst and rlog).

The property that matters downstream is a flat mean-sd relationship, so
most assertions go through mean_sd_trend() rather than exact values.
"""

import numpy as np
import pandas as pd
import pytest
from scipy.stats import spearmanr

from countnorm.core.errors import DegenerateInputError, NumericDomainError, ShapeMismatchError
from countnorm.core.scale import MatrixScale
from countnorm.stats.diagnostics import mean_sd_trend, trend_flatness
from countnorm.stats.normalization import log_transform, normalize
from countnorm.stats.size_factors import estimate_size_factors
from countnorm.stats.stabilization import (
    STABILIZERS,
    RegularizedLogTransform,
    VarianceStabilizingTransform,
    stabilize,
)
from conftest import make_counts


@pytest.fixture
def log_normalized(simulated_counts):
    sf = estimate_size_factors(simulated_counts)
    return log_transform(normalize(simulated_counts, sf))


class TestVarianceStabilizingTransform:
    """Global vst-style transform."""

    def test_output_scale_and_labels(self, simulated_counts):
        stabilized = stabilize(simulated_counts, method="vst")
        assert stabilized.scale is MatrixScale.STABILIZED
        assert stabilized.shape == simulated_counts.shape
        assert stabilized.gene_ids.equals(simulated_counts.gene_ids)
        assert np.all(np.isfinite(stabilized.data))

    def test_flattens_mean_sd_trend(self, simulated_counts, log_normalized):
        before = trend_flatness(mean_sd_trend(log_normalized))
        after = trend_flatness(mean_sd_trend(stabilize(simulated_counts, method="vst")))
        assert before > 1.5
        assert after < before
        assert after < 1.5

    def test_fitted_state(self, simulated_counts):
        vst = VarianceStabilizingTransform()
        vst.apply(simulated_counts)
        assert vst.trend_.fit_type == "parametric"
        pd.testing.assert_series_equal(vst.size_factors_, estimate_size_factors(simulated_counts))

    def test_closed_form_monotone_and_log_like(self):
        q = np.array([[0.0, 1.0, 10.0, 100.0, 1000.0, 10000.0]])
        out = VarianceStabilizingTransform._closed_form(q, a0=0.05, a1=0.5)
        assert np.all(np.diff(out[0]) > 0)
        # one doubling at high counts is one unit
        high = VarianceStabilizingTransform._closed_form(np.array([2e4, 4e4]), 0.05, 0.5)
        assert high[1] - high[0] == pytest.approx(1.0, abs=0.01)

    def test_local_trend_uses_numeric_integration(self, simulated_counts):
        vst = VarianceStabilizingTransform(fit_type="local")
        stabilized = vst.apply(simulated_counts)
        assert vst.trend_.fit_type == "local"
        assert np.all(np.isfinite(stabilized.data))

        normalized = normalize(simulated_counts, vst.size_factors_).data.ravel()
        rho = spearmanr(normalized, stabilized.data.ravel()).correlation
        assert rho > 0.999

    def test_uses_given_size_factors(self, simulated_counts):
        sf = pd.Series(1.0, index=simulated_counts.sample_ids)
        vst = VarianceStabilizingTransform(size_factors=sf)
        vst.apply(simulated_counts)
        assert (vst.size_factors_ == 1.0).all()

    def test_input_unchanged(self, simulated_counts):
        before = simulated_counts.data.copy()
        stabilize(simulated_counts)
        np.testing.assert_array_equal(simulated_counts.data, before)


class TestRegularizedLogTransform:
    """Per-gene shrinkage of log deviations."""

    def test_output(self, simulated_counts):
        rlog = RegularizedLogTransform()
        stabilized = rlog.apply(simulated_counts)
        assert stabilized.scale is MatrixScale.STABILIZED
        assert np.all(np.isfinite(stabilized.data))
        assert rlog.prior_variance_ > 0

    def test_shrinks_low_count_genes(self, simulated_counts, log_normalized):
        stabilized = stabilize(simulated_counts, method="rlog")
        before = mean_sd_trend(log_normalized)
        after = mean_sd_trend(stabilized)
        low_before = before.loc[before['rank'] < 0.3, 'sd'].median()
        low_after = after.loc[after['rank'] < 0.3, 'sd'].median()
        assert low_after < low_before



class TestStabilizerPreconditions:
    """Shared checks in the Stabilizer driver."""

    @pytest.mark.parametrize("method", sorted(STABILIZERS))
    def test_zero_row_rejected(self, method):
        counts = make_counts([[0, 0, 0, 0], [5, 8, 3, 9], [40, 51, 38, 60]])
        with pytest.raises(DegenerateInputError, match="zero total count"):
            stabilize(counts, method=method)

    def test_requires_counts(self, log_normalized):
        with pytest.raises(NumericDomainError, match="raw counts"):
            VarianceStabilizingTransform().apply(log_normalized)

    def test_non_blind_needs_conditions(self):
        counts = make_counts([[5, 8, 3, 9], [40, 51, 38, 60]])
        with pytest.raises(ShapeMismatchError, match="condition"):
            stabilize(counts, blind=False)

    def test_non_blind_discounts_condition_effects(self, simulated_de_counts):
        blind = VarianceStabilizingTransform(blind=True, fit_type="mean")
        aware = VarianceStabilizingTransform(blind=False, fit_type="mean")
        blind.apply(simulated_de_counts)
        aware.apply(simulated_de_counts)
        assert aware.trend_.asympt_disp < blind.trend_.asympt_disp
        assert aware.params["blind"] is False

    def test_unknown_method(self, simulated_counts):
        with pytest.raises(ValueError, match="Unknown stabilization method"):
            stabilize(simulated_counts, method="asinh")


class TestMeanSdTrend:

    def test_columns_and_order(self, log_normalized):
        trend = mean_sd_trend(log_normalized)
        assert list(trend.columns) == ['rank', 'mean', 'sd', 'running_median_sd']
        assert trend['mean'].is_monotonic_increasing
        assert trend['rank'].iloc[0] == 0.0
        assert trend['rank'].iloc[-1] == 1.0

    def test_single_sample(self):
        with pytest.raises(DegenerateInputError):
            mean_sd_trend(make_counts([[1], [2]]))
