"""
Tests for size-factor normalization and the pseudocount log transform.
"""

import numpy as np
import pandas as pd
import pytest

from countnorm.core.errors import NumericDomainError, ShapeMismatchError
from countnorm.core.scale import MatrixScale
from countnorm.stats.normalization import (
    LogTransform,
    SizeFactorNormalizer,
    align_size_factors,
    log_transform,
    normalize,
)
from countnorm.stats.size_factors import estimate_size_factors
from conftest import make_counts


class TestNormalize:
    """Division of counts by per-sample size factors."""

    def test_column_sums(self, simulated_counts):
        sf = estimate_size_factors(simulated_counts)
        normalized = normalize(simulated_counts, sf)

        assert normalized.scale is MatrixScale.NORMALIZED
        expected = simulated_counts.data.sum(axis=0) / sf.to_numpy()
        np.testing.assert_allclose(normalized.data.sum(axis=0), expected)

    def test_not_idempotent(self, simulated_counts):
        sf = estimate_size_factors(simulated_counts)
        once = normalize(simulated_counts, sf)
        assert not np.allclose(once.data, simulated_counts.data)

    def test_order_of_factors_irrelevant(self):
        counts = make_counts([[10, 20], [4, 8]])
        shuffled = pd.Series({'s2': 2.0, 's1': 1.0})
        np.testing.assert_allclose(normalize(counts, shuffled).data, [[10, 10], [4, 4]])

    def test_mapping_accepted(self):
        counts = make_counts([[10, 20]])
        np.testing.assert_allclose(normalize(counts, {'s1': 0.5, 's2': 4}).data, [[20, 5]])

    def test_sample_mismatch(self):
        counts = make_counts([[10, 20]])
        with pytest.raises(ShapeMismatchError, match="missing"):
            normalize(counts, {'s1': 1.0})
        with pytest.raises(ShapeMismatchError, match="unexpected"):
            normalize(counts, {'s1': 1.0, 's2': 1.0, 's3': 1.0})

    @pytest.mark.parametrize("bad", [0.0, -1.0, np.inf, np.nan])
    def test_invalid_factor(self, bad):
        with pytest.raises(NumericDomainError):
            align_size_factors(pd.Series({'s1': 1.0, 's2': bad}), pd.Index(['s1', 's2']))

    def test_requires_counts(self):
        counts = make_counts([[10, 20]])
        normalized = normalize(counts, {'s1': 1.0, 's2': 2.0})
        with pytest.raises(NumericDomainError, match="raw counts"):
            normalize(normalized, {'s1': 1.0, 's2': 2.0})

    def test_input_unchanged(self):
        counts = make_counts([[10, 20]])
        normalize(counts, {'s1': 2.0, 's2': 2.0})
        np.testing.assert_array_equal(counts.data, [[10, 20]])


class TestLogTransform:
    """log2(x + pseudocount)."""

    def test_values(self):
        counts = make_counts([[0, 1, 3, 7]])
        logged = log_transform(counts)
        assert logged.scale is MatrixScale.LOG2
        np.testing.assert_allclose(logged.data, [[0, 1, 2, 3]])

    def test_custom_pseudocount(self):
        logged = log_transform(make_counts([[1, 3]]), pseudocount=1.0)
        np.testing.assert_allclose(logged.data, [[1, 2]])
        logged = log_transform(make_counts([[2, 8]]), pseudocount=0.0)
        np.testing.assert_allclose(logged.data, [[1, 3]])

    def test_zero_without_pseudocount(self):
        with pytest.raises(NumericDomainError, match="zero"):
            log_transform(make_counts([[0, 8]]), pseudocount=0.0)

    def test_negative_pseudocount(self):
        with pytest.raises(NumericDomainError, match="non-negative"):
            log_transform(make_counts([[1, 8]]), pseudocount=-0.5)

    def test_already_log(self):
        logged = log_transform(make_counts([[1, 8]]))
        with pytest.raises(NumericDomainError, match="already on a log scale"):
            log_transform(logged)


class TestTransformWrappers:
    """SizeFactorNormalizer and LogTransform as pipeline stages."""

    def test_normalizer_estimates_when_not_given(self, two_gene_counts):
        normalizer = SizeFactorNormalizer()
        normalized = normalizer.apply(two_gene_counts)
        pd.testing.assert_series_equal(
            normalizer.size_factors_, estimate_size_factors(two_gene_counts)
        )
        assert normalized.scale is MatrixScale.NORMALIZED

    def test_normalizer_uses_given_factors(self):
        counts = make_counts([[10, 20]])
        normalizer = SizeFactorNormalizer({'s1': 2.0, 's2': 4.0})
        np.testing.assert_allclose(normalizer.apply(counts).data, [[5, 5]])
        assert normalizer.params == {"size_factors": "provided"}

    def test_log_transform_validate(self):
        step = LogTransform(pseudocount=1.0)
        logged = step.apply(make_counts([[1, 3]]))
        assert step.validate(logged)
        assert step.validate(make_counts([[1, 3]])) == []
        assert repr(step) == "LogTransform(pseudocount=1.0)"
