"""
Tests for sample correlation and hierarchical clustering.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from countnorm.core.errors import DegenerateInputError, ShapeMismatchError
from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale
from countnorm.stats.similarity import cluster, correlate, correlation_distance
from countnorm.stats.stabilization import stabilize


def _matrix(columns: dict) -> ExpressionMatrix:
    df = pd.DataFrame(columns, index=[f"g{i}" for i in range(len(next(iter(columns.values()))))])
    return ExpressionMatrix.from_frame(df, scale=MatrixScale.STABILIZED)


class TestCorrelate:
    """Pearson correlation between samples."""

    def test_symmetric_unit_diagonal(self, simulated_counts):
        corr = correlate(stabilize(simulated_counts))
        values = corr.to_numpy()
        np.testing.assert_array_equal(values, values.T)
        np.testing.assert_array_equal(np.diag(values), 1.0)
        assert list(corr.index) == list(simulated_counts.sample_ids)
        assert np.all(np.abs(values) <= 1.0)

    def test_identical_columns(self):
        corr = correlate(_matrix({'a': [1.0, 2.0, 3.5], 'b': [1.0, 2.0, 3.5]}))
        assert corr.loc['a', 'b'] == pytest.approx(1.0)
        assert correlation_distance(corr).loc['a', 'b'] == pytest.approx(0.0, abs=1e-12)

    def test_anticorrelated(self):
        corr = correlate(_matrix({'a': [1.0, 2.0, 3.0], 'b': [3.0, 2.0, 1.0]}))
        assert corr.loc['a', 'b'] == pytest.approx(-1.0)
        assert correlation_distance(corr).loc['a', 'b'] == pytest.approx(2.0)

    def test_accepts_dataframe(self):
        df = pd.DataFrame({'a': [1.0, 2.0, 4.0], 'b': [2.0, 1.0, 5.0]})
        assert correlate(df).shape == (2, 2)

    def test_single_gene_diagonal(self):
        corr = correlate(_matrix({'a': [1.0], 'b': [2.0]}))
        assert corr.loc['a', 'a'] == 1.0

    def test_too_few_samples(self):
        with pytest.raises(DegenerateInputError, match="at least 2 samples"):
            correlate(_matrix({'a': [1.0, 2.0]}))

    def test_constant_sample_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            corr = correlate(_matrix({'a': [1.0, 2.0, 3.0], 'b': [5.0, 5.0, 5.0]}))
        assert np.isnan(corr.loc['a', 'b'])
        assert "constant" in caplog.text


class TestCorrelationDistance:

    def test_not_square(self):
        with pytest.raises(ShapeMismatchError, match="square"):
            correlation_distance(pd.DataFrame(np.ones((2, 3))))

    def test_label_mismatch(self):
        corr = pd.DataFrame(np.eye(2), index=['a', 'b'], columns=['a', 'c'])
        with pytest.raises(ShapeMismatchError, match="labels"):
            correlation_distance(corr)


class TestCluster:
    """Hierarchical clustering on 1 - r."""

    @pytest.fixture
    def grouped(self):
        rng = np.random.default_rng(0)
        base_a = rng.normal(size=200)
        base_b = rng.normal(size=200)
        columns = {
            'A1': base_a + rng.normal(scale=0.1, size=200),
            'A2': base_a + rng.normal(scale=0.1, size=200),
            'B1': base_b + rng.normal(scale=0.1, size=200),
            'B2': base_b + rng.normal(scale=0.1, size=200),
            'B3': base_b,
        }
        return correlate(_matrix(columns))

    def test_identical_samples_merge_first(self):
        corr = correlate(_matrix({
            'x': [1.0, 5.0, 2.0, 8.0],
            'y': [1.0, 5.0, 2.0, 8.0],
            'z': [3.0, 1.0, 4.0, 1.0],
        }))
        tree = cluster(corr)
        left, right, height = tree.merges()[0]
        assert left | right == {'x', 'y'}
        assert height == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.parametrize("method", ["average", "complete"])
    def test_groups_recovered(self, grouped, method):
        tree = cluster(grouped, method=method)
        assert tree.method == method
        assert tree.n_leaves == 5
        assert np.all(np.diff(tree.heights) >= 0)

        labels = tree.cut(2)
        assert labels['A1'] == labels['A2']
        assert labels['B1'] == labels['B2'] == labels['B3']
        assert labels['A1'] != labels['B1']

        last_left, last_right, _ = tree.merges()[-1]
        assert {frozenset(last_left), frozenset(last_right)} == {
            frozenset({'A1', 'A2'}), frozenset({'B1', 'B2', 'B3'})
        }

    def test_leaf_order_is_permutation(self, grouped):
        tree = cluster(grouped)
        assert sorted(tree.leaf_order) == sorted(grouped.index)

    def test_complete_heights_not_below_average(self, grouped):
        average = cluster(grouped, method="average")
        complete = cluster(grouped, method="complete")
        assert complete.heights[-1] >= average.heights[-1]

    def test_unknown_method(self, grouped):
        with pytest.raises(ValueError, match="Unsupported linkage"):
            cluster(grouped, method="ward")

    def test_nan_distances(self):
        corr = correlate(_matrix({'a': [1.0, 2.0, 3.0], 'b': [5.0, 5.0, 5.0]}))
        with pytest.raises(DegenerateInputError, match="NaN"):
            cluster(corr)

    def test_single_sample(self):
        with pytest.raises(DegenerateInputError, match="at least 2 samples"):
            cluster(pd.DataFrame([[1.0]], index=['a'], columns=['a']))

    def test_cut_range(self, grouped):
        with pytest.raises(ValueError):
            cluster(grouped).cut(6)
