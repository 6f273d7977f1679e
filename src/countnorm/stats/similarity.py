"""
Sample-to-sample similarity: Pearson correlation and hierarchical clustering.

After stabilization, replicates of the same condition should correlate more
strongly with each other than with other conditions. The correlation matrix
feeds heatmaps; the dendrogram orders their rows and columns and shows
whether samples group by condition (or by batch, which is a warning sign).

Distances are 1 - Pearson correlation, so identical profiles sit at 0 and
perfectly anti-correlated ones at 2. Clustering uses scipy's agglomerative
linkage with average or complete linkage.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Literal, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy.cluster.hierarchy import fcluster, leaves_list, linkage
from scipy.spatial.distance import squareform

from countnorm.core.errors import DegenerateInputError, ShapeMismatchError
from countnorm.core.matrix import ExpressionMatrix

logger = logging.getLogger(__name__)

__all__ = [
    'LinkageMethod',
    'Dendrogram',
    'correlate',
    'correlation_distance',
    'cluster',
]

LinkageMethod = Literal["average", "complete"]
LINKAGE_METHODS = ("average", "complete")


@dataclass(frozen=True, eq=False)
class Dendrogram:
    """
    Binary merge tree over samples.

    Attributes:
        linkage: scipy linkage matrix, shape (n - 1, 4). Row i merges
            clusters linkage[i, 0] and linkage[i, 1] at height linkage[i, 2];
            ids < n are leaves (samples), id n + i is the cluster formed
            at row i.
        labels: Sample ids in the order of the input matrix
        method: Linkage method used
    """

    linkage: NDArray[np.float64]
    labels: pd.Index
    method: str

    @property
    def n_leaves(self) -> int:
        return len(self.labels)

    @property
    def heights(self) -> NDArray[np.float64]:
        """Merge heights, non-decreasing."""
        return self.linkage[:, 2]

    @property
    def leaf_order(self) -> list:
        """Sample ids left to right as drawn."""
        return [self.labels[i] for i in leaves_list(self.linkage)]

    def merges(self) -> list[tuple[frozenset, frozenset, float]]:
        """
        Each merge as (left members, right members, height), lowest first.

        Members are frozensets of sample ids.
        """
        members: dict[int, frozenset] = {i: frozenset([label]) for i, label in enumerate(self.labels)}
        out = []
        for i, (left, right, height, _) in enumerate(self.linkage):
            a = members[int(left)]
            b = members[int(right)]
            members[self.n_leaves + i] = a | b
            out.append((a, b, float(height)))
        return out

    def cut(self, n_clusters: int) -> pd.Series:
        """Flat cluster labels (1..n_clusters) per sample."""
        if not 1 <= n_clusters <= self.n_leaves:
            raise ValueError(f"n_clusters must be in [1, {self.n_leaves}], got {n_clusters}")
        assignments = fcluster(self.linkage, t=n_clusters, criterion='maxclust')
        return pd.Series(assignments, index=self.labels, name="cluster")


def _values_and_labels(matrix: Union[ExpressionMatrix, pd.DataFrame]) -> tuple[np.ndarray, pd.Index]:
    if isinstance(matrix, ExpressionMatrix):
        return matrix.data, matrix.sample_ids
    if isinstance(matrix, pd.DataFrame):
        return matrix.to_numpy(dtype=float), pd.Index(matrix.columns)
    raise TypeError(f"expected ExpressionMatrix or DataFrame, got {type(matrix)}")


def correlate(matrix: Union[ExpressionMatrix, pd.DataFrame]) -> pd.DataFrame:
    """
    Pearson correlation between every pair of samples over genes.

    The diagonal is set to exactly 1.0 rather than computed. Off-diagonal
    values are symmetrized and clipped to [-1, 1]. A sample whose values
    are constant across genes has no defined correlation; its off-diagonal
    entries are NaN.

    Args:
        matrix: ExpressionMatrix or genes x samples DataFrame

    Returns:
        samples x samples DataFrame

    Raises:
        DegenerateInputError: With fewer than 2 samples or no genes
    """
    data, labels = _values_and_labels(matrix)
    if data.ndim != 2:
        raise ShapeMismatchError(f"expected a 2D matrix, got shape {data.shape}")
    n_genes, n_samples = data.shape
    if n_samples < 2:
        raise DegenerateInputError(f"correlation needs at least 2 samples, got {n_samples}")
    if n_genes < 1:
        raise DegenerateInputError("correlation needs at least 1 gene")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        corr = np.atleast_2d(np.corrcoef(data, rowvar=False))

    corr = (corr + corr.T) / 2.0
    corr = np.clip(corr, -1.0, 1.0)
    np.fill_diagonal(corr, 1.0)

    constant = np.isclose(data.std(axis=0), 0.0)
    if constant.any():
        logger.warning(
            f"Samples with constant values have undefined correlation: {list(labels[constant])}"
        )

    return pd.DataFrame(corr, index=labels.copy(), columns=labels.copy())


def correlation_distance(correlation: pd.DataFrame) -> pd.DataFrame:
    """
    1 - correlation, with a zero diagonal.

    Raises:
        ShapeMismatchError: If the matrix is not square with matching labels
    """
    if not isinstance(correlation, pd.DataFrame):
        raise TypeError(f"correlation must be a DataFrame, got {type(correlation)}")
    if correlation.shape[0] != correlation.shape[1]:
        raise ShapeMismatchError(f"correlation matrix must be square, got {correlation.shape}")
    if not correlation.index.equals(correlation.columns):
        raise ShapeMismatchError("correlation matrix row and column labels differ")

    distance = 1.0 - correlation.to_numpy(dtype=float)
    np.fill_diagonal(distance, 0.0)
    distance = np.clip(distance, 0.0, 2.0)
    return pd.DataFrame(distance, index=correlation.index, columns=correlation.columns)


def cluster(correlation: pd.DataFrame, method: LinkageMethod = "average") -> Dendrogram:
    """
    Agglomerative hierarchical clustering on 1 - correlation.

    Args:
        correlation: Output of correlate()
        method: "average" or "complete"

    Returns:
        Dendrogram

    Raises:
        ValueError: For an unsupported linkage method
        ShapeMismatchError: If the matrix is not square with matching labels
        DegenerateInputError: With fewer than 2 samples or undefined distances
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(
            f"Unsupported linkage method '{method}'. Choose from: {', '.join(LINKAGE_METHODS)}"
        )

    distance = correlation_distance(correlation)
    n = distance.shape[0]
    if n < 2:
        raise DegenerateInputError(f"clustering needs at least 2 samples, got {n}")

    values = distance.to_numpy()
    if np.isnan(values).any():
        raise DegenerateInputError(
            "distance matrix contains NaN (samples with constant values); cannot cluster"
        )

    condensed = squareform(values, checks=False)
    tree = linkage(condensed, method=method)

    logger.info(f"Clustered {n} samples ({method} linkage), max height {tree[-1, 2]:.4f}")
    return Dendrogram(linkage=tree, labels=pd.Index(distance.index), method=method)
