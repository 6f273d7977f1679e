"""
Core data structure for gene x sample expression matrices.

ExpressionMatrix unifies the numerical values (counts, normalized counts,
log values) with their labels (gene identifiers, sample identifiers), the
sample annotations (condition labels) and the scale those values live on.

Biological Context:
    A feature-counting tool produces one integer per (gene, sample):
    - Rows = genes (Ensembl IDs, gene symbols)
    - Columns = samples (libraries, replicates)
    - Values = number of reads assigned to the gene in that library

    Before those numbers can be compared across samples they go through
    depth normalization, a log transform and variance stabilization. Each
    step yields a matrix of the same shape and labels but a different
    scale, so the container records which one it holds.

Engineering Design:
    - Immutable: Operations return new instances (functional style)
    - NumPy arrays for data, Pandas for labels and sample metadata
    - Validated: Constructor checks shapes, unique labels and, for
      COUNTS, the non-negative integer invariant
    - Memory-efficient: with_data() shares label objects with the source

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from countnorm.core.matrix import ExpressionMatrix
    >>> from countnorm.core.scale import MatrixScale
    >>>
    >>> data = np.array([[10, 20], [5, 5]])
    >>> gene_ids = pd.Index(["g1", "g2"])
    >>> sample_ids = pd.Index(["WT_1", "KO_1"])
    >>> metadata = pd.DataFrame({'condition': ['WT', 'KO']}, index=sample_ids)
    >>>
    >>> counts = ExpressionMatrix(data, gene_ids, sample_ids, metadata)
    >>> counts.scale
    <MatrixScale.COUNTS: 'counts'>
    >>>
    >>> # Subset samples
    >>> wt = counts.select_samples(counts.sample_metadata['condition'] == 'WT')
"""

from __future__ import annotations

from typing import Optional
import numpy as np
import pandas as pd

from countnorm.core.errors import NumericDomainError, ShapeMismatchError
from countnorm.core.scale import MatrixScale

__all__ = ['ExpressionMatrix']


class ExpressionMatrix:
    """
    Immutable container for a gene x sample matrix plus sample annotations.

    Attributes:
        data: Numerical matrix (genes x samples)
        gene_ids: Row identifiers, unique
        sample_ids: Column identifiers, unique
        sample_metadata: Per-sample annotations (e.g. 'condition')
        scale: Which representation the values are on (MatrixScale)

    Shape Invariants:
        - data.shape[0] == len(gene_ids)
        - data.shape[1] == len(sample_ids)
        - sample_metadata.index equals sample_ids
        - scale == COUNTS implies all entries are non-negative integers
    """

    def __init__(
        self,
        data: np.ndarray,
        gene_ids: pd.Index,
        sample_ids: pd.Index,
        sample_metadata: Optional[pd.DataFrame] = None,
        scale: MatrixScale = MatrixScale.COUNTS,
    ):
        """
        Initialize ExpressionMatrix with validation.

        Args:
            data: Value matrix (genes x samples)
            gene_ids: Row identifiers
            sample_ids: Column identifiers
            sample_metadata: DataFrame indexed by sample_ids. If None, an
                empty frame with the right index is created.
            scale: Scale of the values (default COUNTS)

        Raises:
            TypeError: If argument types are wrong
            ShapeMismatchError: If shapes or labels are inconsistent
            NumericDomainError: If a COUNTS matrix has negative or
                fractional entries
        """
        # Type validation
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(gene_ids, pd.Index):
            raise TypeError(f"gene_ids must be pd.Index, got {type(gene_ids)}")
        if not isinstance(sample_ids, pd.Index):
            raise TypeError(f"sample_ids must be pd.Index, got {type(sample_ids)}")
        if sample_metadata is None:
            sample_metadata = pd.DataFrame(index=sample_ids)
        if not isinstance(sample_metadata, pd.DataFrame):
            raise TypeError(f"sample_metadata must be pd.DataFrame, got {type(sample_metadata)}")
        if not isinstance(scale, MatrixScale):
            raise TypeError(f"scale must be MatrixScale, got {type(scale)}")

        # Shape validation
        if data.ndim != 2:
            raise ShapeMismatchError(f"data must be 2D, got shape {data.shape}")

        n_genes, n_samples = data.shape

        if len(gene_ids) != n_genes:
            raise ShapeMismatchError(
                f"gene_ids length ({len(gene_ids)}) must match data rows ({n_genes})"
            )
        if len(sample_ids) != n_samples:
            raise ShapeMismatchError(
                f"sample_ids length ({len(sample_ids)}) must match data columns ({n_samples})"
            )
        if gene_ids.has_duplicates:
            raise ShapeMismatchError(
                f"gene_ids must be unique, found {int(gene_ids.duplicated().sum())} duplicates"
            )
        if sample_ids.has_duplicates:
            raise ShapeMismatchError(
                f"sample_ids must be unique, found {int(sample_ids.duplicated().sum())} duplicates"
            )

        # Index validation
        if not sample_metadata.index.equals(sample_ids):
            raise ShapeMismatchError(
                "sample_metadata.index must match sample_ids exactly. "
                f"Got {len(sample_metadata.index)} metadata rows for {len(sample_ids)} samples."
            )

        if scale is MatrixScale.COUNTS and data.size > 0:
            if np.isnan(data).any():
                raise NumericDomainError("count matrix contains NaN values")
            if (data < 0).any():
                raise NumericDomainError(
                    f"count matrix contains {int((data < 0).sum())} negative entries"
                )
            if not np.array_equal(data, np.floor(data)):
                raise NumericDomainError("count matrix contains non-integer entries")

        # Store as private attributes (immutability by convention)
        self._data = data
        self._gene_ids = gene_ids
        self._sample_ids = sample_ids
        self._sample_metadata = sample_metadata
        self._scale = scale

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        sample_metadata: Optional[pd.DataFrame] = None,
        scale: MatrixScale = MatrixScale.COUNTS,
    ) -> ExpressionMatrix:
        """Build from a genes x samples DataFrame (index = gene ids)."""
        return cls(
            data=df.to_numpy(dtype=float),
            gene_ids=pd.Index(df.index),
            sample_ids=pd.Index(df.columns),
            sample_metadata=sample_metadata,
            scale=scale,
        )

    @property
    def data(self) -> np.ndarray:
        """Value matrix (genes x samples)."""
        return self._data

    @property
    def gene_ids(self) -> pd.Index:
        """Row identifiers."""
        return self._gene_ids

    @property
    def sample_ids(self) -> pd.Index:
        """Column identifiers."""
        return self._sample_ids

    @property
    def sample_metadata(self) -> pd.DataFrame:
        """Annotations for samples."""
        return self._sample_metadata

    @property
    def scale(self) -> MatrixScale:
        """Scale of the stored values."""
        return self._scale

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_genes, n_samples)."""
        return self._data.shape

    @property
    def n_genes(self) -> int:
        return self._data.shape[0]

    @property
    def n_samples(self) -> int:
        return self._data.shape[1]

    @property
    def conditions(self) -> Optional[pd.Series]:
        """The 'condition' column of sample_metadata, or None if absent."""
        if 'condition' not in self._sample_metadata.columns:
            return None
        return self._sample_metadata['condition']

    def with_data(self, data: np.ndarray, scale: MatrixScale) -> ExpressionMatrix:
        """
        Return a new matrix with the same labels and new values.

        This is how transforms produce their output: labels and metadata
        are shared, values and scale are replaced.

        Raises:
            ShapeMismatchError: If data has a different shape
        """
        if data.shape != self._data.shape:
            raise ShapeMismatchError(
                f"replacement data shape {data.shape} must match {self._data.shape}"
            )
        return ExpressionMatrix(
            data=data,
            gene_ids=self._gene_ids,
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
            scale=scale,
        )

    def select_samples(self, mask: np.ndarray | pd.Series) -> ExpressionMatrix:
        """
        Subset matrix by samples (columns).

        Args:
            mask: Boolean array/Series indicating which samples to keep
                If Series, uses values and ignores index

        Returns:
            New ExpressionMatrix with selected samples

        Raises:
            ShapeMismatchError: If mask length doesn't match n_samples
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)

        if len(mask) != self.n_samples:
            raise ShapeMismatchError(
                f"mask length ({len(mask)}) must match n_samples ({self.n_samples})"
            )

        return ExpressionMatrix(
            data=self._data[:, mask],
            gene_ids=self._gene_ids,
            sample_ids=self._sample_ids[mask],
            sample_metadata=self._sample_metadata.loc[self._sample_ids[mask]],
            scale=self._scale,
        )

    def select_genes(self, mask: np.ndarray | pd.Series) -> ExpressionMatrix:
        """
        Subset matrix by genes (rows).

        Args:
            mask: Boolean array/Series indicating which genes to keep
                If Series, uses values and ignores index

        Returns:
            New ExpressionMatrix with selected genes

        Raises:
            ShapeMismatchError: If mask length doesn't match n_genes

        Examples:
            >>> # Drop genes with no reads at all
            >>> expressed = counts.select_genes(counts.data.sum(axis=1) > 0)
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)

        if len(mask) != self.n_genes:
            raise ShapeMismatchError(
                f"mask length ({len(mask)}) must match n_genes ({self.n_genes})"
            )

        return ExpressionMatrix(
            data=self._data[mask, :],
            gene_ids=self._gene_ids[mask],
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
            scale=self._scale,
        )

    def to_frame(self) -> pd.DataFrame:
        """Values as a genes x samples DataFrame (a copy)."""
        return pd.DataFrame(
            self._data.copy(),
            index=self._gene_ids.copy(),
            columns=self._sample_ids.copy(),
        )

    def copy(self) -> ExpressionMatrix:
        """Deep copy of values, labels and metadata."""
        return ExpressionMatrix(
            data=self._data.copy(),
            gene_ids=self._gene_ids.copy(),
            sample_ids=self._sample_ids.copy(),
            sample_metadata=self._sample_metadata.copy(),
            scale=self._scale,
        )

    def __repr__(self) -> str:
        if self.n_genes == 0 or self.n_samples == 0:
            return f"ExpressionMatrix({self.n_genes} genes × {self.n_samples} samples, {self.scale.value})"
        return (
            f"ExpressionMatrix({self.n_genes} genes × {self.n_samples} samples, {self.scale.value})\n"
            f"  Genes: {self.gene_ids[0]}...{self.gene_ids[-1]}\n"
            f"  Samples: {self.sample_ids[0]}...{self.sample_ids[-1]}\n"
            f"  Metadata columns: {list(self.sample_metadata.columns)}"
        )
