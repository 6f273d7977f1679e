"""
Pytest configuration and shared fixtures.

Provides a negative-binomial count generator with realistic RNA-seq
properties (mean-dependent overdispersion, unequal library depths, two
conditions) and small hand-written matrices for exact checks.
"""

import numpy as np
import pandas as pd
import pytest

from countnorm.core.matrix import ExpressionMatrix
from countnorm.core.scale import MatrixScale


def generate_negative_binomial_counts(
    n_genes: int = 1000,
    n_per_condition: int = 4,
    conditions: tuple = ("WT", "KO"),
    size_factors=None,
    asympt_disp: float = 0.05,
    extra_pois: float = 0.5,
    de_fraction: float = 0.0,
    seed: int = 42,
) -> ExpressionMatrix:
    """
    Simulate a COUNTS matrix from a negative binomial model.

    Args:
        n_genes: Number of genes
        n_per_condition: Replicates per condition
        conditions: Condition labels; samples are named '{condition}_{i}'
        size_factors: Per-sample depth factors (default: log-uniform 0.5-2)
        asympt_disp, extra_pois: True dispersion alpha(mu) = a0 + a1 / mu
        de_fraction: Fraction of genes with a 4-fold change in the second condition
        seed: Random seed for reproducibility

    Design:
        - Gene means log-uniform between 1 and 1000
        - Gamma-Poisson draw: lambda ~ Gamma(1/alpha, mu * alpha), X ~ Poisson(lambda)
        - All-zero genes are kept; callers filter them when needed
    """
    rng = np.random.default_rng(seed)
    sample_ids = [f"{c}_{i + 1}" for c in conditions for i in range(n_per_condition)]
    labels = [c for c in conditions for _ in range(n_per_condition)]
    n_samples = len(sample_ids)

    if size_factors is None:
        size_factors = np.exp(rng.uniform(np.log(0.5), np.log(2.0), n_samples))
    size_factors = np.asarray(size_factors, dtype=float)

    base = np.exp(rng.uniform(np.log(1.0), np.log(1000.0), n_genes))
    means = np.repeat(base[:, None], n_samples, axis=1)
    if de_fraction > 0 and len(conditions) > 1:
        de = rng.random(n_genes) < de_fraction
        second = np.array([lab == conditions[1] for lab in labels])
        means[np.ix_(de, second)] *= 4.0
    mu = means * size_factors[None, :]

    alpha = asympt_disp + extra_pois / mu
    shape = 1.0 / alpha
    lam = rng.gamma(shape, mu / shape)
    counts = rng.poisson(lam).astype(float)

    sample_index = pd.Index(sample_ids)
    return ExpressionMatrix(
        data=counts,
        gene_ids=pd.Index([f"gene{i:05d}" for i in range(n_genes)]),
        sample_ids=sample_index,
        sample_metadata=pd.DataFrame({'condition': labels}, index=sample_index),
        scale=MatrixScale.COUNTS,
    )


def make_counts(rows, sample_ids=None, gene_ids=None, conditions=None) -> ExpressionMatrix:
    """Small COUNTS matrix from a list of rows."""
    data = np.asarray(rows, dtype=float)
    if sample_ids is None:
        sample_ids = [f"s{j + 1}" for j in range(data.shape[1])]
    if gene_ids is None:
        gene_ids = [f"g{i + 1}" for i in range(data.shape[0])]
    sample_index = pd.Index(sample_ids)
    metadata = None
    if conditions is not None:
        metadata = pd.DataFrame({'condition': list(conditions)}, index=sample_index)
    return ExpressionMatrix(data, pd.Index(gene_ids), sample_index, metadata)


@pytest.fixture
def simulated_counts():
    """1000 genes x 8 samples (WT/KO) with all-zero genes removed."""
    counts = generate_negative_binomial_counts()
    return counts.select_genes(counts.data.sum(axis=1) > 0)


@pytest.fixture
def simulated_de_counts():
    """Like simulated_counts but with 20% of genes differentially expressed."""
    counts = generate_negative_binomial_counts(de_fraction=0.2, seed=7)
    return counts.select_genes(counts.data.sum(axis=1) > 0)


@pytest.fixture
def two_gene_counts():
    """g1 = [10, 20, 10, 20], g2 = [5, 5, 20, 20]."""
    return make_counts([[10, 20, 10, 20], [5, 5, 20, 20]])


@pytest.fixture
def featurecounts_file(tmp_path):
    """featureCounts output with a program comment line and BAM-path headers."""
    path = tmp_path / "counts.txt"
    lines = [
        '# Program:featureCounts v2.0.1; Command:"featureCounts" "-a" "genes.gtf"',
        "Geneid\tChr\tStart\tEnd\tStrand\tLength\t"
        "/data/bam/WT_1.sorted.bam\t/data/bam/WT_2.sorted.bam\t"
        "/data/bam/KO_1.sorted.bam\t/data/bam/KO_2.sorted.bam",
        "ENSG01\tchr1\t100\t900\t+\t800\t120\t98\t240\t260",
        "ENSG02\tchr1\t1200\t2400\t-\t1200\t15\t22\t7\t9",
        "ENSG03\tchr2\t50\t450\t+\t400\t0\t0\t0\t0",
        "ENSG04\tchr2\t900\t1900\t+\t1000\t300\t350\t310\t290",
        "ENSG05\tchr3\t10\t510\t-\t500\t42\t38\t55\t61",
    ]
    path.write_text("\n".join(lines) + "\n")
    return path
