"""
Sample-level QC diagnostics on transformed expression values.
"""

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Optional

import numpy as np
import pandas as pd
from pandas import DataFrame, Series
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA

from .transform import rlog as rlog_transform

logger = logging.getLogger(__name__)


@dataclass
class PCAResult:
    coordinates: DataFrame
    explained_variance_ratio: np.ndarray
    n_genes: int


def sample_correlation(matrix: DataFrame) -> DataFrame:
    """Absolute Pearson correlation between every pair of samples."""
    return matrix.corr(method="pearson").abs()


def sample_distances(matrix: DataFrame) -> DataFrame:
    """
    Euclidean distances between samples over all genes.

    The result is symmetric with an exact zero diagonal.
    """
    dist = squareform(pdist(matrix.T.to_numpy(dtype=float), metric="euclidean"))
    return pd.DataFrame(dist, index=matrix.columns, columns=matrix.columns)


def top_expressed_genes(normalized: DataFrame, n: int = 20) -> pd.Index:
    """Ids of the n genes with highest mean normalized count, highest first."""
    means = normalized.mean(axis=1)
    return means.sort_values(ascending=False, kind="mergesort").index[:n]


def principal_components(
    matrix: DataFrame,
    metadata: Optional[DataFrame] = None,
    n_top: int = 500,
    n_components: int = 2,
) -> PCAResult:
    """
    Project samples onto the leading principal components.

    Parameters
    ----------
    matrix : DataFrame
        Transformed expression, genes x samples.
    metadata : DataFrame, optional
        Covariates indexed by sample id, joined onto the coordinates.
    n_top : int
        Number of most variable genes used.
    n_components : int
        Components to keep (capped by the number of samples).

    Returns
    -------
    PCAResult
    """
    variances = matrix.var(axis=1)
    top = variances.sort_values(ascending=False).index[:n_top]
    X = matrix.loc[top].T.to_numpy(dtype=float)
    n_components = min(n_components, X.shape[0], X.shape[1])

    pca = PCA(n_components=n_components)
    coords = pca.fit_transform(X)
    coord_df = pd.DataFrame(
        coords,
        index=matrix.columns,
        columns=[f"PC{i + 1}" for i in range(n_components)],
    )
    if metadata is not None:
        coord_df = coord_df.join(metadata)
    return PCAResult(
        coordinates=coord_df,
        explained_variance_ratio=pca.explained_variance_ratio_,
        n_genes=len(top),
    )


class Diagnostics:
    """
    QC diagnostics for one normalized data set.

    Every derived matrix is computed on first access and then reused, so the
    rlog transform runs once no matter how many plots read it.

    Parameters
    ----------
    counts : DataFrame
        Raw counts, genes x samples.
    size_factors : Series
        Per-sample size factors in column order.
    metadata : DataFrame
        Sample covariates indexed by sample id.
    design : str
        Design formula the rlog dispersions are estimated against.
    top_n : int
        Size of the top-expressed gene list.
    pca_top_genes : int
        Number of most variable genes used for PCA.
    """

    def __init__(
        self,
        counts: DataFrame,
        size_factors: Series,
        metadata: DataFrame,
        design: str,
        top_n: int = 20,
        pca_top_genes: int = 500,
    ):
        self.counts = counts
        self.size_factors = size_factors
        self.metadata = metadata
        self.design = design
        self.top_n = top_n
        self.pca_top_genes = pca_top_genes

    @classmethod
    def from_model(cls, model, top_n: int = 20, pca_top_genes: int = 500):
        """Build from a fitted ``DEModel`` and its design."""
        return cls(
            counts=model.counts,
            size_factors=model.size_factors,
            metadata=model.metadata,
            design=model.design,
            top_n=top_n,
            pca_top_genes=pca_top_genes,
        )

    @cached_property
    def normalized(self) -> DataFrame:
        return self.counts.div(self.size_factors, axis=1)

    @cached_property
    def rlog(self) -> DataFrame:
        logger.info("Computing rlog transform for %d genes", len(self.counts))
        return rlog_transform(
            self.counts, self.metadata, self.design, self.size_factors.to_numpy()
        )

    @cached_property
    def correlation(self) -> DataFrame:
        return sample_correlation(self.rlog)

    @cached_property
    def distances(self) -> DataFrame:
        return sample_distances(self.rlog)

    @cached_property
    def top_genes(self) -> pd.Index:
        return top_expressed_genes(self.normalized, self.top_n)

    @cached_property
    def pca(self) -> PCAResult:
        return principal_components(
            self.rlog, self.metadata, n_top=self.pca_top_genes
        )
