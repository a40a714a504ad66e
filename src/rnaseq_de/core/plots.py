"""
Plotting functions for the differential expression report.

Every function returns a matplotlib Figure or a seaborn grid; saving is
left to the caller (see ``services.io.save_figure``).
"""

from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt  # type: ignore
import numpy as np
import pandas as pd  # type: ignore
import seaborn as sns  # type: ignore
from matplotlib.figure import Figure  # type: ignore
from pandas import DataFrame  # type: ignore
from scipy.cluster.hierarchy import linkage
from scipy.spatial.distance import squareform

from .diagnostics import PCAResult


def _annotate_abs_r(x, y, ax=None, **kwargs):
    ax = ax or plt.gca()
    r = abs(np.corrcoef(x, y)[0, 1])
    ax.annotate(
        f"|r| = {r:.3f}",
        xy=(0.05, 0.9),
        xycoords="axes fraction",
        fontsize=9,
    )


def plot_correlation_grid(
    matrix: DataFrame,
    title: Optional[str] = None,
    height: float = 2.0,
) -> sns.PairGrid:
    """
    Pairwise sample scatter matrix.

    Upper panels show the scatter with its absolute Pearson correlation,
    the diagonal a histogram per sample, lower panels a regression fit.

    Parameters
    ----------
    matrix : DataFrame
        Transformed expression, genes x samples.
    title : str, optional
        Figure title.
    height : float
        Height of each panel in inches.

    Returns
    -------
    PairGrid
    """
    grid = sns.PairGrid(matrix, height=height, diag_sharey=False)
    grid.map_upper(plt.scatter, s=3, alpha=0.4, edgecolors="none")
    grid.map_upper(_annotate_abs_r)
    grid.map_diag(sns.histplot, bins=30)
    grid.map_lower(
        sns.regplot,
        scatter_kws={"s": 3, "alpha": 0.4},
        line_kws={"color": "red", "linewidth": 1},
    )
    if title is None:
        title = "Sample correlation (rlog)"
    grid.figure.suptitle(title, y=1.02)
    return grid


def plot_distance_heatmap(
    distances: DataFrame,
    title: Optional[str] = None,
    cmap: str = "viridis_r",
    figsize: Tuple[float, float] = (7, 7),
) -> sns.matrix.ClusterGrid:
    """
    Clustered heatmap of sample-to-sample distances.

    Rows and columns share one average-linkage tree built from the distances
    themselves.
    """
    condensed = squareform(distances.to_numpy(dtype=float), checks=False)
    tree = linkage(condensed, method="average")
    grid = sns.clustermap(
        distances,
        row_linkage=tree,
        col_linkage=tree,
        cmap=cmap,
        figsize=figsize,
        annot=distances.shape[0] <= 12,
        fmt=".1f",
        cbar_kws={"label": "Euclidean distance"},
    )
    if title is None:
        title = "Sample distances (rlog)"
    grid.figure.suptitle(title, y=1.02)
    return grid


def covariate_colors(
    metadata: DataFrame, covariates: Sequence[str], palette: str = "Set2"
) -> DataFrame:
    """One colour column per covariate, indexed by sample id."""
    colors = {}
    for col in covariates:
        if col not in metadata.columns:
            raise ValueError(f"Covariate '{col}' not in metadata")
        values = metadata[col].astype(str)
        levels = sorted(values.unique())
        lut = dict(zip(levels, sns.color_palette(palette, len(levels))))
        colors[col] = values.map(lut)
    return pd.DataFrame(colors, index=metadata.index)


def plot_top_expressed_heatmap(
    normalized: DataFrame,
    genes: Sequence[str],
    metadata: DataFrame,
    covariates: Sequence[str] = ("sex", "genotype"),
    labels: Optional[pd.Series] = None,
    title: Optional[str] = None,
    cmap: str = "rocket_r",
) -> sns.matrix.ClusterGrid:
    """
    Heatmap of log2(normalized + 1) for the given genes in the given order.

    Neither rows nor columns are reordered. Covariates are drawn as colour
    bars above the columns.

    Parameters
    ----------
    normalized : DataFrame
        Normalized counts, genes x samples.
    genes : sequence
        Gene ids, top row first.
    metadata : DataFrame
        Sample covariates indexed by sample id.
    covariates : sequence of str
        Metadata columns shown as colour bars.
    labels : Series, optional
        gene id -> display label (e.g. symbol).
    """
    data = np.log2(normalized.loc[list(genes)] + 1.0)
    if labels is not None:
        data.index = [labels.get(g, g) for g in data.index]
    col_colors = covariate_colors(metadata.loc[data.columns], covariates)
    grid = sns.clustermap(
        data,
        row_cluster=False,
        col_cluster=False,
        col_colors=col_colors,
        cmap=cmap,
        figsize=(max(6, 0.6 * data.shape[1] + 4), max(6, 0.3 * data.shape[0] + 2)),
        cbar_kws={"label": "log2(normalized count + 1)"},
        yticklabels=True,
        xticklabels=True,
    )
    if title is None:
        title = f"Top {len(data)} expressed genes"
    grid.figure.suptitle(title, y=1.02)
    return grid


def plot_pca(
    pca: PCAResult,
    color_by: str = "sex",
    marker_by: Optional[str] = "genotype",
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (7, 6),
) -> Figure:
    """
    First two principal components, coloured and marked by covariates.
    """
    coords = pca.coordinates
    if "PC2" not in coords.columns:
        raise ValueError("PCA plot needs at least two components")
    for col in (color_by, marker_by):
        if col is not None and col not in coords.columns:
            raise ValueError(f"Column '{col}' not in PCA coordinates")

    data = coords.copy()
    data[color_by] = data[color_by].astype(str)
    if marker_by is not None:
        data[marker_by] = data[marker_by].astype(str)

    fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(
        data=data,
        x="PC1",
        y="PC2",
        hue=color_by,
        style=marker_by,
        s=90,
        ax=ax,
    )
    for sample, row in data.iterrows():
        ax.annotate(
            str(sample),
            (row["PC1"], row["PC2"]),
            textcoords="offset points",
            xytext=(5, 5),
            fontsize=8,
        )
    var = pca.explained_variance_ratio
    ax.set_xlabel(f"PC1 ({var[0] * 100:.1f}% variance)")
    ax.set_ylabel(f"PC2 ({var[1] * 100:.1f}% variance)")
    if title is None:
        title = f"PCA (top {pca.n_genes} variable genes)"
    ax.set_title(title, fontsize=14, pad=10)
    ax.legend(bbox_to_anchor=(1.02, 1), loc="upper left", frameon=False)
    plt.tight_layout()
    return fig


def ma_points(results: DataFrame, ylim: float = 2.0) -> DataFrame:
    """
    Plotting coordinates for an MA plot.

    Genes without a fold change or with zero mean are dropped. Fold changes
    beyond +/- ylim are clipped to the bound and flagged in ``clipped``
    (1 above, -1 below, 0 inside).
    """
    df = results[["baseMean", "log2FoldChange", "padj"]].copy()
    df = df[df["baseMean"] > 0].dropna(subset=["log2FoldChange"])
    lfc = df["log2FoldChange"]
    df["clipped"] = np.sign(lfc).where(lfc.abs() > ylim, 0).astype(int)
    df["y"] = lfc.clip(lower=-ylim, upper=ylim)
    return df


def plot_ma(
    results: DataFrame,
    alpha: float = 0.1,
    ylim: float = 2.0,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (8, 6),
) -> Figure:
    """
    Mean-difference plot of the test results.

    x is the mean normalized count on a log scale, y the log2 fold change
    restricted to [-ylim, ylim]. Points outside are drawn as triangles at the
    bound, pointing in the direction of the true value. Genes with
    padj <= alpha are highlighted in red.
    """
    df = ma_points(results, ylim=ylim)
    sig = df["padj"].notna() & (df["padj"] <= alpha)

    fig, ax = plt.subplots(figsize=figsize)
    markers = {0: "o", 1: "^", -1: "v"}
    for direction, marker in markers.items():
        mask = df["clipped"] == direction
        for is_sig, color, size in ((False, "grey", 8), (True, "red", 14)):
            sel = mask & (sig == is_sig)
            if not sel.any():
                continue
            ax.scatter(
                df.loc[sel, "baseMean"],
                df.loc[sel, "y"],
                s=size,
                c=color,
                marker=marker,
                alpha=0.7,
                edgecolors="none",
                label=f"padj <= {alpha}" if is_sig and marker == "o" else None,
            )
    ax.axhline(0, color="black", linewidth=0.8)
    ax.set_xscale("log")
    ax.set_ylim(-ylim, ylim)
    ax.set_xlabel("Mean of normalized counts")
    ax.set_ylabel("log2 fold change")
    if title is None:
        title = "MA plot"
    ax.set_title(title, fontsize=14, pad=10)
    if sig.any():
        ax.legend(loc="upper right", frameon=False)
    plt.tight_layout()
    return fig


def plot_dispersions(
    dispersions: DataFrame,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (7, 6),
) -> Figure:
    """
    Gene-wise, fitted trend and final dispersion estimates over mean count.
    """
    df = dispersions[dispersions["baseMean"] > 0].sort_values("baseMean")
    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(
        df["baseMean"],
        df["genewise"],
        s=4,
        c="black",
        alpha=0.5,
        edgecolors="none",
        label="gene-wise",
    )
    ax.scatter(
        df["baseMean"],
        df["final"],
        s=4,
        c="dodgerblue",
        alpha=0.5,
        edgecolors="none",
        label="final",
    )
    ax.plot(df["baseMean"], df["fitted"], color="red", linewidth=1.5, label="fitted")
    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlabel("Mean of normalized counts")
    ax.set_ylabel("Dispersion")
    if title is None:
        title = "Dispersion estimates"
    ax.set_title(title, fontsize=14, pad=10)
    ax.legend(frameon=False)
    plt.tight_layout()
    return fig


def plot_pvalue_histogram(
    results: DataFrame,
    bins: int = 40,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (7, 5),
) -> Figure:
    """Histogram of raw Wald p-values."""
    pvalues = pd.to_numeric(results["pvalue"], errors="coerce").dropna()
    fig, ax = plt.subplots(figsize=figsize)
    ax.hist(pvalues, bins=bins, range=(0, 1), color="steelblue", edgecolor="white")
    ax.set_xlabel("p-value")
    ax.set_ylabel("Genes")
    if title is None:
        title = "p-value distribution"
    ax.set_title(title, fontsize=14, pad=10)
    plt.tight_layout()
    return fig
