"""
Selection and summary of differential expression results.
"""

from typing import Dict, Optional

import pandas as pd
from pandas import DataFrame

PRESENTATION_COLUMNS = [
    "gene_id",
    "symbol",
    "link",
    "baseMean",
    "log2FoldChange",
    "lfcSE",
    "stat",
    "pvalue",
    "padj",
]


def annotate_results(
    results: DataFrame, annotation: Optional[DataFrame] = None
) -> DataFrame:
    """
    Join results with gene symbols and links; gene id becomes a column.

    Genes missing from the annotation keep their id as symbol and link text.
    """
    df = results.copy()
    df.index.name = "gene_id"
    if annotation is not None:
        df = df.join(annotation[["symbol", "link"]], how="left")
    else:
        df["symbol"] = pd.NA
        df["link"] = pd.NA
    ids = df.index.to_series()
    df["symbol"] = df["symbol"].fillna(ids)
    df["link"] = df["link"].fillna(df["symbol"])
    df = df.reset_index()
    return df[PRESENTATION_COLUMNS]


def select_significant(
    results: DataFrame,
    annotation: Optional[DataFrame] = None,
    alpha: float = 0.1,
) -> DataFrame:
    """
    Genes with a non-missing adjusted p-value at or below alpha.

    Parameters
    ----------
    results : DataFrame
        Result table indexed by gene id with a ``padj`` and
        ``log2FoldChange`` column.
    annotation : DataFrame, optional
        Gene annotation indexed by gene id (``symbol``, ``link``).
    alpha : float
        Significance threshold on padj (inclusive).

    Returns
    -------
    DataFrame
        Presentation columns, sorted by log2FoldChange descending, with the
        gene id as an explicit ``gene_id`` column and a fresh index.
    """
    padj = pd.to_numeric(results["padj"], errors="coerce")
    mask = padj.notna() & (padj <= alpha)
    selected = annotate_results(results.loc[mask], annotation)
    selected = selected.sort_values(
        by="log2FoldChange", ascending=False, kind="mergesort"
    )
    return selected.reset_index(drop=True)


def summarize_results(results: DataFrame, alpha: float = 0.1) -> Dict[str, int]:
    """Counts of tested, significant, up- and down-regulated genes."""
    padj = pd.to_numeric(results["padj"], errors="coerce")
    lfc = pd.to_numeric(results["log2FoldChange"], errors="coerce")
    sig = padj.notna() & (padj <= alpha)
    return {
        "n_tested": int(len(results)),
        "n_with_padj": int(padj.notna().sum()),
        "n_significant": int(sig.sum()),
        "n_up": int((sig & (lfc > 0)).sum()),
        "n_down": int((sig & (lfc < 0)).sum()),
    }
