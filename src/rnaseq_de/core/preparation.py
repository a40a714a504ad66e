"""
Sample table assembly and count matrix filtering.

Filtering runs in two passes: technical rows and all-zero genes are removed
before any model exists, the expression threshold is applied once normalized
counts are available.
"""

import logging
import re
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from pandas import DataFrame

logger = logging.getLogger(__name__)

DEFAULT_SORT_COLUMNS = ["sex", "tissue", "genotype", "treatment_duration"]


def build_sample_table(
    metadata: DataFrame,
    alignment: DataFrame,
    sample_col: str = "sample_id",
    unit_col: str = "unit_id",
    sort_cols: Optional[Sequence[str]] = None,
) -> DataFrame:
    """
    Join metadata and alignment statistics into one sample descriptor table.

    Every metadata sample is kept (left join); samples without alignment
    rows carry null alignment fields. Rows are sorted by the covariates in
    sort_cols followed by sample id and unit id.

    Parameters
    ----------
    metadata : DataFrame
        Metadata indexed by sample id.
    alignment : DataFrame
        Alignment summary with sample_col and unit_col columns.
    sample_col : str
        Sample id column name in alignment (and name of metadata's index).
    unit_col : str
        Sequencing unit column name.
    sort_cols : sequence, optional
        Covariate sort order, defaults to sex, tissue, genotype,
        treatment_duration.

    Returns
    -------
    DataFrame
        One row per (sample, unit) with a fresh RangeIndex.
    """
    sort_cols = list(DEFAULT_SORT_COLUMNS if sort_cols is None else sort_cols)
    left = metadata.rename_axis(sample_col).reset_index()
    table = left.merge(alignment, on=sample_col, how="left")

    unaligned = table.loc[table[unit_col].isna(), sample_col].tolist()
    if unaligned:
        logger.warning(
            "No alignment statistics for samples: %s", ", ".join(unaligned)
        )

    keys = [c for c in sort_cols if c in table.columns] + [sample_col, unit_col]
    table = table.sort_values(by=keys, kind="mergesort", na_position="last")
    return table.reset_index(drop=True)


def align_counts_to_metadata(counts: DataFrame, metadata: DataFrame) -> DataFrame:
    """
    Reorder count columns to exactly the metadata row order.

    Raises ValueError when a sample is present on one side only.
    """
    samples = [str(s) for s in metadata.index]
    missing_in_counts = [s for s in samples if s not in counts.columns]
    missing_in_metadata = [c for c in counts.columns if c not in set(samples)]
    if missing_in_counts or missing_in_metadata:
        raise ValueError(
            "Count matrix and metadata disagree on samples. "
            f"Missing from counts: {missing_in_counts}. "
            f"Missing from metadata: {missing_in_metadata}."
        )
    return counts.loc[:, samples]


def remove_technical_rows(
    counts: DataFrame, pattern: str = r"^(ERCC-|__)"
) -> DataFrame:
    """Drop spike-in controls and counting bins such as ``__no_feature``."""
    regex = re.compile(pattern)
    mask = np.array([bool(regex.search(str(g))) for g in counts.index])
    if mask.any():
        logger.info("Removed %d technical rows matching %r", mask.sum(), pattern)
    return counts.loc[~mask]


def drop_zero_rows(counts: DataFrame) -> DataFrame:
    """Drop genes without a single read in any sample."""
    keep = counts.sum(axis=1) > 0
    logger.info(
        "Dropped %d all-zero genes, %d remain", (~keep).sum(), keep.sum()
    )
    return counts.loc[keep]


def expression_threshold(log2_value: float) -> float:
    """Linear cutoff for a log2(x + 1) threshold: 2**L - 1."""
    return float(2.0**log2_value - 1.0)


def expressed_genes(normalized: DataFrame, log2_value: float) -> pd.Index:
    """Genes with a normalized count above the threshold in any sample."""
    threshold = expression_threshold(log2_value)
    keep = (normalized > threshold).any(axis=1)
    return normalized.index[keep]


def filter_by_expression(
    counts: DataFrame, normalized: DataFrame, log2_value: float
) -> DataFrame:
    """
    Keep raw count rows whose normalized counts pass the threshold.

    Parameters
    ----------
    counts : DataFrame
        Raw counts, genes x samples.
    normalized : DataFrame
        Size-factor normalized counts with the same genes.
    log2_value : float
        Threshold L on the log2 scale; a gene survives iff at least one
        sample's normalized count is strictly greater than 2**L - 1.
    """
    keep = expressed_genes(normalized, log2_value)
    logger.info(
        "Expression threshold %.3f (log2 %.3f): kept %d of %d genes",
        expression_threshold(log2_value),
        log2_value,
        len(keep),
        len(counts),
    )
    return counts.loc[counts.index.isin(keep)]
