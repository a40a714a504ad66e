"""
Input readers for the differential expression report.

Every reader fails immediately: a missing file raises FileNotFoundError and a
missing required column raises ValueError. There is no retry.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd
from pandas import DataFrame

from ..services.io import read_dataframe

logger = logging.getLogger(__name__)


@dataclass
class AnalysisInputs:
    """The five inputs of one report run."""

    annotation: DataFrame
    alignment: DataFrame
    metadata: DataFrame
    counts: DataFrame
    log2_threshold: float


def _require_columns(df: DataFrame, required: List[str], path: Path) -> None:
    missing_cols = [col for col in required if col not in df.columns]
    if missing_cols:
        raise ValueError(
            f"{path.name} missing required columns: {missing_cols}. "
            f"Found: {list(df.columns)}"
        )


def read_gene_annotation(
    path: Union[Path, str],
    gene_col: str = "gene_id",
    symbol_col: str = "symbol",
    url_template: str = "https://www.ensembl.org/id/{gene_id}",
) -> DataFrame:
    """
    Load the gene id to symbol mapping and derive a hyperlink per gene.

    Parameters
    ----------
    path : Path or str
        Annotation table with at least gene_col and symbol_col.
    gene_col : str
        Column holding the gene identifier.
    symbol_col : str
        Column holding the gene symbol.
    url_template : str
        Format string with a ``{gene_id}`` field.

    Returns
    -------
    DataFrame
        Indexed by gene id with columns ``symbol`` and ``link``. Genes without
        a symbol fall back to their id.
    """
    path = Path(path)
    df = read_dataframe(path)
    _require_columns(df, [gene_col, symbol_col], path)

    annotation = df[[gene_col, symbol_col]].drop_duplicates(subset=gene_col)
    annotation = annotation.rename(columns={symbol_col: "symbol"})
    annotation[gene_col] = annotation[gene_col].astype(str)
    annotation["symbol"] = annotation["symbol"].fillna(annotation[gene_col])
    annotation["symbol"] = annotation["symbol"].astype(str)
    annotation["link"] = [
        f'<a href="{url_template.format(gene_id=gene_id)}">{symbol}</a>'
        for gene_id, symbol in zip(annotation[gene_col], annotation["symbol"])
    ]
    annotation = annotation.set_index(gene_col)
    annotation.index.name = "gene_id"
    logger.info("Loaded annotation for %d genes from %s", len(annotation), path)
    return annotation


def read_alignment_summary(
    path: Union[Path, str],
    sample_col: str = "sample_id",
    unit_col: str = "unit_id",
    aligned_col: str = "uniquely_aligned",
) -> DataFrame:
    """
    Load per sequencing unit alignment statistics.

    Returns a frame with the columns sample_col, unit_col and aligned_col.
    (sample, unit) pairs must be unique.
    """
    path = Path(path)
    df = read_dataframe(path)
    _require_columns(df, [sample_col, unit_col, aligned_col], path)

    df = df[[sample_col, unit_col, aligned_col]].copy()
    df[sample_col] = df[sample_col].astype(str)
    df[unit_col] = df[unit_col].astype(str)
    duplicated = df.duplicated(subset=[sample_col, unit_col])
    if duplicated.any():
        pairs = df.loc[duplicated, [sample_col, unit_col]].values.tolist()
        raise ValueError(
            f"Duplicate (sample, unit) pairs in {path.name}: {pairs}"
        )
    return df


def read_metadata(
    path: Union[Path, str],
    sample_col: str = "sample_id",
    required_cols: Optional[List[str]] = None,
) -> DataFrame:
    """
    Load sample metadata indexed by sample id.

    Parameters
    ----------
    path : Path or str
        Metadata table, one row per sample.
    sample_col : str
        Column holding the sample identifier (becomes the index).
    required_cols : list, optional
        Covariate columns that must be present, e.g.
        ["sex", "tissue", "genotype", "treatment_duration"].

    Returns
    -------
    DataFrame
        Metadata indexed by sample id, in file order.
    """
    path = Path(path)
    required_cols = list(required_cols or [])
    df = read_dataframe(path)
    _require_columns(df, [sample_col] + required_cols, path)

    df[sample_col] = df[sample_col].astype(str)
    if df[sample_col].duplicated().any():
        dups = df.loc[df[sample_col].duplicated(), sample_col].tolist()
        raise ValueError(f"Duplicate sample ids in {path.name}: {dups}")
    return df.set_index(sample_col)


def read_counts(
    path: Union[Path, str],
    gene_col: str = "gene_id",
) -> DataFrame:
    """
    Load a gene x sample count table.

    The gene column becomes the index; all remaining columns are samples and
    must hold non-negative integers.
    """
    path = Path(path)
    df = read_dataframe(path)
    _require_columns(df, [gene_col], path)

    df[gene_col] = df[gene_col].astype(str)
    counts = df.set_index(gene_col)
    counts.columns = counts.columns.astype(str)

    if counts.shape[1] == 0:
        raise ValueError(f"No sample columns found in {path.name}")

    for col in counts.columns:
        if not pd.api.types.is_numeric_dtype(counts[col]):
            raise ValueError(
                f"Sample column '{col}' contains non-numeric values"
            )
        if counts[col].isna().any():
            raise ValueError(f"Sample column '{col}' contains missing counts")
        if (counts[col] < 0).any():
            raise ValueError(f"Sample column '{col}' contains negative counts")
        if (counts[col] % 1 != 0).any():
            raise ValueError(
                f"Sample column '{col}' contains non-integer counts"
            )

    logger.info(
        "Loaded %d genes x %d samples from %s",
        counts.shape[0],
        counts.shape[1],
        path,
    )
    return counts.astype(int)


def read_threshold(path: Union[Path, str]) -> float:
    """Read the single log2 expression cutoff stored in a text file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Threshold file not found: {path}")
    tokens = path.read_text().split()
    if len(tokens) != 1:
        raise ValueError(
            f"Threshold file {path.name} must contain exactly one value, "
            f"found {len(tokens)}"
        )
    try:
        return float(tokens[0])
    except ValueError as exc:
        raise ValueError(
            f"Threshold file {path.name} does not hold a number: {tokens[0]!r}"
        ) from exc


def load_inputs(settings) -> AnalysisInputs:
    """Read every input named by settings (a ``Settings`` instance)."""
    paths = {
        "gene_annotation_path": settings.gene_annotation_path,
        "alignment_summary_path": settings.alignment_summary_path,
        "metadata_path": settings.metadata_path,
        "counts_path": settings.counts_path,
        "threshold_path": settings.threshold_path,
    }
    unset = [name for name, value in paths.items() if value is None]
    if unset:
        raise ValueError(f"Input paths not configured: {unset}")

    return AnalysisInputs(
        annotation=read_gene_annotation(
            settings.gene_annotation_path,
            gene_col=settings.gene_col,
            symbol_col=settings.symbol_col,
            url_template=settings.gene_url_template,
        ),
        alignment=read_alignment_summary(
            settings.alignment_summary_path,
            sample_col=settings.sample_col,
            unit_col=settings.unit_col,
            aligned_col=settings.aligned_col,
        ),
        metadata=read_metadata(
            settings.metadata_path,
            sample_col=settings.sample_col,
            required_cols=settings.covariate_cols,
        ),
        counts=read_counts(settings.counts_path, gene_col=settings.gene_col),
        log2_threshold=read_threshold(settings.threshold_path),
    )
