"""
Ordered analysis pipeline: load -> prepare -> fit -> diagnose -> test.

Each stage takes the entities produced by the previous one plus explicit
parameters; nothing is read from module-level state.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pandas import DataFrame

from .diagnostics import Diagnostics
from .differential import select_significant, summarize_results
from .loading import AnalysisInputs, load_inputs
from .model import DEModel
from .preparation import (
    align_counts_to_metadata,
    build_sample_table,
    drop_zero_rows,
    remove_technical_rows,
)

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Everything the report renders, produced by one ``run_analysis`` call."""

    sample_table: DataFrame
    full_model: DEModel
    reduced_model: DEModel
    diagnostics: Diagnostics
    results: DataFrame
    significant: DataFrame
    annotation: Optional[DataFrame] = None
    contrast: List[str] = field(default_factory=list)
    alpha: float = 0.1
    gene_counts: Dict[str, int] = field(default_factory=dict)
    result_summary: Dict[str, int] = field(default_factory=dict)


def run_differential_expression(
    counts: DataFrame,
    metadata: DataFrame,
    log2_threshold: float,
    full_design: str,
    reduced_design: str,
    contrast,
    reference_levels=None,
    alpha: float = 0.1,
    n_cpus: int = 1,
):
    """
    Walk the model through all of its states.

    Returns (full_model, reduced_model, results). ``full_model`` is fitted
    with full_design on the genes passing the expression threshold;
    ``reduced_model`` is the same data refit under reduced_design.
    """
    model = DEModel(
        counts,
        metadata,
        full_design,
        reference_levels=reference_levels,
        n_cpus=n_cpus,
    )
    model.estimate_size_factors()
    full_model = model.filter_expressed(log2_threshold)
    full_model.fit()

    reduced_model = full_model.with_design(reduced_design)
    reduced_model.fit()
    results = reduced_model.results(list(contrast), alpha=alpha)
    return full_model, reduced_model, results


def run_analysis(inputs: AnalysisInputs, settings) -> AnalysisResult:
    """
    Run every stage for already loaded inputs.

    Parameters
    ----------
    inputs : AnalysisInputs
        Loaded annotation, alignment, metadata, counts and threshold.
    settings : Settings
        Column names, designs, reference levels, contrast and thresholds.
    """
    logger.info("Building sample table")
    sample_table = build_sample_table(
        inputs.metadata,
        inputs.alignment,
        sample_col=settings.sample_col,
        unit_col=settings.unit_col,
        sort_cols=settings.covariate_cols,
    )

    logger.info("Preparing count matrix")
    gene_counts = {"loaded": int(inputs.counts.shape[0])}
    counts = align_counts_to_metadata(inputs.counts, inputs.metadata)
    counts = remove_technical_rows(counts, settings.technical_row_pattern)
    gene_counts["biological"] = int(counts.shape[0])
    counts = drop_zero_rows(counts)
    gene_counts["nonzero"] = int(counts.shape[0])

    full_model, reduced_model, results = run_differential_expression(
        counts,
        inputs.metadata,
        inputs.log2_threshold,
        full_design=settings.full_design,
        reduced_design=settings.reduced_design,
        contrast=settings.contrast,
        reference_levels=settings.reference_levels,
        alpha=settings.alpha,
        n_cpus=settings.n_cpus,
    )
    gene_counts["expressed"] = int(full_model.counts.shape[0])

    diagnostics = Diagnostics.from_model(
        full_model,
        top_n=settings.top_expressed_n,
        pca_top_genes=settings.pca_top_genes,
    )
    significant = select_significant(
        results, inputs.annotation, alpha=settings.alpha
    )
    return AnalysisResult(
        sample_table=sample_table,
        full_model=full_model,
        reduced_model=reduced_model,
        diagnostics=diagnostics,
        results=results,
        significant=significant,
        annotation=inputs.annotation,
        contrast=list(settings.contrast),
        alpha=settings.alpha,
        gene_counts=gene_counts,
        result_summary=summarize_results(results, alpha=settings.alpha),
    )


def run_from_settings(settings) -> AnalysisResult:
    """Load inputs named in settings and run the analysis."""
    inputs = load_inputs(settings)
    return run_analysis(inputs, settings)
