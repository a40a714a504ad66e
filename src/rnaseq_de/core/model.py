"""
Negative-binomial model wrapper around pydeseq2.

``DEModel`` owns the count matrix, the sample metadata and a design formula
and walks through a fixed sequence of states:

    CONSTRUCTED -> SIZE_FACTORS -> FILTERED -> FITTED
                -> DESIGN_REDUCED -> REFITTED -> RESULTS

Calling a step out of order raises RuntimeError. Changing the design never
reuses a previous fit: ``with_design`` builds a new pydeseq2 data set and the
next ``fit`` recomputes size factors, dispersions and coefficients.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from pandas import DataFrame, Series
from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference
from pydeseq2.ds import DeseqStats

from .preparation import align_counts_to_metadata, filter_by_expression

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]


class ModelState(str, Enum):
    CONSTRUCTED = "constructed"
    SIZE_FACTORS = "size_factors_estimated"
    FILTERED = "filtered"
    FITTED = "fitted"
    DESIGN_REDUCED = "design_reduced"
    REFITTED = "refitted"
    RESULTS = "results_extracted"


def design_factors(design: str) -> List[str]:
    """
    Factor names of a main-effects design formula.

    >>> design_factors("~sex + genotype")
    ['sex', 'genotype']
    """
    rhs = design.split("~", 1)[-1]
    factors = [term.strip() for term in rhs.split("+")]
    factors = [f for f in factors if f and f != "1"]
    if not factors:
        raise ValueError(f"Design '{design}' names no factors")
    return factors


def relevel_metadata(
    metadata: DataFrame,
    factors: List[str],
    reference_levels: Optional[Dict[str, str]] = None,
) -> DataFrame:
    """
    Turn design factor columns into categoricals with the reference first.

    Treatment coding takes the first category as baseline, so an effect on
    ``sex`` with reference ``male`` reads as female relative to male.
    Factors without an explicit reference keep sorted level order.
    """
    reference_levels = reference_levels or {}
    missing = [f for f in factors if f not in metadata.columns]
    if missing:
        raise ValueError(f"Design factors not in metadata: {missing}")

    out = metadata.copy()
    for factor in factors:
        values = out[factor].astype(str)
        levels = sorted(values.unique())
        ref = reference_levels.get(factor)
        if ref is not None:
            if ref not in levels:
                raise ValueError(
                    f"Reference level '{ref}' not found for factor "
                    f"'{factor}'. Levels: {levels}"
                )
            levels = [ref] + [lvl for lvl in levels if lvl != ref]
        out[factor] = pd.Categorical(values, categories=levels)
    return out


class DEModel:
    """
    Stateful differential expression model for one count matrix.

    Parameters
    ----------
    counts : DataFrame
        Raw integer counts, genes x samples. Columns are reordered to match
        the metadata rows.
    metadata : DataFrame
        Sample covariates indexed by sample id.
    design : str
        Main-effects formula such as ``"~sex + genotype"``.
    reference_levels : dict, optional
        factor -> baseline level.
    n_cpus : int
        Worker count handed to pydeseq2's inference backend.
    """

    def __init__(
        self,
        counts: DataFrame,
        metadata: DataFrame,
        design: str,
        reference_levels: Optional[Dict[str, str]] = None,
        n_cpus: int = 1,
    ):
        self.design = design
        self.factors = design_factors(design)
        self.reference_levels = dict(reference_levels or {})
        self.n_cpus = n_cpus
        self.counts = align_counts_to_metadata(counts, metadata).astype(int)
        self.metadata = relevel_metadata(
            metadata, self.factors, self.reference_levels
        )
        self.state = ModelState.CONSTRUCTED
        self.size_factors: Optional[Series] = None
        self._dds: Optional[DeseqDataSet] = None
        self._results: Optional[DataFrame] = None

    def __repr__(self):
        return (
            f"DEModel(design={self.design!r}, genes={self.counts.shape[0]}, "
            f"samples={self.counts.shape[1]}, state={self.state.value})"
        )

    # -----------------------
    # State handling
    # -----------------------
    def _require(self, *allowed: ModelState) -> None:
        if self.state not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise RuntimeError(
                f"Model is '{self.state.value}', expected one of: {names}"
            )

    def _new_dataset(self) -> DeseqDataSet:
        return DeseqDataSet(
            counts=self.counts.T,
            metadata=self.metadata,
            design=self.design,
            refit_cooks=True,
            inference=DefaultInference(n_cpus=self.n_cpus),
            quiet=True,
        )

    # -----------------------
    # Normalization
    # -----------------------
    def estimate_size_factors(self) -> Series:
        """Median-of-ratios size factors, one per sample."""
        self._require(ModelState.CONSTRUCTED)
        self._dds = self._new_dataset()
        self._dds.fit_size_factors()
        self.size_factors = self._read_size_factors()
        self.state = ModelState.SIZE_FACTORS
        logger.info(
            "Size factors: %s",
            ", ".join(f"{s}={v:.3f}" for s, v in self.size_factors.items()),
        )
        return self.size_factors

    def _read_size_factors(self) -> Series:
        sf = pd.Series(
            np.asarray(self._dds.obs["size_factors"], dtype=float),
            index=self.counts.columns,
            name="size_factor",
        )
        if not np.all(np.isfinite(sf.values)) or (sf <= 0).any():
            raise RuntimeError(f"Non-positive size factors estimated: {sf.to_dict()}")
        return sf

    def normalized_counts(self) -> DataFrame:
        """Raw counts divided by the per-sample size factor."""
        if self.size_factors is None:
            raise RuntimeError("Size factors have not been estimated yet")
        return self.counts.div(self.size_factors, axis=1)

    def filter_expressed(self, log2_threshold: float) -> "DEModel":
        """
        Fresh model restricted to genes passing the expression threshold.

        The new model keeps design and reference levels, has its own size
        factors estimated on the surviving genes and is in state FILTERED.
        """
        self._require(ModelState.SIZE_FACTORS)
        kept = filter_by_expression(
            self.counts, self.normalized_counts(), log2_threshold
        )
        if kept.empty:
            raise ValueError(
                f"No gene passes the log2 expression threshold {log2_threshold}"
            )
        model = DEModel(
            kept,
            self.metadata,
            self.design,
            reference_levels=self.reference_levels,
            n_cpus=self.n_cpus,
        )
        model.estimate_size_factors()
        model.state = ModelState.FILTERED
        return model

    # -----------------------
    # Fitting
    # -----------------------
    def fit(self) -> "DEModel":
        """Dispersion and coefficient estimation for the current design."""
        self._require(ModelState.FILTERED, ModelState.DESIGN_REDUCED)
        refit = self.state is ModelState.DESIGN_REDUCED
        logger.info(
            "Fitting %s on %d genes x %d samples",
            self.design,
            self.counts.shape[0],
            self.counts.shape[1],
        )
        if self._dds is None:
            self._dds = self._new_dataset()
        self._dds.deseq2()
        self.size_factors = self._read_size_factors()
        self.state = ModelState.REFITTED if refit else ModelState.FITTED
        return self

    def with_design(self, design: str) -> "DEModel":
        """
        Same data under a new design; the returned model must be refit.
        """
        self._require(ModelState.FITTED)
        model = DEModel(
            self.counts,
            self.metadata,
            design,
            reference_levels=self.reference_levels,
            n_cpus=self.n_cpus,
        )
        model.size_factors = self.size_factors
        model.state = ModelState.DESIGN_REDUCED
        return model

    @property
    def dataset(self) -> DeseqDataSet:
        if self._dds is None:
            raise RuntimeError("Model has no pydeseq2 data set yet")
        return self._dds

    def dispersions(self) -> DataFrame:
        """Gene-wise, trend and final dispersion estimates per gene."""
        self._require(ModelState.FITTED, ModelState.REFITTED, ModelState.RESULTS)
        dds = self.dataset
        return pd.DataFrame(
            {
                "baseMean": self.normalized_counts().mean(axis=1).values,
                "genewise": np.asarray(dds.var["genewise_dispersions"]),
                "fitted": np.asarray(dds.var["fitted_dispersions"]),
                "final": np.asarray(dds.var["dispersions"]),
            },
            index=self.counts.index,
        )

    def coefficients(self) -> DataFrame:
        """Fitted coefficients (natural log scale) per gene."""
        self._require(ModelState.FITTED, ModelState.REFITTED, ModelState.RESULTS)
        lfc = self.dataset.varm["LFC"]
        return pd.DataFrame(lfc, index=self.counts.index)

    # -----------------------
    # Testing
    # -----------------------
    def results(
        self,
        contrast: List[str],
        alpha: float = 0.1,
    ) -> DataFrame:
        """
        Wald test for a ``[factor, test_level, reference_level]`` contrast.

        Returns baseMean, log2FoldChange, lfcSE, stat, pvalue and padj per gene
        (Benjamini-Hochberg adjusted, independent filtering on).
        """
        self._require(ModelState.REFITTED, ModelState.RESULTS)
        factor, test_level, ref_level = contrast
        if factor not in self.factors:
            raise ValueError(
                f"Contrast factor '{factor}' not in design {self.design}"
            )
        levels = list(self.metadata[factor].cat.categories)
        for level in (test_level, ref_level):
            if level not in levels:
                raise ValueError(
                    f"Level '{level}' not found for '{factor}'. Levels: {levels}"
                )

        stats = DeseqStats(
            self.dataset,
            contrast=[factor, test_level, ref_level],
            alpha=alpha,
            cooks_filter=True,
            independent_filter=True,
            inference=DefaultInference(n_cpus=self.n_cpus),
            quiet=True,
        )
        stats.summary()
        res = stats.results_df[RESULT_COLUMNS].copy()
        res.index.name = "gene_id"
        self._results = res
        self.state = ModelState.RESULTS
        n_sig = int((res["padj"] <= alpha).sum())
        logger.info(
            "%s vs %s: %d of %d genes with padj <= %s",
            test_level,
            ref_level,
            n_sig,
            len(res),
            alpha,
        )
        return res
