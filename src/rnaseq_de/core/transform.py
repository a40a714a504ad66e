"""
Regularized-log transform of count data.

The transform is DESeq2's ``rlog``, called through rpy2. Genes with little
information (low counts) are shrunk toward their mean while well-measured
genes stay close to log2 of their normalized counts. It is for
visualization and clustering only; testing always uses the raw counts.
"""

import logging

import numpy as np
from pandas import DataFrame

from .model import design_factors

logger = logging.getLogger(__name__)


def rlog(
    counts: DataFrame,
    metadata: DataFrame,
    design: str,
    size_factors,
    blind: bool = False,
    fit_type: str = "parametric",
) -> DataFrame:
    """
    Regularized log2 transform.

    Parameters
    ----------
    counts : DataFrame
        Raw counts, genes x samples, no all-zero genes.
    metadata : DataFrame
        Sample covariates indexed by sample id, in column order of counts.
        Categorical design factors keep their level order in R.
    design : str
        Design formula; with ``blind=False`` dispersions are estimated
        against it.
    size_factors : array-like
        One positive factor per sample (column order of counts).
    blind : bool
        Ignore the design when estimating dispersions.
    fit_type : str
        DESeq2 dispersion trend type.

    Returns
    -------
    DataFrame
        Transformed values on log2 scale, same shape and labels as counts.
    """
    sf = np.asarray(size_factors, dtype=float)
    n_samples = counts.shape[1]
    if sf.shape != (n_samples,):
        raise ValueError(f"Expected {n_samples} size factors, got {sf.shape[0]}")
    if (sf <= 0).any() or not np.isfinite(sf).all():
        raise ValueError(f"Size factors must be positive, got {sf.tolist()}")
    if (counts.sum(axis=1) == 0).any():
        raise ValueError("rlog requires genes with at least one count")
    if list(metadata.index) != list(counts.columns):
        raise ValueError("metadata rows must follow the count columns")

    factors = design_factors(design)
    missing = [f for f in factors if f not in metadata.columns]
    if missing:
        raise ValueError(f"Design factors not in metadata: {missing}")

    # rpy2 is only needed once a transform is requested
    from ..r_integration.deseq2_wrapper import run_rlog

    logger.info(
        "DESeq2 rlog on %d genes x %d samples (%s, blind=%s)",
        counts.shape[0],
        n_samples,
        design,
        blind,
    )
    values = run_rlog(
        counts,
        metadata[factors],
        design,
        sf,
        blind=blind,
        fit_type=fit_type,
    )
    return DataFrame(values, index=counts.index, columns=counts.columns)
