import rpy2.robjects as ro

from rpy2.robjects import pandas2ri
from rpy2.robjects.conversion import localconverter
from rpy2.robjects.vectors import FloatVector
from functools import lru_cache
from pathlib import Path
from typing import Literal

import numpy as np
from pandas import DataFrame


# path to the DESeq2 R functions
HERE = Path(__file__).resolve().parent  # .../rnaseq_de/r_integration
PKG_ROOT = HERE.parent  # .../rnaseq_de
RLOG_R_PATH = PKG_ROOT / "r" / "rlog.R"  # .../rnaseq_de/r/rlog.R


@lru_cache(maxsize=None)
def _load_run_rlog():
    """
    Source rnaseq_de/r/rlog.R and return RunRlog
    """
    if not RLOG_R_PATH.exists():
        raise FileNotFoundError(f"rlog.R not found at: {RLOG_R_PATH}")

    r_source = ro.r["source"]
    r_source(str(RLOG_R_PATH))

    return ro.globalenv["RunRlog"]


# Wrapper functions


def run_rlog(
    counts: DataFrame,
    col_data: DataFrame,
    design: str,
    size_factors,
    blind: bool = False,
    fit_type: Literal["parametric", "local", "mean"] = "parametric",
) -> np.ndarray:
    """
    Python wrapper for R-function RunRlog from rnaseq_de/r/rlog.R.
    returns the rlog values as a genes x samples float array
    """
    if counts.shape[1] != len(col_data):
        raise ValueError(
            f"counts has {counts.shape[1]} samples, col_data has {len(col_data)}."
        )

    RunRlog_R = _load_run_rlog()
    with localconverter(ro.default_converter + pandas2ri.converter):
        r_counts = ro.conversion.py2rpy(counts.astype(int))
        r_col_data = ro.conversion.py2rpy(col_data)

    res = RunRlog_R(
        counts=r_counts,
        col_data=r_col_data,
        design=design,
        size_factors=FloatVector(np.asarray(size_factors, dtype=float)),
        blind=blind,
        fit_type=fit_type,
    )
    # R fills matrices column by column
    return np.asarray(list(res), dtype=float).reshape(counts.shape, order="F")
