"""
Shared synthetic data for the test suite.

Counts are negative-binomial draws with a small dispersion so that a
two-fold sex effect is detectable with two samples per group.
"""

import shutil
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

import rnaseq_de.core.diagnostics as diagnostics_module

N_TRUE = 10
DISPERSION = 0.01


def simulate_counts(
    metadata: pd.DataFrame,
    n_genes: int = 100,
    n_true: int = N_TRUE,
    fold_change: float = 2.0,
    seed: int = 0,
) -> pd.DataFrame:
    """Genes x samples; the first n_true genes are up in females."""
    rng = np.random.default_rng(seed)
    base = rng.uniform(500, 5000, size=n_genes)
    female = (metadata["sex"] == "female").to_numpy()
    mu = np.tile(base[:, None], (1, len(metadata)))
    mu[:n_true, female] *= fold_change
    size = 1.0 / DISPERSION
    counts = rng.negative_binomial(size, size / (size + mu))
    genes = [f"ENSG{i:011d}" for i in range(n_genes)]
    return pd.DataFrame(counts, index=genes, columns=metadata.index)


@pytest.fixture
def four_sample_metadata():
    """Two males and two females, sample ids as index."""
    return pd.DataFrame(
        {
            "sex": ["male", "male", "female", "female"],
            "tissue": ["liver"] * 4,
            "genotype": ["wt", "ko", "wt", "ko"],
            "treatment_duration": ["7d"] * 4,
        },
        index=pd.Index(["S1", "S2", "S3", "S4"], name="sample_id"),
    )


@pytest.fixture
def four_sample_counts(four_sample_metadata):
    return simulate_counts(four_sample_metadata)


def eight_sample_metadata() -> pd.DataFrame:
    """Full 2 x 2 x 2 layout of sex, genotype and treatment duration."""
    rows = []
    i = 1
    for sex in ("female", "male"):
        for genotype in ("wt", "ko"):
            for duration in ("7d", "14d"):
                rows.append(
                    {
                        "sample_id": f"S{i}",
                        "sex": sex,
                        "tissue": "liver",
                        "genotype": genotype,
                        "treatment_duration": duration,
                    }
                )
                i += 1
    return pd.DataFrame(rows)


def write_input_files(folder: Path) -> dict:
    """
    Write the five report inputs for eight samples into folder.

    Besides 200 simulated genes the count table holds two technical rows,
    one all-zero gene and one gene below a log2 threshold of 3.
    """
    folder.mkdir(parents=True, exist_ok=True)
    metadata = eight_sample_metadata()
    counts = simulate_counts(metadata.set_index("sample_id"), n_genes=200)
    extra = pd.DataFrame(
        [
            [50] * 8,
            [400] * 8,
            [0] * 8,
            [1, 0, 2, 0, 1, 0, 0, 1],
        ],
        index=["ERCC-00002", "__no_feature", "ENSGZERO", "ENSGLOW"],
        columns=counts.columns,
    )
    counts = pd.concat([counts, extra])
    counts.index.name = "gene_id"

    annotation = pd.DataFrame(
        {
            "gene_id": counts.index[:150],
            "symbol": [f"Gene{i}" for i in range(150)],
        }
    )
    alignment = pd.DataFrame(
        {
            "sample_id": [s for s in metadata["sample_id"] for _ in (1, 2)],
            "unit_id": ["lane1", "lane2"] * len(metadata),
            "uniquely_aligned": np.arange(2 * len(metadata)) * 1000 + 1_250_000,
        }
    )

    paths = {
        "gene_annotation_path": folder / "annotation.tsv",
        "alignment_summary_path": folder / "alignment.tsv",
        "metadata_path": folder / "metadata.csv",
        "counts_path": folder / "counts.tsv",
        "threshold_path": folder / "threshold.txt",
    }
    annotation.to_csv(paths["gene_annotation_path"], sep="\t", index=False)
    alignment.to_csv(paths["alignment_summary_path"], sep="\t", index=False)
    # shuffled so that column alignment is exercised
    metadata.iloc[[3, 0, 7, 1, 5, 2, 6, 4]].to_csv(
        paths["metadata_path"], index=False
    )
    counts.to_csv(paths["counts_path"], sep="\t")
    paths["threshold_path"].write_text("3\n")
    return paths


@pytest.fixture
def input_files(tmp_path):
    return write_input_files(tmp_path / "inputs")


@pytest.fixture(scope="session")
def shared_input_files(tmp_path_factory):
    """Input files written once for the slower end-to-end tests."""
    return write_input_files(tmp_path_factory.mktemp("shared") / "inputs")


def shifted_log2(counts, metadata, design, size_factors, **kwargs):
    """log2(normalized + 1), used in place of the R transform."""
    return np.log2(counts.div(np.asarray(size_factors, dtype=float), axis=1) + 1)


@pytest.fixture(scope="session")
def log2_transform():
    return shifted_log2


@pytest.fixture
def without_r(monkeypatch):
    """Diagnostics use shifted_log2 instead of calling DESeq2."""
    monkeypatch.setattr(diagnostics_module, "rlog_transform", shifted_log2)


@pytest.fixture(scope="session")
def deseq2_r():
    """Skip unless R with DESeq2 is reachable through rpy2."""
    if shutil.which("R") is None:
        pytest.skip("R not installed")
    packages = pytest.importorskip("rpy2.robjects.packages")
    if not packages.isinstalled("DESeq2"):
        pytest.skip("DESeq2 not installed")
