from pathlib import Path
from typing import Dict, List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    environment: str = "development"
    project_name: str = "Sex-specific differential expression"

    # Inputs
    gene_annotation_path: Path | None = None
    alignment_summary_path: Path | None = None
    metadata_path: Path | None = None
    counts_path: Path | None = None
    threshold_path: Path | None = None

    # Column names
    gene_col: str = "gene_id"
    symbol_col: str = "symbol"
    sample_col: str = "sample_id"
    unit_col: str = "unit_id"
    aligned_col: str = "uniquely_aligned"
    covariate_cols: List[str] = ["sex", "tissue", "genotype", "treatment_duration"]

    # Preparation
    technical_row_pattern: str = r"^(ERCC-|__)"

    # Model
    full_design: str = "~sex + genotype + treatment_duration"
    reduced_design: str = "~sex"
    reference_levels: Dict[str, str] = {"sex": "male"}
    contrast: List[str] = ["sex", "female", "male"]
    alpha: float = 0.1
    n_cpus: int = 1

    # Diagnostics and report
    top_expressed_n: int = 20
    pca_top_genes: int = 500
    gene_url_template: str = "https://www.ensembl.org/id/{gene_id}"
    out_dir: Path = Path("report_out")

    class Config:
        env_file = ".env"
        env_prefix = "RNASEQ_DE_"


settings = Settings()
