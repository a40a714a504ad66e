"""
Quick Integration Guide: differential expression report in a pipegraph

Add this to your run.py to (re)build the report whenever an input file,
a setting or the analysis code changes.
"""

import pypipegraph2 as ppg
from pathlib import Path

from rnaseq_de import de_report_job
from rnaseq_de.config import Settings

# Paths (adjust!)
incoming = Path("incoming")

settings = Settings(
    gene_annotation_path=incoming / "genes.tsv",
    alignment_summary_path=incoming / "alignment_summary.tsv",
    metadata_path=incoming / "samples.tsv",
    counts_path=incoming / "counts.tsv",
    threshold_path=incoming / "log2_threshold.txt",
    out_dir=Path("results/de_report"),
    n_cpus=4,
)

ppg.new()
de_report_job(settings)
ppg.run()
