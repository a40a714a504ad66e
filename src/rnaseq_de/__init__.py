"""
RNA-seq differential expression report.

This package provides:
- core
- models
- services
- jobs
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("rnaseq-de")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"


from .jobs.report_jobs import de_report_job

__all__ = [
    "de_report_job",
]
