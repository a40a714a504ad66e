"""
Report generators for differential expression analyses.

This includes:
- DEReport: plots, tables, report.md and report.html for one analysis
- ReportConfig: Configuration for the report
"""

from .de_report import DEReport, ReportConfig

__all__ = [
    "DEReport",
    "ReportConfig",
]
