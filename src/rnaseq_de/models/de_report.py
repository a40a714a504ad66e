"""
Differential Expression Report Module

Turns one finished ``AnalysisResult`` into plots (PNG), tables (TSV),
report.md and report.html.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import markdown as md
import pandas as pd

from ..core.differential import annotate_results
from ..core.pipeline import AnalysisResult
from ..core.plots import (
    plot_correlation_grid,
    plot_dispersions,
    plot_distance_heatmap,
    plot_ma,
    plot_pca,
    plot_pvalue_histogram,
    plot_top_expressed_heatmap,
)
from ..services.io import close_figure, save_figure, write_table

logger = logging.getLogger(__name__)

PLOT_NAMES = [
    "01_sample_correlation",
    "02_sample_distances",
    "03_top_expressed",
    "04_pca",
    "05_dispersions",
    "06_ma_plot",
    "07_pvalue_histogram",
]

TABLE_NAMES = [
    "sample_table",
    "size_factors",
    "normalized_counts",
    "rlog",
    "results",
    "significant",
]

SCIENTIFIC_COLUMNS = ("pvalue", "padj")


@dataclass
class ReportConfig:
    project_name: str
    out_dir: Union[str, Path] = "report_out"
    assets_dirname: str = "report_assets"
    plots_dirname: str = "plots"
    tables_dirname: str = "tables"

    # Thresholds used for tables and highlighting
    alpha: float = 0.1
    ma_ylim: float = 2.0

    # Tables
    top_n_hits_table: int = 50

    # Plot styling
    heatmap_covariates: List[str] = field(
        default_factory=lambda: ["sex", "genotype"]
    )
    pca_color: str = "sex"
    pca_marker: Optional[str] = "genotype"
    dpi: int = 200


def report_config_from_settings(settings) -> ReportConfig:
    """ReportConfig matching the run-level settings."""
    return ReportConfig(
        project_name=settings.project_name,
        out_dir=settings.out_dir,
        alpha=settings.alpha,
    )


def report_files(config: ReportConfig) -> List[Path]:
    """Every file ``DEReport.build`` writes, in a fixed order."""
    out_dir = Path(config.out_dir)
    assets = out_dir / config.assets_dirname
    files = [out_dir / "report.md", out_dir / "report.html"]
    files += [assets / config.plots_dirname / f"{n}.png" for n in PLOT_NAMES]
    files += [assets / config.tables_dirname / f"{n}.tsv" for n in TABLE_NAMES]
    return files


def _format_int(value) -> str:
    if pd.isna(value):
        return "NA"
    return f"{int(value):,}"


def _format_float(value) -> str:
    if pd.isna(value):
        return "NA"
    return f"{value:,.3f}"


def _format_scientific(value) -> str:
    if pd.isna(value):
        return "NA"
    return f"{value:.3g}"


def html_table(
    df: pd.DataFrame,
    link_col: Optional[str] = None,
    text_col: Optional[str] = None,
) -> str:
    """
    Render a frame as an HTML table for the report.

    Integers get thousands separators, floats three decimals (with
    separators), p-value columns three significant digits. When
    ``link_col`` is given its HTML anchors replace ``text_col``.
    """
    out = df.copy()
    if link_col is not None:
        out[text_col] = out[link_col]
        out = out.drop(columns=[link_col])

    formatters = {}
    for col in out.columns:
        if col in SCIENTIFIC_COLUMNS:
            formatters[col] = _format_scientific
        elif pd.api.types.is_bool_dtype(out[col]):
            continue
        elif pd.api.types.is_integer_dtype(out[col]):
            formatters[col] = _format_int
        elif pd.api.types.is_float_dtype(out[col]):
            formatters[col] = _format_float
    return out.to_html(
        index=False,
        escape=False,
        formatters=formatters,
        na_rep="NA",
        border=0,
    )


class DEReport:
    """
    Report generator for one differential expression analysis.

    Inputs:
      - analysis: the ``AnalysisResult`` of ``core.pipeline.run_analysis``

    Outputs:
      - plots (PNG)
      - tables (TSV)
      - report.md
      - report.html
    """

    def __init__(self, config: ReportConfig, analysis: AnalysisResult):
        self.cfg = config
        self.analysis = analysis

        self.out_dir = Path(self.cfg.out_dir)
        self.assets_dir = self.out_dir / self.cfg.assets_dirname
        self.plots_dir = self.assets_dir / self.cfg.plots_dirname
        self.tables_dir = self.assets_dir / self.cfg.tables_dirname

        self.plots: Dict[str, Path] = {}
        self.tables: Dict[str, Path] = {}

    # -----------------------
    # Main API
    # -----------------------
    def build(self) -> Path:
        """
        Build the full report: tables, plots, report.md and report.html.

        Every table and figure is computed before the first file is written,
        so a failing step leaves no partial report behind.

        Returns
        -------
        Path
            Path of the written report.html.
        """
        summary = self._make_summary()
        tables = self._make_tables()
        figures = self._make_plots()

        self.plots_dir.mkdir(parents=True, exist_ok=True)
        self.tables_dir.mkdir(parents=True, exist_ok=True)
        for name, (df, index) in tables.items():
            self.tables[name] = write_table(df, self.tables_dir, name, index=index)
        for name, figure in figures.items():
            self.plots[name] = save_figure(
                figure, self.plots_dir, name, dpi=self.cfg.dpi
            )
        self._write_markdown_report(summary)
        return self.render_html()

    # -----------------------
    # Summary
    # -----------------------
    def _make_summary(self) -> dict:
        a = self.analysis
        return {
            "project_name": self.cfg.project_name,
            "n_samples": int(a.full_model.counts.shape[1]),
            "gene_counts": dict(a.gene_counts),
            "full_design": a.full_model.design,
            "reduced_design": a.reduced_model.design,
            "contrast": list(a.contrast),
            "alpha": a.alpha,
            **a.result_summary,
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }

    # -----------------------
    # Tables
    # -----------------------
    def _make_tables(self) -> Dict[str, Tuple[pd.DataFrame, bool]]:
        """name -> (frame, write index)"""
        a = self.analysis
        diag = a.diagnostics
        results = annotate_results(a.results, a.annotation).drop(columns=["link"])
        return {
            "sample_table": (a.sample_table, False),
            "size_factors": (
                a.full_model.size_factors.rename_axis("sample_id").reset_index(),
                False,
            ),
            "normalized_counts": (diag.normalized.rename_axis("gene_id"), True),
            "rlog": (diag.rlog.rename_axis("gene_id"), True),
            "results": (results, False),
            "significant": (a.significant.drop(columns=["link"]), False),
        }

    # -----------------------
    # Plots
    # -----------------------
    def _make_plots(self) -> Dict[str, object]:
        a = self.analysis
        diag = a.diagnostics
        labels = a.annotation["symbol"] if a.annotation is not None else None

        plotters = [
            lambda: plot_correlation_grid(diag.rlog),
            lambda: plot_distance_heatmap(diag.distances),
            lambda: plot_top_expressed_heatmap(
                diag.normalized,
                diag.top_genes,
                diag.metadata,
                covariates=self.cfg.heatmap_covariates,
                labels=labels,
            ),
            lambda: plot_pca(
                diag.pca,
                color_by=self.cfg.pca_color,
                marker_by=self.cfg.pca_marker,
            ),
            lambda: plot_dispersions(a.full_model.dispersions()),
            lambda: plot_ma(a.results, alpha=a.alpha, ylim=self.cfg.ma_ylim),
            lambda: plot_pvalue_histogram(a.results),
        ]
        figures = {}
        try:
            for name, plotter in zip(PLOT_NAMES, plotters):
                logger.info("Plotting %s", name)
                figures[name] = plotter()
        except Exception:
            for figure in figures.values():
                close_figure(figure)
            raise
        return figures

    # -----------------------
    # Markdown / HTML
    # -----------------------
    def _asset(self, path: Path) -> str:
        return path.relative_to(self.out_dir).as_posix()

    def _image(self, name: str, caption: str) -> str:
        return f"\n### {caption}\n\n![{caption}]({self._asset(self.plots[name])})\n"

    def _sample_table_html(self) -> str:
        df = self.analysis.sample_table.copy()
        for col in df.columns:
            if pd.api.types.is_float_dtype(df[col]) and (
                df[col].dropna() % 1 == 0
            ).all():
                df[col] = df[col].astype("Int64")
        return html_table(df)

    def _hits_table_html(self) -> str:
        hits = self.analysis.significant.head(self.cfg.top_n_hits_table)
        return html_table(hits, link_col="link", text_col="symbol")

    def _write_markdown_report(self, summary: dict) -> Path:
        """
        Write report.md referencing generated plots and tables.
        """
        gc = summary["gene_counts"]
        factor, test_level, ref_level = (summary["contrast"] + [None] * 3)[:3]

        text = f"# Differential Expression Report - {summary['project_name']}\n"
        text += "\n## Executive Summary\n\n"
        text += f"- Samples: {summary['n_samples']:,}\n"
        text += f"- Genes loaded: {gc.get('loaded', 0):,}\n"
        text += (
            f"- Genes after removing technical rows: {gc.get('biological', 0):,}\n"
        )
        text += f"- Genes with non-zero counts: {gc.get('nonzero', 0):,}\n"
        text += f"- Genes above expression threshold: {gc.get('expressed', 0):,}\n"
        text += f"- Full design: `{summary['full_design']}`\n"
        text += f"- Test design: `{summary['reduced_design']}`\n"
        text += f"- Contrast: {factor} {test_level} vs {ref_level}\n"
        text += (
            f"- Significant genes (padj <= {summary['alpha']}): "
            f"{summary['n_significant']:,} of {summary['n_tested']:,} "
            f"({summary['n_up']:,} up, {summary['n_down']:,} down)\n"
        )
        text += f"- Generated: {summary['generated_at']}\n"

        text += "\n## Samples\n\n"
        text += self._sample_table_html() + "\n"

        text += "\n## Quality Control\n"
        text += self._image(PLOT_NAMES[0], "Sample correlation")
        text += self._image(PLOT_NAMES[1], "Sample distances")
        text += self._image(PLOT_NAMES[2], "Top expressed genes")
        text += self._image(PLOT_NAMES[3], "PCA")
        text += self._image(PLOT_NAMES[4], "Dispersion estimates")

        text += "\n## Differential Expression\n"
        text += self._image(PLOT_NAMES[5], "MA plot")
        text += self._image(PLOT_NAMES[6], "p-value distribution")
        n_hits = min(self.cfg.top_n_hits_table, len(self.analysis.significant))
        text += f"\n### Significant genes (top {n_hits})\n\n"
        if n_hits:
            text += self._hits_table_html() + "\n"
        else:
            text += "No gene reached the significance threshold.\n"

        text += "\n## Tables\n"
        for name in TABLE_NAMES:
            text += f"\n- [{name}]({self._asset(self.tables[name])})"
        text += "\n"

        report_md = self.out_dir / "report.md"
        report_md.write_text(text, encoding="utf-8")
        logger.info("Wrote %s", report_md)
        return report_md

    def render_html(self) -> Path:
        report_md = self.out_dir / "report.md"
        if not report_md.exists():
            raise FileNotFoundError(report_md)
        out_html = self.out_dir / "report.html"
        body = md.markdown(report_md.read_text(encoding="utf-8"))
        out_html.write_text(
            "<!DOCTYPE html>\n<html>\n<head><meta charset=\"utf-8\">"
            f"<title>{self.cfg.project_name}</title></head>\n"
            f"<body>\n{body}\n</body>\n</html>\n",
            encoding="utf-8",
        )
        logger.info("Wrote %s", out_html)
        return out_html

