import logging
from pathlib import Path
from typing import Optional

import typer

from .config import settings
from .core.pipeline import run_from_settings
from .models.de_report import DEReport, report_config_from_settings

app = typer.Typer(
    help="Differential expression report for RNA-seq count matrices"
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def info() -> None:
    """Show the effective settings."""
    typer.echo(f"Environment: {settings.environment}")
    for name, value in settings.model_dump().items():
        if name == "environment":
            continue
        typer.echo(f"{name}: {value!r}")


@app.command()
def run(
    annotation: Optional[Path] = typer.Option(
        None, help="Gene annotation table (gene id, symbol)."
    ),
    alignment: Optional[Path] = typer.Option(
        None, help="Per sample/unit alignment summary."
    ),
    metadata: Optional[Path] = typer.Option(None, help="Sample metadata table."),
    counts: Optional[Path] = typer.Option(None, help="Gene x sample count matrix."),
    threshold: Optional[Path] = typer.Option(
        None, help="File holding the log2 expression threshold."
    ),
    out_dir: Optional[Path] = typer.Option(None, help="Report output directory."),
    alpha: Optional[float] = typer.Option(None, help="padj significance level."),
    n_cpus: Optional[int] = typer.Option(None, help="Workers for model fitting."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Run the analysis and write report.md / report.html."""
    _configure_logging(verbose)
    overrides = {
        "gene_annotation_path": annotation,
        "alignment_summary_path": alignment,
        "metadata_path": metadata,
        "counts_path": counts,
        "threshold_path": threshold,
        "out_dir": out_dir,
        "alpha": alpha,
        "n_cpus": n_cpus,
    }
    run_settings = settings.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    analysis = run_from_settings(run_settings)
    html = DEReport(report_config_from_settings(run_settings), analysis).build()
    typer.echo(f"Report written to {html}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
