"""
PyPipeGraph2 job wrappers for the differential expression report.
"""

from dataclasses import asdict, replace
from pathlib import Path
from typing import List, Optional, Union

from pypipegraph2 import (
    FileInvariant,
    FunctionInvariant,
    Job,
    MultiFileGeneratingJob,
    ParameterInvariant,
)

from rnaseq_de.config import Settings
from rnaseq_de.core.model import DEModel
from rnaseq_de.core.pipeline import run_analysis, run_from_settings
from rnaseq_de.core.transform import rlog
from rnaseq_de.models.de_report import (
    DEReport,
    ReportConfig,
    report_config_from_settings,
    report_files,
)

INPUT_FIELDS = [
    "gene_annotation_path",
    "alignment_summary_path",
    "metadata_path",
    "counts_path",
    "threshold_path",
]


def _build_report(settings: Settings, config: ReportConfig) -> Path:
    analysis = run_from_settings(settings)
    return DEReport(config, analysis).build()


def de_report_job(
    settings: Optional[Settings] = None,
    output_dir: Optional[Union[Path, str]] = None,
    config: Optional[ReportConfig] = None,
    dependencies: Optional[List[Job]] = None,
) -> MultiFileGeneratingJob:
    """
    PyPipeGraph2 job producing the full differential expression report.

    The job re-runs when an input file, a setting, the report config or
    one of the analysis functions changes.

    Parameters
    ----------
    settings : Settings, optional
        Run settings; the environment / .env defaults when omitted.
    output_dir : str or Path, optional
        Report directory, overrides ``settings.out_dir``.
    config : ReportConfig, optional
        Report-level parameters; derived from settings when omitted.
    dependencies : list of Job, optional
        Jobs that must finish first (e.g. jobs writing the input files).

    Returns
    -------
    MultiFileGeneratingJob
        Job generating report.md, report.html, plots and tables.
    """
    settings = settings or Settings()
    if output_dir is not None:
        settings = settings.model_copy(update={"out_dir": Path(output_dir)})
    if config is None:
        config = report_config_from_settings(settings)
    elif output_dir is not None:
        config = replace(config, out_dir=Path(output_dir))

    missing = [name for name in INPUT_FIELDS if getattr(settings, name) is None]
    if missing:
        raise ValueError(f"Input paths not configured: {missing}")

    outfiles = report_files(config)

    def __dump(outfiles, settings=settings, config=config):
        _build_report(settings, config)

    job = MultiFileGeneratingJob(outfiles, __dump)
    if dependencies:
        job.depends_on(dependencies)

    out_dir = Path(config.out_dir)
    for name in INPUT_FIELDS:
        job.depends_on(FileInvariant(getattr(settings, name)))
    job.depends_on(
        FunctionInvariant(f"{out_dir}/run_analysis", run_analysis),
        FunctionInvariant(f"{out_dir}/rlog", rlog),
        FunctionInvariant(f"{out_dir}/DEModel.fit", DEModel.fit),
        FunctionInvariant(f"{out_dir}/DEReport.build", DEReport.build),
        ParameterInvariant(
            f"{out_dir}/de_report_params",
            (
                settings.model_dump_json(),
                tuple(sorted((k, str(v)) for k, v in asdict(config).items())),
            ),
        ),
    )
    return job
