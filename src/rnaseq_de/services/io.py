import logging
from pathlib import Path
from typing import Iterable, Union

import matplotlib.pyplot as plt
import pandas as pd
from pandas import DataFrame

logger = logging.getLogger(__name__)


def _figure_of(f) -> plt.Figure:
    # seaborn grids wrap their figure
    return f if isinstance(f, plt.Figure) else f.figure


def close_figure(f) -> None:
    """Close a figure or seaborn grid without saving it."""
    plt.close(_figure_of(f))


def save_figure(
    f,
    folder: Union[Path, str],
    name: str,
    formats: Iterable[str] = ("png",),
    dpi: int = 200,
    bbox_inches: str = "tight",
) -> Path:
    """
    Save a matplotlib figure (or seaborn grid) once per format and close it.

    Returns the path of the first format written.
    """
    folder = Path(folder)
    folder.mkdir(exist_ok=True, parents=True)
    fig = _figure_of(f)
    written = []
    for fmt in formats:
        outfile = folder / f"{name}.{fmt.lstrip('.')}"
        fig.savefig(outfile, dpi=dpi, bbox_inches=bbox_inches)
        written.append(outfile)
    plt.close(fig)
    logger.debug("Saved figure %s", written[0])
    return written[0]


def read_dataframe(path: Union[str, Path], **kwargs) -> DataFrame:
    """
    Read a tabular file into a pandas DataFrame based on file extension.

    Rules:
    - .csv        -> read as CSV
    - .tsv        -> read as TSV
    - .txt        -> treated as TSV
    - .xls/.xlsx  -> read as Excel
    - other       -> read as TSV

    Additional keyword arguments are forwarded to the pandas reader. Any
    reader failure is re-raised as RuntimeError naming the file.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File does not exist: {path}")

    suffix = path.suffix.lower()

    try:
        if suffix in {".xls", ".xlsx"}:
            return pd.read_excel(path, **kwargs)
        sep = "," if suffix == ".csv" else "\t"
        return pd.read_csv(path, sep=sep, **kwargs)

    except Exception as exc:
        raise RuntimeError(f"Failed to read file '{path}': {exc}") from exc


def write_table(
    df: DataFrame,
    folder: Union[Path, str],
    name: str,
    index: bool = False,
) -> Path:
    """Write a frame as TSV into folder and return the file path."""
    folder = Path(folder)
    folder.mkdir(exist_ok=True, parents=True)
    outfile = folder / f"{name}.tsv"
    df.to_csv(outfile, sep="\t", index=index)
    logger.debug("Wrote table %s (%d rows)", outfile, len(df))
    return outfile
