"""
Writers for processed matrices and mask reports.

Output files are plain delimited text with the identifier column first,
so a normalized or filtered table can be read back with
:func:`proteorepro.io.loaders.load_expression_table`.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from proteorepro.core.matrix import ExpressionMatrix

logger = logging.getLogger(__name__)

__all__ = ['write_expression_table', 'write_quality_flags', 'write_summary_table']


def _ensure_parent(path: Path) -> Path:
    if not isinstance(path, Path):
        path = Path(path)
    if path.parent != Path('.') and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_expression_table(
    matrix: ExpressionMatrix,
    path: Path,
    sep: str = "\t",
    na_rep: str = "NA",
) -> None:
    """
    Write a matrix with its identifier column first.

    Missing values are written as ``na_rep`` (one of the default
    missing-value tokens, so the file loads back unchanged).

    Raises:
        TypeError: If matrix is not an ExpressionMatrix
        ValueError: If matrix is empty
    """
    if not isinstance(matrix, ExpressionMatrix):
        raise TypeError(f"matrix must be ExpressionMatrix, got {type(matrix)}")
    if matrix.data.size == 0:
        raise ValueError("Cannot write empty matrix")

    path = _ensure_parent(path)
    matrix.to_dataframe().to_csv(path, sep=sep, index=False, na_rep=na_rep)
    logger.info(f"Wrote {matrix.n_features} × {matrix.n_samples} matrix to {path}")


def write_quality_flags(matrix: ExpressionMatrix, path: Path, sep: str = "\t") -> None:
    """
    Write the per-cell QualityFlag integers in the same layout as the data.

    0 = ORIGINAL, 1 = MISSING_ORIGINAL, 2 = NOT_REPRODUCIBLE,
    4 = SECONDARY_COMPONENT, combined bitwise.
    """
    path = _ensure_parent(path)
    flags = pd.DataFrame(matrix.quality_flags, columns=list(matrix.sample_ids))
    flags.insert(0, matrix.id_column, list(matrix.feature_ids))
    flags.to_csv(path, sep=sep, index=False)
    logger.info(f"Wrote quality flags to {path}")


def write_summary_table(summary: pd.DataFrame, path: Path, sep: str = "\t") -> None:
    """Write a report table (e.g. the per-group mask summary)."""
    path = _ensure_parent(path)
    summary.to_csv(path, sep=sep, index=False)
    logger.info(f"Wrote {len(summary)} rows to {path}")
