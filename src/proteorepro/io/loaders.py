"""
Table loaders for expression matrices and replicate group assignments.

The separator is always given explicitly; there is no format sniffing.

Expected expression table:
```
id	A_1	A_2	B_1	B_2
P12345	0.12	0.08	NA	-0.31
Q67890	1.40	#NUM!	1.22	1.35
```

Expected group table:
```
sample	group
A_1	A
A_2	A
```

Examples:
    >>> from pathlib import Path
    >>> from proteorepro.io.loaders import load_expression_table, load_group_assignment
    >>>
    >>> matrix = load_expression_table(Path("ratios.tsv"), id_column="id")
    >>> groups = load_group_assignment(Path("groups.tsv"))
    >>> groups.validate(matrix)
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd

from proteorepro.core.groups import GroupAssignment
from proteorepro.core.matrix import MISSING_VALUE_TOKENS, ExpressionMatrix

__all__ = ['read_table', 'load_expression_table', 'load_group_assignment']


def read_table(
    path: Path,
    sep: str = "\t",
    na_values: Iterable[str] = MISSING_VALUE_TOKENS,
) -> pd.DataFrame:
    """
    Read a delimited table with only the given missing-value tokens.

    Empty cells count as missing as well. Every other string is kept as is,
    so a stray text value surfaces later as a ConfigurationError instead of
    silently becoming NaN.

    Raises:
        FileNotFoundError: If path does not exist
    """
    if not isinstance(path, Path):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    return pd.read_csv(
        path,
        sep=sep,
        na_values=[*na_values, ""],
        keep_default_na=False,
    )


def load_expression_table(
    path: Path,
    id_column: str = "id",
    sep: str = "\t",
    na_values: Iterable[str] = MISSING_VALUE_TOKENS,
) -> ExpressionMatrix:
    """
    Load a feature × sample table into an ExpressionMatrix.

    Args:
        path: Delimited text file
        id_column: Name of the feature identifier column
        sep: Field separator
        na_values: Strings that mark a missing measurement

    Raises:
        FileNotFoundError: If path does not exist
        ConfigurationError: Missing identifier column, duplicated
            identifiers or non-numeric cells
    """
    tokens = list(na_values)
    df = read_table(path, sep=sep, na_values=tokens)
    return ExpressionMatrix.from_dataframe(df, id_column=id_column, na_values=tokens)


def load_group_assignment(
    path: Path,
    sep: str = "\t",
    sample_column: str = "sample",
    group_column: str = "group",
) -> GroupAssignment:
    """
    Load a two-column sample -> group table.

    Raises:
        FileNotFoundError: If path does not exist
        ConfigurationError: Missing columns, duplicated or unlabelled samples
    """
    if not isinstance(path, Path):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    df = pd.read_csv(path, sep=sep, dtype=str)
    return GroupAssignment.from_dataframe(
        df, sample_column=sample_column, group_column=group_column
    )
