"""
Replicate group assignment for the sample columns of a matrix.

A GroupAssignment maps each sample to exactly one group label (an
experimental condition whose samples are replicates of each other). Groups
partition the sample set; both the normalizer and the reproducibility filter
rely on that, so ``validate`` is called before either runs.

Examples:
    >>> from proteorepro.core.groups import GroupAssignment
    >>> groups = GroupAssignment({'S1': 'A', 'S2': 'A', 'S3': 'B'})
    >>> groups.labels
    ['A', 'B']
    >>> groups.size('A')
    2
"""

from __future__ import annotations

from typing import Iterator, Mapping, TYPE_CHECKING

import pandas as pd

from proteorepro.core.errors import ConfigurationError

if TYPE_CHECKING:
    from proteorepro.core.matrix import ExpressionMatrix

__all__ = ['GroupAssignment']


class GroupAssignment:
    """
    Mapping sample name -> group label.

    Group labels are iterated in order of first appearance, which is the
    order the reproducibility filter processes and reports them in.
    """

    def __init__(self, mapping: Mapping[str, str]):
        if len(mapping) == 0:
            raise ConfigurationError("Group assignment is empty")
        self._mapping: dict[str, str] = {str(k): str(v) for k, v in mapping.items()}

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        sample_column: str = "sample",
        group_column: str = "group",
    ) -> GroupAssignment:
        """
        Build from a two-column table (one row per sample).

        Raises:
            ConfigurationError: Missing columns, a sample listed twice,
                or a sample without a label
        """
        for col in (sample_column, group_column):
            if col not in df.columns:
                raise ConfigurationError(f"Group table is missing column '{col}'")

        samples = df[sample_column].astype(str)
        if samples.duplicated().any():
            dup = samples[samples.duplicated()].iloc[0]
            raise ConfigurationError(f"Sample '{dup}' is assigned to more than one group", column=dup)
        if df[group_column].isna().any():
            unlabelled = samples[df[group_column].isna()].iloc[0]
            raise ConfigurationError(f"Sample '{unlabelled}' has no group label", column=unlabelled)

        return cls(dict(zip(samples, df[group_column].astype(str))))

    @property
    def labels(self) -> list[str]:
        """Distinct group labels in first-appearance order."""
        return list(dict.fromkeys(self._mapping.values()))

    @property
    def samples(self) -> list[str]:
        return list(self._mapping.keys())

    def group_of(self, sample: str) -> str:
        try:
            return self._mapping[sample]
        except KeyError:
            raise ConfigurationError(f"Sample '{sample}' has no group label", column=sample)

    def members(self, group: str, matrix: ExpressionMatrix | None = None) -> list[str]:
        """
        Samples of one group; in matrix column order when a matrix is given.
        """
        if group not in self.labels:
            raise ConfigurationError(f"Unknown group '{group}'")
        if matrix is None:
            return [s for s, g in self._mapping.items() if g == group]
        return [s for s in matrix.sample_ids if self._mapping.get(s) == group]

    def size(self, group: str) -> int:
        return len(self.members(group))

    def validate(self, matrix: ExpressionMatrix) -> None:
        """
        Check that the assignment covers exactly the matrix's sample columns.

        Raises:
            ConfigurationError: A column without a label, or a labelled
                sample that is not a column of the matrix
        """
        columns = set(matrix.sample_ids)

        unlabelled = [s for s in matrix.sample_ids if s not in self._mapping]
        if unlabelled:
            raise ConfigurationError(
                f"Group assignment does not cover sample columns: {unlabelled}",
                column=unlabelled[0],
            )

        unknown = [s for s in self._mapping if s not in columns]
        if unknown:
            raise ConfigurationError(
                f"Group assignment names samples not in the matrix: {unknown}",
                column=unknown[0],
            )

    def to_series(self) -> pd.Series:
        return pd.Series(self._mapping, name="group")

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)

    def __len__(self) -> int:
        return len(self.labels)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{g}={self.size(g)}" for g in self.labels)
        return f"GroupAssignment({sizes})"
