"""
Core data structure for feature-by-sample expression matrices.

ExpressionMatrix keeps the numeric measurements together with the feature
identifiers of the source table and a per-cell quality flag array.

Biological Context:
    A quantitative proteomics table has one row per feature (protein,
    peptide) and one column per sample, plus an identifier column. Values
    are typically log-ratios; a missing measurement is common and
    informative, so it must stay missing rather than become zero.

Engineering Design:
    - Immutable by convention: operations return new instances
    - NumPy array for values, pandas Index for identifiers
    - The identifier column is carried alongside, never part of ``data``
    - Constructor checks shape consistency and identifier uniqueness

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from proteorepro.core.matrix import ExpressionMatrix
    >>>
    >>> df = pd.DataFrame({
    ...     'id': ['P1', 'P2'],
    ...     'S1': [0.5, 'NA'],
    ...     'S2': [1.0, -0.2],
    ... })
    >>> matrix = ExpressionMatrix.from_dataframe(df, id_column='id')
    >>> matrix.shape
    (2, 2)
    >>> bool(np.isnan(matrix.data[1, 0]))
    True
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from proteorepro.core.errors import ConfigurationError
from proteorepro.core.quality import QualityFlag

__all__ = ['ExpressionMatrix', 'MISSING_VALUE_TOKENS']

# Spreadsheet exports encode missing cells in many ways.
MISSING_VALUE_TOKENS: tuple[str, ...] = (
    "NA", "<NA>", "#NUM!", "#DIV/0!", "#NA", "#NAME?", "na", "#VALUE!",
)


class ExpressionMatrix:
    """
    Immutable container for an expression matrix and its quality flags.

    Attributes:
        data: Numeric matrix (features × samples), NaN for missing
        feature_ids: Row identifiers, unique
        sample_ids: Column identifiers, unique
        quality_flags: Per-value QualityFlag bits (same shape as data)
        id_column: Name of the identifier column in the source table

    Shape Invariants:
        - data.shape[0] == len(feature_ids)
        - data.shape[1] == len(sample_ids)
        - quality_flags.shape == data.shape
    """

    def __init__(
        self,
        data: np.ndarray,
        feature_ids: pd.Index,
        sample_ids: pd.Index,
        quality_flags: np.ndarray | None = None,
        id_column: str = "id",
    ):
        """
        Initialize ExpressionMatrix with validation.

        Args:
            data: Numeric matrix (features × samples)
            feature_ids: Row identifiers
            sample_ids: Column identifiers
            quality_flags: Per-value flags; derived from missingness if None
            id_column: Name of the identifier column in the source table

        Raises:
            TypeError: If data or identifiers have the wrong type
            ValueError: If shapes are inconsistent or identifiers repeat
        """
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(feature_ids, pd.Index):
            raise TypeError(f"feature_ids must be pd.Index, got {type(feature_ids)}")
        if not isinstance(sample_ids, pd.Index):
            raise TypeError(f"sample_ids must be pd.Index, got {type(sample_ids)}")

        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")

        n_features, n_samples = data.shape

        if len(feature_ids) != n_features:
            raise ValueError(
                f"feature_ids length ({len(feature_ids)}) must match data rows ({n_features})"
            )
        if len(sample_ids) != n_samples:
            raise ValueError(
                f"sample_ids length ({len(sample_ids)}) must match data columns ({n_samples})"
            )
        if not feature_ids.is_unique:
            duplicated = feature_ids[feature_ids.duplicated()].unique().tolist()
            raise ValueError(f"feature_ids must be unique, duplicated: {duplicated[:5]}")
        if not sample_ids.is_unique:
            duplicated = sample_ids[sample_ids.duplicated()].unique().tolist()
            raise ValueError(f"sample_ids must be unique, duplicated: {duplicated[:5]}")

        data = data.astype(np.float64, copy=False)

        if quality_flags is None:
            quality_flags = np.where(
                np.isnan(data), int(QualityFlag.MISSING_ORIGINAL), int(QualityFlag.ORIGINAL)
            )
        if not isinstance(quality_flags, np.ndarray):
            raise TypeError(f"quality_flags must be np.ndarray, got {type(quality_flags)}")
        if quality_flags.shape != data.shape:
            raise ValueError(
                f"quality_flags shape {quality_flags.shape} must match data shape {data.shape}"
            )

        self._data = data
        self._feature_ids = feature_ids
        self._sample_ids = sample_ids
        self._quality_flags = quality_flags.astype(int, copy=False)
        self._id_column = id_column

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        id_column: str = "id",
        na_values: Iterable[str] = MISSING_VALUE_TOKENS,
        sample_columns: Sequence[str] | None = None,
    ) -> ExpressionMatrix:
        """
        Build a matrix from a table with an identifier column.

        Every missing-value token becomes NaN. Anything else that does not
        parse as a number is rejected instead of being coerced.

        Args:
            df: Table with one identifier column and numeric sample columns
            id_column: Name of the identifier column
            na_values: Strings that mark a missing measurement
            sample_columns: Sample columns to keep (default: all but id_column)

        Raises:
            ConfigurationError: Missing identifier/sample column, duplicate
                identifiers, or a non-numeric cell
        """
        if id_column not in df.columns:
            raise ConfigurationError(f"Identifier column '{id_column}' not found in table")

        if sample_columns is None:
            sample_columns = [c for c in df.columns if c != id_column]
        else:
            missing = [c for c in sample_columns if c not in df.columns]
            if missing:
                raise ConfigurationError(
                    f"Sample columns not found in table: {missing}", column=str(missing[0])
                )
        if len(sample_columns) == 0:
            raise ConfigurationError("Table has no numeric columns besides the identifier")

        feature_ids = pd.Index(df[id_column].astype(str), name=id_column)
        if not feature_ids.is_unique:
            duplicated = feature_ids[feature_ids.duplicated()].unique().tolist()
            raise ConfigurationError(
                f"Identifier column '{id_column}' has duplicated values: {duplicated[:5]}",
                feature=str(duplicated[0]),
            )

        tokens = list(na_values)
        values = np.empty((len(df), len(sample_columns)), dtype=np.float64)

        for j, col in enumerate(sample_columns):
            raw = df[col]
            if not pd.api.types.is_numeric_dtype(raw):
                is_token = raw.astype(str).str.strip().isin(tokens)
                raw = raw.astype(object).where(raw.notna() & ~is_token, np.nan)
            converted = pd.to_numeric(raw, errors='coerce')
            unparsed = converted.isna() & raw.notna()
            if unparsed.any():
                bad_value = raw[unparsed].iloc[0]
                raise ConfigurationError(
                    f"Non-numeric value {bad_value!r} in sample column '{col}'",
                    column=str(col),
                    feature=str(feature_ids[np.flatnonzero(unparsed.to_numpy())[0]]),
                )
            values[:, j] = converted.to_numpy(dtype=np.float64)

        return cls(
            data=values,
            feature_ids=feature_ids,
            sample_ids=pd.Index([str(c) for c in sample_columns]),
            id_column=id_column,
        )

    @property
    def data(self) -> np.ndarray:
        """Expression matrix (features × samples)."""
        return self._data

    @property
    def feature_ids(self) -> pd.Index:
        """Row identifiers."""
        return self._feature_ids

    @property
    def sample_ids(self) -> pd.Index:
        """Column identifiers."""
        return self._sample_ids

    @property
    def quality_flags(self) -> np.ndarray:
        """Quality tracking matrix (same shape as data)."""
        return self._quality_flags

    @property
    def id_column(self) -> str:
        return self._id_column

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_features, n_samples)."""
        return self._data.shape

    @property
    def n_features(self) -> int:
        return self._data.shape[0]

    @property
    def n_samples(self) -> int:
        return self._data.shape[1]

    def column(self, sample: str) -> np.ndarray:
        """Values of one sample column (a view, do not modify)."""
        return self._data[:, self.sample_index([sample])[0]]

    def sample_index(self, samples: Sequence[str]) -> np.ndarray:
        """
        Positional indices of the given sample names.

        Raises:
            ConfigurationError: If a name is not a column of this matrix
        """
        indexer = self._sample_ids.get_indexer(list(samples))
        if np.any(indexer < 0):
            unknown = [s for s, i in zip(samples, indexer) if i < 0]
            raise ConfigurationError(
                f"Samples not found in matrix: {unknown}", column=str(unknown[0])
            )
        return indexer

    def select_samples(self, samples: Sequence[str]) -> ExpressionMatrix:
        """
        Subset matrix to the named samples, in the given order.

        Examples:
            >>> group_a = matrix.select_samples(['S1', 'S2'])
        """
        idx = self.sample_index(samples)
        return ExpressionMatrix(
            data=self._data[:, idx],
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids[idx],
            quality_flags=self._quality_flags[:, idx],
            id_column=self._id_column,
        )

    def with_values(
        self,
        data: np.ndarray,
        quality_flags: np.ndarray | None = None,
    ) -> ExpressionMatrix:
        """
        New matrix with the same identifiers and replaced values.

        Quality flags are carried over unless new ones are given.

        Raises:
            ValueError: If the new data does not have this matrix's shape
        """
        if data.shape != self.shape:
            raise ValueError(f"data shape {data.shape} must match matrix shape {self.shape}")
        return ExpressionMatrix(
            data=data,
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids,
            quality_flags=self._quality_flags.copy() if quality_flags is None else quality_flags,
            id_column=self._id_column,
        )

    def observed_counts(self) -> pd.Series:
        """Number of non-missing values per sample."""
        return pd.Series(
            np.sum(~np.isnan(self._data), axis=0),
            index=self._sample_ids,
            name="n_observed",
        )

    def to_dataframe(self) -> pd.DataFrame:
        """
        Table with the identifier column first, then one column per sample.
        """
        df = pd.DataFrame(self._data, columns=list(self._sample_ids))
        df.insert(0, self._id_column, list(self._feature_ids))
        return df

    def copy(self, deep: bool = True) -> ExpressionMatrix:
        """
        Create a copy of this matrix.

        Args:
            deep: If True, copy all arrays. If False, share arrays
        """
        if deep:
            return ExpressionMatrix(
                data=self._data.copy(),
                feature_ids=self._feature_ids.copy(),
                sample_ids=self._sample_ids.copy(),
                quality_flags=self._quality_flags.copy(),
                id_column=self._id_column,
            )
        return ExpressionMatrix(
            data=self._data,
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids,
            quality_flags=self._quality_flags,
            id_column=self._id_column,
        )

    def __repr__(self) -> str:
        if self.n_features == 0 or self.n_samples == 0:
            return f"ExpressionMatrix({self.n_features} features × {self.n_samples} samples)"
        return (
            f"ExpressionMatrix({self.n_features} features × {self.n_samples} samples)\n"
            f"  Features: {self.feature_ids[0]}...{self.feature_ids[-1]}\n"
            f"  Samples: {self.sample_ids[0]}...{self.sample_ids[-1]}"
        )

    def __str__(self) -> str:
        return self.__repr__()
