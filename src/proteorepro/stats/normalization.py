"""
Column-wise normalization methods for log-ratio proteomics data.

Implements the normalization choices of the analysis application:
- Median: centers every sample at zero
- Median-MAD: centers at zero and scales to unit median absolute deviation
- Quantile: forces identical distributions, then re-centers at zero
- 2-component: centers and scales with the dominant component of a
  two-component mixture fit (see :mod:`proteorepro.stats.mixture`)

The assumption behind all of them is that most features do not change
between samples, so per-sample shifts in location (and spread) are
technical rather than biological.

References:
    - Bolstad et al. (2003) Bioinformatics 19(2):185-193 (quantile normalization)
    - Mertins et al. (2018) Nat Protoc 13(7):1632-1661 (two-component normalization)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import numpy as np
from numpy.typing import NDArray
from scipy.stats import median_abs_deviation, rankdata

from proteorepro.core.errors import (
    ConfigurationError,
    DegenerateInputError,
    Failure,
    ProcessingError,
)
from proteorepro.core.matrix import ExpressionMatrix
from proteorepro.core.quality import QualityFlag
from proteorepro.core.transform import Transform
from proteorepro.stats.mixture import (
    MixtureFitter,
    MixtureMode,
    TwoComponentEM,
    TwoComponentResult,
    fit_two_component,
)

logger = logging.getLogger(__name__)

__all__ = [
    'NormalizationMethod',
    'NormalizationResult',
    'Normalizer',
    'median_normalization',
    'median_mad_normalization',
    'quantile_normalization',
    'two_component_normalization',
    'normalize',
]


class NormalizationMethod(Enum):
    """Available normalization methods."""

    MEDIAN = "Median"
    QUANTILE = "Quantile"
    MEDIAN_MAD = "Median-MAD"
    TWO_COMPONENT = "2-component"


@dataclass(frozen=True)
class NormalizationResult:
    """Result of a normalization run.

    Attributes:
        matrix: Normalized matrix, or None when the run failed
        method: Normalization method used
        location: Per-sample value subtracted (None on failure)
        scale: Per-sample divisor, for methods that rescale
        fits: Per-sample two-component fits (2-component only)
        failure: Failure value when the run did not succeed
    """

    matrix: ExpressionMatrix | None
    method: str
    location: NDArray[np.float64] | None = None
    scale: NDArray[np.float64] | None = None
    fits: dict[str, TwoComponentResult] = field(default_factory=dict)
    failure: Failure | None = None

    @property
    def success(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(cls, method: str, failure: Failure) -> NormalizationResult:
        return cls(matrix=None, method=method, failure=failure)


def _column_medians(matrix: ExpressionMatrix) -> NDArray[np.float64]:
    """Per-sample medians ignoring NaN; a column with no values is degenerate."""
    observed = np.sum(~np.isnan(matrix.data), axis=0)
    if np.any(observed == 0):
        empty = matrix.sample_ids[int(np.argmin(observed))]
        raise DegenerateInputError(f"Column '{empty}' has no observed values", column=empty)
    return np.nanmedian(matrix.data, axis=0)


def median_normalization(matrix: ExpressionMatrix) -> NormalizationResult:
    """
    Subtract each column's median (ignoring missing values).

    Mathematical formulation:
        normalized[i,j] = x[i,j] - median_j
    """
    medians = _column_medians(matrix)
    normalized = matrix.data - medians[np.newaxis, :]

    return NormalizationResult(
        matrix=matrix.with_values(normalized),
        method=NormalizationMethod.MEDIAN.value,
        location=medians,
    )


def median_mad_normalization(matrix: ExpressionMatrix) -> NormalizationResult:
    """
    Subtract each column's median, then divide by its MAD.

    The MAD carries the normal-consistency constant (1.4826), so after
    normalization every column has median 0 and MAD 1 on the same scale.

    Raises:
        DegenerateInputError: A column has zero MAD (would divide by zero)
    """
    medians = _column_medians(matrix)
    mads = median_abs_deviation(matrix.data, axis=0, scale='normal', nan_policy='omit')
    mads = np.asarray(mads, dtype=np.float64)

    zero = np.flatnonzero(~(mads > 0))
    if len(zero) > 0:
        column = matrix.sample_ids[zero[0]]
        raise DegenerateInputError(
            f"Median absolute deviation of column '{column}' is zero", column=column
        )

    normalized = (matrix.data - medians[np.newaxis, :]) / mads[np.newaxis, :]

    return NormalizationResult(
        matrix=matrix.with_values(normalized),
        method=NormalizationMethod.MEDIAN_MAD.value,
        location=medians,
        scale=mads,
    )


def _quantile_target(data: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Mean quantile function across columns on a common grid.

    Each column's sorted observed values are interpolated onto an evenly
    spaced grid of ``n_rows`` probabilities, so columns with different
    numbers of missing values contribute on the same footing.
    """
    n_rows = data.shape[0]
    grid = np.linspace(0.0, 1.0, n_rows)
    curves = []
    for j in range(data.shape[1]):
        observed = np.sort(data[~np.isnan(data[:, j]), j])
        if len(observed) == 1:
            curves.append(np.full(n_rows, observed[0]))
        elif len(observed) > 1:
            curves.append(np.interp(grid, np.linspace(0.0, 1.0, len(observed)), observed))
    return np.mean(curves, axis=0)


def quantile_normalization(matrix: ExpressionMatrix) -> NormalizationResult:
    """
    Quantile normalization followed by re-centering every column at zero.

    Algorithm:
        1. Build the target distribution as the mean quantile function of
           all columns (observed values only)
        2. Rank each column's observed values (ties get the average rank)
        3. Replace every value by the target at its relative rank
        4. Subtract each column's median

    Missing values stay missing. With complete data and no ties, every
    column ends up with exactly the same sorted values.
    """
    data = matrix.data
    _column_medians(matrix)

    n_rows = data.shape[0]
    target = _quantile_target(data)
    grid = np.linspace(0.0, 1.0, n_rows)
    normalized = np.full_like(data, np.nan)

    for j in range(data.shape[1]):
        valid = ~np.isnan(data[:, j])
        n_valid = int(valid.sum())

        if n_valid == 1:
            normalized[valid, j] = np.median(target)
            continue

        ranks = rankdata(data[valid, j], method='average')
        positions = (ranks - 1.0) / (n_valid - 1.0)
        normalized[valid, j] = np.interp(positions, grid, target)

    medians = np.nanmedian(normalized, axis=0)
    normalized = normalized - medians[np.newaxis, :]

    return NormalizationResult(
        matrix=matrix.with_values(normalized),
        method=NormalizationMethod.QUANTILE.value,
        location=medians,
    )


def two_component_normalization(
    matrix: ExpressionMatrix,
    mode: MixtureMode | str = MixtureMode.UNIMODAL,
    fitter: MixtureFitter | None = None,
) -> NormalizationResult:
    """
    Normalize every column with its own two-component mixture fit.

    Columns are fitted independently. The first column whose fit fails
    aborts the whole call; no partially normalized matrix is produced.
    Values assigned to the minor component are flagged SECONDARY_COMPONENT
    but keep their normalized value.

    Raises:
        FitFailure: A column could not be fitted; ``column`` names it
    """
    if fitter is None:
        fitter = TwoComponentEM(mode=mode)

    _column_medians(matrix)

    normalized = np.empty_like(matrix.data)
    flags = matrix.quality_flags.copy()
    location = np.empty(matrix.n_samples)
    scale = np.empty(matrix.n_samples)
    fits: dict[str, TwoComponentResult] = {}

    for j, sample in enumerate(matrix.sample_ids):
        result = fit_two_component(matrix.data[:, j], fitter=fitter, column=sample)

        normalized[:, j] = result.normalized
        location[j] = result.location
        scale[j] = result.scale
        fits[sample] = result

        secondary = (result.assignment >= 0) & (result.assignment != result.selected_component)
        flags[secondary, j] |= int(QualityFlag.SECONDARY_COMPONENT)

        logger.debug(
            f"  {sample}: location={result.location:.3f}, scale={result.scale:.3f}, "
            f"selected fraction={result.selected_fraction:.2f}"
        )

    return NormalizationResult(
        matrix=matrix.with_values(normalized, flags),
        method=NormalizationMethod.TWO_COMPONENT.value,
        location=location,
        scale=scale,
        fits=fits,
    )


_DISPATCH: dict[NormalizationMethod, Callable[..., NormalizationResult]] = {
    NormalizationMethod.MEDIAN: median_normalization,
    NormalizationMethod.QUANTILE: quantile_normalization,
    NormalizationMethod.MEDIAN_MAD: median_mad_normalization,
    NormalizationMethod.TWO_COMPONENT: two_component_normalization,
}


def _resolve_method(method: NormalizationMethod | str) -> NormalizationMethod:
    if isinstance(method, NormalizationMethod):
        return method
    try:
        return NormalizationMethod(method)
    except ValueError:
        valid = [m.value for m in NormalizationMethod]
        raise ConfigurationError(f"Unknown normalization method '{method}'. Valid: {valid}")


class Normalizer(Transform):
    """
    Column-wise normalization as a Transform.

    Args:
        method: NormalizationMethod or its string value
        mode: Mixture mode for the 2-component method
        fitter: Custom MixtureFitter for the 2-component method

    Examples:
        >>> normalizer = Normalizer("Median")
        >>> normalized = normalizer.apply(matrix)
        >>>
        >>> # Full result with per-sample fits
        >>> result = Normalizer("2-component").run(matrix)
        >>> result.fits['S1'].location
    """

    def __init__(
        self,
        method: NormalizationMethod | str = NormalizationMethod.MEDIAN,
        mode: MixtureMode | str = MixtureMode.UNIMODAL,
        fitter: MixtureFitter | None = None,
    ):
        resolved = _resolve_method(method)
        super().__init__(name="Normalizer", params={"method": resolved.value})
        self.method = resolved
        self.mode = MixtureMode.resolve(mode)
        self.fitter = fitter

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if matrix.n_samples == 0:
            errors.append("Matrix has no sample columns")
        return errors

    def run(self, matrix: ExpressionMatrix) -> NormalizationResult:
        """
        Normalize and return the full result.

        Raises:
            ProcessingError: If the matrix cannot be normalized
        """
        errors = self.validate(matrix)
        if errors:
            raise ConfigurationError("; ".join(errors))

        logger.info(
            f"Normalizing {matrix.n_features} features × {matrix.n_samples} samples "
            f"({self.method.value})"
        )

        if self.method == NormalizationMethod.TWO_COMPONENT:
            return two_component_normalization(matrix, mode=self.mode, fitter=self.fitter)
        return _DISPATCH[self.method](matrix)

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        return self.run(matrix).matrix


def normalize(
    matrix: ExpressionMatrix,
    method: NormalizationMethod | str = NormalizationMethod.MEDIAN,
    mode: MixtureMode | str = MixtureMode.UNIMODAL,
    fitter: MixtureFitter | None = None,
) -> NormalizationResult:
    """
    Apply normalization to a matrix.

    This is the main entry point for normalization. Errors do not propagate:
    an unknown method, a degenerate column or a failed mixture fit comes
    back as ``result.failure`` naming the offending column.

    Args:
        matrix: Input matrix (not modified)
        method: "Median", "Quantile", "Median-MAD" or "2-component"
        mode: Mixture mode for the 2-component method
        fitter: Custom MixtureFitter for the 2-component method

    Returns:
        NormalizationResult; check ``result.success`` before using ``matrix``.

    Examples:
        >>> result = normalize(matrix, "2-component")
        >>> if not result.success:
        ...     print(f"Sample {result.failure.column} could not be fitted")
    """
    method_name = method.value if isinstance(method, NormalizationMethod) else str(method)
    try:
        return Normalizer(method, mode=mode, fitter=fitter).run(matrix)
    except ProcessingError as e:
        logger.warning(f"Normalization ({method_name}) failed: {e.message}")
        return NormalizationResult.failed(method_name, Failure.from_error(e, stage="normalization"))
