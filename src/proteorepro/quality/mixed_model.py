"""
Multi-replicate reproducibility test based on a linear mixed model.

For a group with three or more replicates, every feature is measured once
per replicate. One model is fitted across all features of the group:

    value ~ C(replicate) + (1 | feature)

The fixed replicate term absorbs systematic offsets of whole replicate
columns, and the random intercept absorbs each feature's abundance. What is
left, the residual variance, is the typical inconsistency of a feature across
replicates. A feature whose own replicate-adjusted values scatter much more
than that is not reproducible:

    Q_i = sum_j (y_ij - beta_j - mean_i)^2 / sigma^2  ~  chi2(n_i - 1)

Missing replicates:
    A feature is tested on the replicates it was observed in, as long as at
    least ``min_observations`` (default 2) remain. Features with fewer
    observations cannot be compared and are kept, with a NaN p-value.

Fallback:
    If the mixed model raises or does not converge, the same mean structure
    is fitted as a fixed-effects model (``value ~ C(replicate) + C(feature)``,
    OLS), whose residual variance plays the same role. The reason is
    recorded in ``issue``.

References:
    - Pinheiro & Bates (2000) Mixed-Effects Models in S and S-PLUS
    - Bland & Altman (1999) Stat Methods Med Res 8(2):135-160
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats as scipy_stats

from proteorepro.core.errors import DegenerateInputError

logger = logging.getLogger(__name__)

__all__ = [
    'ModelType',
    'MixedModelReproducibility',
    'mixed_model_reproducibility',
]

_RELATIVE_VARIANCE_FLOOR = 1e-12


class ModelType(Enum):
    """Type of statistical model."""

    FIXED = "fixed"   # OLS with feature and replicate fixed effects
    MIXED = "mixed"   # Linear mixed model with random feature intercepts
    NONE = "none"     # Fewer than 2 testable features, nothing fitted


@dataclass(frozen=True)
class MixedModelReproducibility:
    """Per-feature outcome of the multi-replicate test.

    Attributes:
        reproducible: One entry per input row; False marks a feature to mask
        p_values: Chi-square p-value per row (NaN when not tested)
        statistics: Chi-square statistic per row (NaN when not tested)
        n_observed: Observed replicates per row
        replicate_effects: Estimated offset of each replicate column
        residual_variance: Residual variance of the fitted model
        feature_variance: Random-intercept variance (mixed model only)
        model_type: Which model produced the residual variance
        issue: Reason for falling back to the fixed-effects model, if any
    """

    reproducible: NDArray[np.bool_]
    p_values: NDArray[np.float64]
    statistics: NDArray[np.float64]
    n_observed: NDArray[np.int_]
    replicate_effects: NDArray[np.float64]
    residual_variance: float
    feature_variance: float | None
    model_type: ModelType
    issue: str | None = None

    @property
    def n_not_reproducible(self) -> int:
        return int(np.sum(~self.reproducible))


def _long_format(
    values: NDArray[np.float64],
    testable: NDArray[np.bool_],
    replicate_names: Sequence[str],
) -> pd.DataFrame:
    rows, cols = np.nonzero(~np.isnan(values) & testable[:, None])
    # Replicates with no observations would add an all-zero design column.
    present = [name for j, name in enumerate(replicate_names) if np.any(cols == j)]
    return pd.DataFrame({
        'value': values[rows, cols],
        'feature': rows,
        'replicate': pd.Categorical(
            np.asarray(replicate_names, dtype=object)[cols],
            categories=present,
        ),
    })


def _replicate_effects(params: pd.Series, replicate_names: Sequence[str]) -> NDArray[np.float64]:
    """Offsets of each replicate relative to the reference (first observed) replicate."""
    effects = np.zeros(len(replicate_names))
    for j, name in enumerate(replicate_names):
        key = f"C(replicate)[T.{name}]"
        if key in params.index:
            effects[j] = float(params[key])
    return effects


def _fit_models(
    long: pd.DataFrame,
    replicate_names: Sequence[str],
) -> tuple[NDArray[np.float64], float, float | None, ModelType, str | None]:
    """
    Fit the mixed model, falling back to OLS.

    Returns:
        Tuple of (replicate_effects, residual_variance, feature_variance,
        model_type, issue)
    """
    import statsmodels.formula.api as smf

    mixed_failed_reason = None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            model = smf.mixedlm("value ~ C(replicate)", long, groups=long["feature"])
            result = model.fit(reml=True, method='powell')

        if result.converged and np.isfinite(result.scale):
            feature_variance = float(result.cov_re.iloc[0, 0])
            return (
                _replicate_effects(result.fe_params, replicate_names),
                float(result.scale),
                feature_variance,
                ModelType.MIXED,
                None,
            )
        mixed_failed_reason = "Mixed model did not converge"

    except Exception as e:
        mixed_failed_reason = f"Mixed model failed: {type(e).__name__}"

    logger.warning(f"{mixed_failed_reason}; falling back to fixed-effects model")

    try:
        ols = smf.ols("value ~ C(replicate) + C(feature)", long).fit()
    except Exception as e:
        raise DegenerateInputError(
            f"Fixed-effects model failed ({mixed_failed_reason}): {type(e).__name__}: {e}"
        ) from e
    return (
        _replicate_effects(ols.params, replicate_names),
        float(ols.scale),
        None,
        ModelType.FIXED,
        f"Fallback to fixed model: {mixed_failed_reason}",
    )


def mixed_model_reproducibility(
    values: NDArray[np.float64],
    alpha: float = 0.05,
    replicate_names: Sequence[str] | None = None,
    min_observations: int = 2,
) -> MixedModelReproducibility:
    """
    Test every feature of a replicate group for excess inter-replicate variance.

    Args:
        values: Group block (features × replicates), NaN for missing
        alpha: Significance level; features with ``p < alpha`` are flagged
        replicate_names: Column names (default: "R1", "R2", ...)
        min_observations: Fewest observed replicates for a feature to be tested

    Returns:
        MixedModelReproducibility with exactly one entry per input row.

    Raises:
        DegenerateInputError: Fewer than 3 replicate columns

    Warns:
        RuntimeWarning: Fewer than 2 testable features; every row is kept

    Examples:
        >>> block = matrix.select_samples(['A_1', 'A_2', 'A_3']).data
        >>> result = mixed_model_reproducibility(block, alpha=0.05)
        >>> np.flatnonzero(~result.reproducible)
    """
    values = np.asarray(values, dtype=np.float64)
    if values.ndim != 2:
        raise ValueError(f"Expected 2D array, got {values.ndim}D")

    n_features, n_replicates = values.shape
    if n_replicates < 3:
        raise DegenerateInputError(
            f"Mixed-model reproducibility needs at least 3 replicates, got {n_replicates}"
        )
    if replicate_names is None:
        replicate_names = [f"R{j + 1}" for j in range(n_replicates)]
    replicate_names = [str(name) for name in replicate_names]

    n_observed = np.sum(~np.isnan(values), axis=1)
    testable = n_observed >= max(min_observations, 2)
    n_testable = int(testable.sum())

    reproducible = np.ones(n_features, dtype=bool)
    p_values = np.full(n_features, np.nan)
    statistics = np.full(n_features, np.nan)

    if n_testable < 2:
        warnings.warn(
            f"Only {n_testable} feature(s) observed in {max(min_observations, 2)}+ "
            f"replicates; residual variance cannot be estimated, nothing is masked",
            RuntimeWarning,
        )
        return MixedModelReproducibility(
            reproducible=reproducible,
            p_values=p_values,
            statistics=statistics,
            n_observed=n_observed.astype(int),
            replicate_effects=np.zeros(n_replicates),
            residual_variance=float('nan'),
            feature_variance=None,
            model_type=ModelType.NONE,
            issue=f"{n_testable} testable feature(s)",
        )

    long = _long_format(values, testable, replicate_names)
    effects, residual_variance, feature_variance, model_type, issue = _fit_models(
        long, replicate_names
    )

    adjusted = values[testable] - effects[np.newaxis, :]
    deviations = adjusted - np.nanmean(adjusted, axis=1, keepdims=True)
    sum_squares = np.nansum(deviations ** 2, axis=1)
    df = n_observed[testable] - 1

    # Residual variance at rounding level means a perfectly additive block.
    variance_floor = _RELATIVE_VARIANCE_FLOOR * max(float(np.var(long['value'])), 1.0)
    if residual_variance > variance_floor:
        q = sum_squares / residual_variance
    else:
        q = np.zeros(n_testable)

    p = scipy_stats.chi2.sf(q, df)

    statistics[testable] = q
    p_values[testable] = p
    reproducible[testable] = p >= alpha

    logger.info(
        f"Mixed-model reproducibility ({model_type.value}): "
        f"{n_testable}/{n_features} features tested, "
        f"{int(np.sum(~reproducible))} not reproducible at alpha={alpha}"
    )

    return MixedModelReproducibility(
        reproducible=reproducible,
        p_values=p_values,
        statistics=statistics,
        n_observed=n_observed.astype(int),
        replicate_effects=effects,
        residual_variance=residual_variance,
        feature_variance=feature_variance,
        model_type=model_type,
        issue=issue,
    )
