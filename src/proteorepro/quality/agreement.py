"""
Limits of agreement between two replicate columns (Bland-Altman).

For a group with exactly two replicates, the per-feature difference
``d = a - b`` should scatter around a constant bias. Features whose
difference falls outside ``mean(d) ± z · sd(d)`` disagree between the
replicates and are masked by the reproducibility filter.

The multiplier defaults to 3.290527 (two-sided 99.9% normal quantile)
instead of the conventional 1.96. It can be changed through
``ReproducibilityConfig.z_multiplier``.

References:
    - Bland & Altman (1986) Lancet 327(8476):307-310
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from proteorepro.core.errors import DegenerateInputError

__all__ = [
    'BLAND_ALTMAN_Z',
    'AgreementLimits',
    'PairwiseAgreement',
    'limits_of_agreement',
    'pairwise_agreement',
]

BLAND_ALTMAN_Z = 3.290527


@dataclass(frozen=True)
class AgreementLimits:
    """Limits of agreement for one replicate pair.

    Attributes:
        mean_difference: Mean of ``a - b`` over paired observations (bias)
        sd_difference: Sample standard deviation of ``a - b`` (ddof=1)
        lower: ``mean_difference - z_multiplier * sd_difference``
        upper: ``mean_difference + z_multiplier * sd_difference``
        n_pairs: Number of features observed in both columns
        z_multiplier: Multiplier used for the limits
    """

    mean_difference: float
    sd_difference: float
    lower: float
    upper: float
    n_pairs: int
    z_multiplier: float


@dataclass(frozen=True)
class PairwiseAgreement:
    """Per-feature outcome of the limits-of-agreement check.

    Attributes:
        limits: The estimated limits
        differences: ``a - b`` per feature (NaN where either is missing)
        flagged: True where the difference lies outside the limits
    """

    limits: AgreementLimits
    differences: NDArray[np.float64]
    flagged: NDArray[np.bool_]

    @property
    def n_flagged(self) -> int:
        return int(np.sum(self.flagged))


def limits_of_agreement(
    a: NDArray[np.float64],
    b: NDArray[np.float64],
    z_multiplier: float = BLAND_ALTMAN_Z,
) -> AgreementLimits:
    """
    Bland-Altman limits of agreement over paired non-missing observations.

    Raises:
        ValueError: If the columns differ in length
        DegenerateInputError: Fewer than 2 paired observations
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Replicate columns must have equal length, got {a.shape} and {b.shape}")

    paired = ~np.isnan(a) & ~np.isnan(b)
    n_pairs = int(paired.sum())
    if n_pairs < 2:
        raise DegenerateInputError(
            f"Limits of agreement need at least 2 paired observations, got {n_pairs}"
        )

    d = a[paired] - b[paired]
    mean_d = float(np.mean(d))
    sd_d = float(np.std(d, ddof=1))

    return AgreementLimits(
        mean_difference=mean_d,
        sd_difference=sd_d,
        lower=mean_d - z_multiplier * sd_d,
        upper=mean_d + z_multiplier * sd_d,
        n_pairs=n_pairs,
        z_multiplier=z_multiplier,
    )


def pairwise_agreement(
    a: NDArray[np.float64],
    b: NDArray[np.float64],
    z_multiplier: float = BLAND_ALTMAN_Z,
) -> PairwiseAgreement:
    """
    Flag features whose replicate difference lies outside the limits.

    A feature is flagged when ``d_i < lower`` or ``d_i > upper``. Features
    missing in either column are never flagged.

    Examples:
        >>> result = pairwise_agreement(matrix.column('A_1'), matrix.column('A_2'))
        >>> result.limits.lower, result.limits.upper
        >>> np.flatnonzero(result.flagged)
    """
    limits = limits_of_agreement(a, b, z_multiplier)

    differences = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    with np.errstate(invalid='ignore'):
        flagged = (differences < limits.lower) | (differences > limits.upper)

    return PairwiseAgreement(limits=limits, differences=differences, flagged=flagged)
