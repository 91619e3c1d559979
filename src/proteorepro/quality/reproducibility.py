"""
Replicate reproducibility filtering.

Masks measurements that are inconsistent with the other replicates of the
same condition. Each replicate group is handled on its own:

    1 member   -> nothing to compare, the group is left untouched
    2 members  -> limits of agreement of the pair (Bland-Altman)
    3+ members -> mixed-model test of excess inter-replicate variance

A flagged feature is set to NaN in that group's columns only and marked
NOT_REPRODUCIBLE; the same feature in other groups keeps its values.

Examples:
    >>> from proteorepro.quality import ReproducibilityFilter
    >>>
    >>> groups = GroupAssignment({'A_1': 'A', 'A_2': 'A', 'B_1': 'B', 'B_2': 'B'})
    >>> outcome = ReproducibilityFilter(groups).run(normalized)
    >>> outcome.masked_by_group['A'].feature_ids
    >>> outcome.summary()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from proteorepro.core.errors import (
    ConfigurationError,
    Failure,
    InternalConsistencyError,
    ProcessingError,
)
from proteorepro.core.groups import GroupAssignment
from proteorepro.core.matrix import ExpressionMatrix
from proteorepro.core.quality import QualityFlag
from proteorepro.core.transform import Transform
from proteorepro.quality.agreement import BLAND_ALTMAN_Z, pairwise_agreement
from proteorepro.quality.mixed_model import mixed_model_reproducibility

if TYPE_CHECKING:
    from proteorepro.config import ReproducibilityConfig

logger = logging.getLogger(__name__)

__all__ = [
    'FilterStrategy',
    'ReproducibilityStrategy',
    'NoFilter',
    'PairwiseStrategy',
    'MixedModelStrategy',
    'GroupMaskReport',
    'ReproducibilityOutcome',
    'ReproducibilityFilter',
    'filter_reproducibility',
]


class FilterStrategy(Enum):
    """How a replicate group is checked, chosen by its size."""

    NONE = "none"
    PAIRWISE = "pairwise"
    MIXED_MODEL = "mixed_model"

    @classmethod
    def for_group_size(cls, n_members: int) -> FilterStrategy:
        if n_members <= 1:
            return cls.NONE
        if n_members == 2:
            return cls.PAIRWISE
        return cls.MIXED_MODEL


class ReproducibilityStrategy(Protocol):
    """Decides, for one group block, which features to mask."""

    def flag(self, block: NDArray[np.float64], sample_names: list[str]) -> NDArray[np.bool_]:
        """Return one boolean per row of ``block``; True means mask."""
        ...


class NoFilter:
    """Single-member groups: nothing is ever flagged."""

    def flag(self, block: NDArray[np.float64], sample_names: list[str]) -> NDArray[np.bool_]:
        return np.zeros(block.shape[0], dtype=bool)


class PairwiseStrategy:
    """Flags features outside the pair's limits of agreement."""

    def __init__(self, z_multiplier: float = BLAND_ALTMAN_Z):
        self.z_multiplier = z_multiplier

    def flag(self, block: NDArray[np.float64], sample_names: list[str]) -> NDArray[np.bool_]:
        result = pairwise_agreement(block[:, 0], block[:, 1], self.z_multiplier)
        logger.debug(
            f"  limits of agreement {sample_names}: "
            f"[{result.limits.lower:.3f}, {result.limits.upper:.3f}]"
        )
        return result.flagged


class MixedModelStrategy:
    """Flags features with significant excess inter-replicate variance."""

    def __init__(self, alpha: float = 0.05, min_observations: int = 2):
        self.alpha = alpha
        self.min_observations = min_observations

    def flag(self, block: NDArray[np.float64], sample_names: list[str]) -> NDArray[np.bool_]:
        result = mixed_model_reproducibility(
            block,
            alpha=self.alpha,
            replicate_names=sample_names,
            min_observations=self.min_observations,
        )
        if result.issue:
            logger.info(f"  {sample_names}: {result.issue}")
        return ~result.reproducible


@dataclass(frozen=True)
class GroupMaskReport:
    """What the filter did to one replicate group.

    Attributes:
        group: Group label
        strategy: Strategy applied to the group
        samples: Member columns, in matrix order
        feature_ids: Identifiers of the masked features
        row_indices: Row positions of the masked features
        n_values_masked: Cells that went from observed to missing
    """

    group: str
    strategy: FilterStrategy
    samples: tuple[str, ...]
    feature_ids: tuple[str, ...]
    row_indices: tuple[int, ...]
    n_values_masked: int

    @property
    def n_features_masked(self) -> int:
        return len(self.feature_ids)


@dataclass(frozen=True)
class ReproducibilityOutcome:
    """Result of reproducibility filtering.

    Attributes:
        matrix: Filtered matrix (same shape and identifiers as the input),
            or None when filtering failed
        masked_by_group: GroupMaskReport per group, in group order
        failure: Failure value when filtering did not succeed
    """

    matrix: ExpressionMatrix | None
    masked_by_group: dict[str, GroupMaskReport] = field(default_factory=dict)
    failure: Failure | None = None

    @property
    def success(self) -> bool:
        return self.failure is None

    def summary(self) -> pd.DataFrame:
        """Per-group table of masked feature and value counts."""
        records = [
            {
                'group': report.group,
                'strategy': report.strategy.value,
                'n_samples': len(report.samples),
                'n_features_masked': report.n_features_masked,
                'n_values_masked': report.n_values_masked,
            }
            for report in self.masked_by_group.values()
        ]
        return pd.DataFrame.from_records(
            records,
            columns=['group', 'strategy', 'n_samples', 'n_features_masked', 'n_values_masked'],
        )


class ReproducibilityFilter(Transform):
    """
    Mask non-reproducible measurements, group by group.

    Args:
        groups: Sample -> replicate group assignment
        alpha: Significance level of the mixed-model test
        z_multiplier: Limits-of-agreement multiplier for pairs
        min_observations: Fewest observed replicates for a mixed-model test
        strategies: Override the strategy object used per FilterStrategy
    """

    def __init__(
        self,
        groups: GroupAssignment,
        alpha: float = 0.05,
        z_multiplier: float = BLAND_ALTMAN_Z,
        min_observations: int = 2,
        strategies: dict[FilterStrategy, ReproducibilityStrategy] | None = None,
    ):
        if not 0.0 < alpha < 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1), got {alpha}")
        if z_multiplier <= 0:
            raise ConfigurationError(f"z_multiplier must be positive, got {z_multiplier}")

        super().__init__(
            name="ReproducibilityFilter",
            params={"alpha": alpha, "z_multiplier": z_multiplier, "groups": len(groups)},
        )
        self.groups = groups
        self.alpha = alpha
        self.z_multiplier = z_multiplier

        self.strategies: dict[FilterStrategy, ReproducibilityStrategy] = {
            FilterStrategy.NONE: NoFilter(),
            FilterStrategy.PAIRWISE: PairwiseStrategy(z_multiplier),
            FilterStrategy.MIXED_MODEL: MixedModelStrategy(alpha, min_observations),
        }
        if strategies:
            self.strategies.update(strategies)

    @classmethod
    def from_config(
        cls,
        groups: GroupAssignment,
        config: ReproducibilityConfig,
        strategies: dict[FilterStrategy, ReproducibilityStrategy] | None = None,
    ) -> ReproducibilityFilter:
        return cls(
            groups,
            alpha=config.alpha,
            z_multiplier=config.z_multiplier,
            min_observations=config.min_observations,
            strategies=strategies,
        )

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        try:
            self.groups.validate(matrix)
        except ConfigurationError as e:
            errors.append(e.message)
        return errors

    def run(self, matrix: ExpressionMatrix) -> ReproducibilityOutcome:
        """
        Filter every group and return the masked matrix with per-group reports.

        Raises:
            ConfigurationError: Groups do not match the matrix columns
            DegenerateInputError: A group cannot be evaluated
            InternalConsistencyError: A strategy returned the wrong length
        """
        self.groups.validate(matrix)
        errors = super().validate(matrix)
        if errors:
            raise ConfigurationError("; ".join(errors))

        data = matrix.data.copy()
        flags = matrix.quality_flags.copy()
        reports: dict[str, GroupMaskReport] = {}

        for group in self.groups.labels:
            samples = self.groups.members(group, matrix)
            strategy = FilterStrategy.for_group_size(len(samples))
            cols = matrix.sample_index(samples)

            flagged = np.asarray(
                self.strategies[strategy].flag(matrix.data[:, cols], samples), dtype=bool
            )
            if flagged.shape != (matrix.n_features,):
                raise InternalConsistencyError(
                    f"{strategy.value} strategy returned {flagged.shape[0] if flagged.ndim else 0} "
                    f"decisions for {matrix.n_features} features in group '{group}'"
                )

            rows = np.flatnonzero(flagged)
            block = np.ix_(rows, cols)
            newly_masked = int(np.sum(~np.isnan(data[block])))
            data[block] = np.nan
            flags[block] |= int(QualityFlag.NOT_REPRODUCIBLE)

            reports[group] = GroupMaskReport(
                group=group,
                strategy=strategy,
                samples=tuple(samples),
                feature_ids=tuple(str(f) for f in matrix.feature_ids[rows]),
                row_indices=tuple(int(r) for r in rows),
                n_values_masked=newly_masked,
            )

            logger.info(
                f"Group {group} ({strategy.value}, {len(samples)} samples): "
                f"masked {len(rows)} features, {newly_masked} values"
            )

        return ReproducibilityOutcome(
            matrix=matrix.with_values(data, flags),
            masked_by_group=reports,
        )

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        return self.run(matrix).matrix


def filter_reproducibility(
    matrix: ExpressionMatrix,
    groups: GroupAssignment,
    config: ReproducibilityConfig | None = None,
    strategies: dict[FilterStrategy, ReproducibilityStrategy] | None = None,
) -> ReproducibilityOutcome:
    """
    Apply reproducibility filtering to a (normalized) matrix.

    Errors do not propagate: mismatched groups, a degenerate pair or a
    strategy answering for the wrong number of features comes back as
    ``outcome.failure``.

    Args:
        matrix: Input matrix (not modified)
        groups: Sample -> replicate group assignment
        config: Alpha, limits-of-agreement multiplier and mixed-model settings
        strategies: Override the strategy object used per FilterStrategy

    Returns:
        ReproducibilityOutcome; check ``outcome.success`` before using ``matrix``.
    """
    try:
        if config is None:
            reproducibility_filter = ReproducibilityFilter(groups, strategies=strategies)
        else:
            reproducibility_filter = ReproducibilityFilter.from_config(groups, config, strategies)
        return reproducibility_filter.run(matrix)
    except ProcessingError as e:
        logger.warning(f"Reproducibility filtering failed: {e.message}")
        return ReproducibilityOutcome(
            matrix=None,
            failure=Failure.from_error(e, stage="reproducibility"),
        )
