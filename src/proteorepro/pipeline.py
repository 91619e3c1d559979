"""
End-to-end processing: normalization followed by reproducibility filtering.

One pipeline object holds one configuration. Every call to :meth:`run`
starts from the matrix it is given; nothing is cached between calls, so a
caller changing a parameter simply builds a new pipeline and runs again.

Examples:
    >>> from proteorepro import AnalysisPipeline, PipelineConfig
    >>>
    >>> config = PipelineConfig()
    >>> config.normalization.method = "Median-MAD"
    >>> result = AnalysisPipeline(config).run(matrix, groups)
    >>> if result.success:
    ...     filtered = result.filtered
    ...     print(result.reproducibility.summary())
    ... else:
    ...     print(result.failure)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import pandas as pd

from proteorepro.config import PipelineConfig
from proteorepro.core.errors import ConfigurationError, Failure
from proteorepro.core.groups import GroupAssignment
from proteorepro.core.matrix import ExpressionMatrix
from proteorepro.quality.reproducibility import ReproducibilityOutcome, filter_reproducibility
from proteorepro.stats.mixture import TwoComponentEM
from proteorepro.stats.normalization import NormalizationResult, normalize

logger = logging.getLogger(__name__)

__all__ = ['PipelineResult', 'AnalysisPipeline']


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run.

    Attributes:
        normalization: Normalization result (None if the input was rejected)
        reproducibility: Filtering outcome (None if not reached or disabled)
        failure: First failure encountered, with its stage
    """

    normalization: NormalizationResult | None = None
    reproducibility: ReproducibilityOutcome | None = None
    failure: Failure | None = None

    @property
    def success(self) -> bool:
        return self.failure is None

    @property
    def normalized(self) -> ExpressionMatrix | None:
        return self.normalization.matrix if self.normalization is not None else None

    @property
    def filtered(self) -> ExpressionMatrix | None:
        """Final matrix: filtered if filtering ran, otherwise normalized."""
        if self.reproducibility is not None:
            return self.reproducibility.matrix
        return self.normalized


class AnalysisPipeline:
    """
    Normalize a matrix, then mask non-reproducible measurements.

    Args:
        config: Complete pipeline configuration (validated on construction)

    Raises:
        ConfigurationError: If the configuration is invalid
    """

    def __init__(self, config: PipelineConfig | None = None):
        self.config = config if config is not None else PipelineConfig()
        self.config.validate()

    def run(self, matrix: ExpressionMatrix, groups: GroupAssignment) -> PipelineResult:
        """
        Run normalization and filtering on a matrix.

        Stops at the first failure; the result then carries the stages that
        did complete plus the failure with its stage.
        """
        try:
            groups.validate(matrix)
        except ConfigurationError as e:
            logger.warning(f"Group assignment does not match matrix: {e.message}")
            return PipelineResult(failure=Failure.from_error(e, stage="groups"))

        method = self.config.normalization.method
        logger.info(
            f"Pipeline: {matrix.n_features} features × {matrix.n_samples} samples, "
            f"{len(groups)} groups, method={method}"
        )

        normalization = normalize(
            matrix,
            method,
            mode=self.config.mixture.mode,
            fitter=TwoComponentEM.from_config(self.config.mixture),
        )
        if not normalization.success:
            return PipelineResult(normalization=normalization, failure=normalization.failure)

        if not self.config.reproducibility.enabled:
            logger.info("Reproducibility filtering disabled")
            return PipelineResult(normalization=normalization)

        outcome = filter_reproducibility(
            normalization.matrix, groups, self.config.reproducibility
        )
        return PipelineResult(
            normalization=normalization,
            reproducibility=outcome,
            failure=outcome.failure,
        )

    def run_table(self, table: pd.DataFrame, groups: GroupAssignment) -> PipelineResult:
        """
        Build the matrix from a raw table (identifier column + samples), then run.

        Missing-value tokens and the identifier column come from the config.
        """
        try:
            matrix = ExpressionMatrix.from_dataframe(
                table,
                id_column=self.config.id_column,
                na_values=self.config.na_values,
            )
        except ConfigurationError as e:
            logger.warning(f"Input table rejected: {e.message}")
            return PipelineResult(failure=Failure.from_error(e, stage="input"))

        return self.run(matrix, groups)
