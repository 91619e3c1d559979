"""
Replicate reproducibility: agreement estimators and the masking filter.

Exports:
- Pairwise limits of agreement (2 replicates)
- Mixed-model reproducibility test (3+ replicates)
- ReproducibilityFilter and filter_reproducibility
"""

from .agreement import (
    BLAND_ALTMAN_Z,
    AgreementLimits,
    PairwiseAgreement,
    limits_of_agreement,
    pairwise_agreement,
)
from .mixed_model import (
    MixedModelReproducibility,
    ModelType,
    mixed_model_reproducibility,
)
from .reproducibility import (
    FilterStrategy,
    GroupMaskReport,
    MixedModelStrategy,
    NoFilter,
    PairwiseStrategy,
    ReproducibilityFilter,
    ReproducibilityOutcome,
    ReproducibilityStrategy,
    filter_reproducibility,
)

__all__ = [
    "BLAND_ALTMAN_Z",
    "AgreementLimits",
    "PairwiseAgreement",
    "limits_of_agreement",
    "pairwise_agreement",
    "MixedModelReproducibility",
    "ModelType",
    "mixed_model_reproducibility",
    "FilterStrategy",
    "GroupMaskReport",
    "MixedModelStrategy",
    "NoFilter",
    "PairwiseStrategy",
    "ReproducibilityFilter",
    "ReproducibilityOutcome",
    "ReproducibilityStrategy",
    "filter_reproducibility",
]
