"""
Statistical building blocks of the processing pipeline.

Exports:
- Column-wise normalization (Median, Quantile, Median-MAD, 2-component)
- Two-component mixture fitting
- Numeric QC summaries (sample correlation, PCA, value range)
"""

from .mixture import (
    MixtureFit,
    MixtureFitter,
    MixtureMode,
    TwoComponentEM,
    TwoComponentResult,
    estimate_mode,
    fit_two_component,
)
from .normalization import (
    NormalizationMethod,
    NormalizationResult,
    Normalizer,
    median_mad_normalization,
    median_normalization,
    normalize,
    quantile_normalization,
    two_component_normalization,
)
from .summary import (
    PCAResult,
    principal_components,
    sample_correlation,
    value_range,
)

__all__ = [
    "MixtureFit",
    "MixtureFitter",
    "MixtureMode",
    "TwoComponentEM",
    "TwoComponentResult",
    "estimate_mode",
    "fit_two_component",
    "NormalizationMethod",
    "NormalizationResult",
    "Normalizer",
    "median_normalization",
    "median_mad_normalization",
    "quantile_normalization",
    "two_component_normalization",
    "normalize",
    "PCAResult",
    "sample_correlation",
    "principal_components",
    "value_range",
]
