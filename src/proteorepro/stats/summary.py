"""
Numeric summaries of a (normalized or filtered) matrix for QC displays.

The presentation layer draws sample-correlation heatmaps, PCA score plots
and density plots; this module only computes the numbers behind them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from proteorepro.core.errors import ConfigurationError, DegenerateInputError
from proteorepro.core.matrix import ExpressionMatrix

logger = logging.getLogger(__name__)

__all__ = [
    'PCAResult',
    'sample_correlation',
    'principal_components',
    'value_range',
]

CorrelationMethod = Literal["pearson", "spearman", "kendall"]


def sample_correlation(
    matrix: ExpressionMatrix,
    method: CorrelationMethod = "pearson",
    min_periods: int = 3,
) -> pd.DataFrame:
    """
    Sample × sample correlation over pairwise-complete features.

    Args:
        matrix: Input matrix
        method: "pearson", "spearman" or "kendall"
        min_periods: Fewest shared features for a coefficient (NaN otherwise)

    Returns:
        Symmetric DataFrame indexed by sample on both axes
    """
    if method not in ("pearson", "spearman", "kendall"):
        raise ConfigurationError(
            f"method must be 'pearson', 'spearman' or 'kendall', got '{method}'"
        )
    df = pd.DataFrame(matrix.data, index=matrix.feature_ids, columns=matrix.sample_ids)
    return df.corr(method=method, min_periods=min_periods)


@dataclass(frozen=True)
class PCAResult:
    """Principal components of the samples.

    Attributes:
        scores: Samples × components DataFrame (columns PC1, PC2, ...)
        explained_variance_ratio: Fraction of variance per component
        loadings: Features × components DataFrame
        n_features_used: Features with complete observations that entered the fit
    """

    scores: pd.DataFrame
    explained_variance_ratio: NDArray[np.float64]
    loadings: pd.DataFrame
    n_features_used: int


def principal_components(
    matrix: ExpressionMatrix,
    n_components: int = 3,
    scale: bool = True,
) -> PCAResult:
    """
    PCA of samples using the features observed in every sample.

    Args:
        matrix: Input matrix
        n_components: Requested components (capped by the data)
        scale: Standardize each feature before the fit

    Raises:
        DegenerateInputError: Fewer than 2 complete features or 2 samples
    """
    from sklearn.decomposition import PCA
    from sklearn.preprocessing import StandardScaler

    complete = ~np.any(np.isnan(matrix.data), axis=1)
    n_complete = int(complete.sum())
    if n_complete < 2 or matrix.n_samples < 2:
        raise DegenerateInputError(
            f"PCA needs at least 2 complete features and 2 samples, "
            f"got {n_complete} features and {matrix.n_samples} samples"
        )

    # PCA expects (n_samples, n_features)
    X = matrix.data[complete].T
    if scale:
        X = StandardScaler().fit_transform(X)

    n_components = min(n_components, X.shape[0], X.shape[1])
    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(X)

    labels = [f"PC{k + 1}" for k in range(n_components)]
    logger.info(
        f"PCA on {n_complete}/{matrix.n_features} complete features: "
        + ", ".join(f"{l}={r:.1%}" for l, r in zip(labels, pca.explained_variance_ratio_))
    )

    return PCAResult(
        scores=pd.DataFrame(scores, index=matrix.sample_ids, columns=labels),
        explained_variance_ratio=pca.explained_variance_ratio_,
        loadings=pd.DataFrame(
            pca.components_.T, index=matrix.feature_ids[complete], columns=labels
        ),
        n_features_used=n_complete,
    )


def value_range(matrix: ExpressionMatrix) -> float:
    """Symmetric axis limit: the largest absolute observed value (0.0 if none)."""
    if not np.any(~np.isnan(matrix.data)):
        return 0.0
    return float(np.nanmax(np.abs(matrix.data)))
