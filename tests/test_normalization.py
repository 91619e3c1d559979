"""
Tests for column-wise normalization methods.
"""

import numpy as np
import pandas as pd
import pytest
from scipy.stats import median_abs_deviation

from proteorepro.core.errors import DegenerateInputError, FitFailure
from proteorepro.core.matrix import ExpressionMatrix
from proteorepro.core.quality import QualityFlag
from proteorepro.stats.mixture import MixtureFit
from proteorepro.stats.normalization import (
    NormalizationMethod,
    Normalizer,
    median_mad_normalization,
    normalize,
    quantile_normalization,
)


# ── Fixtures ────────────────────────────────────────────────────────────


def _matrix(data, samples=None):
    data = np.asarray(data, dtype=np.float64)
    if samples is None:
        samples = [f"S{j + 1}" for j in range(data.shape[1])]
    return ExpressionMatrix(
        data=data,
        feature_ids=pd.Index([f"P{i}" for i in range(data.shape[0])]),
        sample_ids=pd.Index(samples),
    )


@pytest.fixture
def random_matrix():
    rng = np.random.default_rng(3)
    data = rng.normal(0.0, 1.0, size=(50, 4)) * [1.0, 2.0, 0.5, 1.5] + [0.0, 1.0, -2.0, 3.0]
    data[4, 1] = np.nan
    data[10, 3] = np.nan
    return _matrix(data)


class FixedFitter:
    """Deterministic stand-in for the EM fitter.

    Component 0 is centered at ``location`` with ``scale``; values above
    ``split`` belong to component 1. Columns whose maximum exceeds
    ``fail_above`` cannot be fitted.
    """

    def __init__(self, location=0.0, scale=1.0, split=5.0, fail_above=np.inf):
        self.location = location
        self.scale = scale
        self.split = split
        self.fail_above = fail_above

    def fit(self, values):
        x = values[np.isfinite(values)]
        if x.max() > self.fail_above:
            raise FitFailure("No_success: stub refuses this column")
        second = (x > self.split).astype(float)
        resp = np.column_stack([1.0 - second, second])
        return MixtureFit(
            means=np.array([self.location, 10.0]),
            sigmas=np.array([self.scale, 1.0]),
            weights=np.array([0.8, 0.2]),
            responsibilities=resp,
            log_likelihood=0.0,
            n_iter=1,
            converged=True,
            mode="unimodal",
            anchor=self.location,
        )


# ── Median ──────────────────────────────────────────────────────────────


class TestMedian:

    def test_column_medians_are_zero(self, random_matrix):
        result = normalize(random_matrix, "Median")
        assert result.success
        np.testing.assert_allclose(np.nanmedian(result.matrix.data, axis=0), 0.0, atol=1e-12)

    def test_idempotent(self, random_matrix):
        once = normalize(random_matrix, "Median").matrix
        twice = normalize(once, "Median").matrix
        np.testing.assert_allclose(twice.data, once.data, equal_nan=True)

    def test_missing_stays_missing(self, random_matrix):
        result = normalize(random_matrix, NormalizationMethod.MEDIAN)
        assert np.isnan(result.matrix.data[4, 1])
        assert np.isnan(result.matrix.data[10, 3])
        assert np.sum(np.isnan(result.matrix.data)) == 2

    def test_input_not_mutated(self, random_matrix):
        before = random_matrix.data.copy()
        normalize(random_matrix, "Median")
        np.testing.assert_array_equal(random_matrix.data, before)

    def test_identifiers_preserved(self, pair_matrix):
        result = normalize(pair_matrix, "Median")
        assert result.matrix.feature_ids.equals(pair_matrix.feature_ids)
        assert result.matrix.sample_ids.equals(pair_matrix.sample_ids)
        assert result.matrix.id_column == 'id'

    def test_empty_column_fails(self):
        matrix = _matrix([[1.0, np.nan], [2.0, np.nan]])
        result = normalize(matrix, "Median")
        assert not result.success
        assert result.failure.kind == "degenerate_input"
        assert result.failure.column == "S2"


# ── Median-MAD ──────────────────────────────────────────────────────────


class TestMedianMad:

    def test_median_zero_mad_one(self, random_matrix):
        result = normalize(random_matrix, "Median-MAD")
        data = result.matrix.data

        np.testing.assert_allclose(np.nanmedian(data, axis=0), 0.0, atol=1e-12)
        mads = median_abs_deviation(data, axis=0, scale='normal', nan_policy='omit')
        np.testing.assert_allclose(mads, 1.0, rtol=1e-10)

    def test_zero_mad_raises(self):
        matrix = _matrix([[1.0, 0.1], [1.0, 0.5], [1.0, 0.9], [1.0, 2.0], [2.0, 3.0]])
        with pytest.raises(DegenerateInputError) as exc_info:
            median_mad_normalization(matrix)
        assert exc_info.value.column == "S1"

    def test_zero_mad_is_reported_as_failure(self):
        matrix = _matrix([[1.0, 0.1], [1.0, 0.5], [1.0, 0.9], [1.0, 2.0], [2.0, 3.0]])
        result = normalize(matrix, "Median-MAD")
        assert result.matrix is None
        assert result.failure.kind == "degenerate_input"
        assert "S1" in str(result.failure)


# ── Quantile ────────────────────────────────────────────────────────────


class TestQuantile:

    def test_complete_columns_share_sorted_values(self):
        rng = np.random.default_rng(11)
        matrix = _matrix(rng.normal(size=(40, 3)) * [1.0, 3.0, 0.2] + [5.0, -1.0, 0.0])

        data = quantile_normalization(matrix).matrix.data
        sorted_cols = np.sort(data, axis=0)

        np.testing.assert_allclose(sorted_cols[:, 0], sorted_cols[:, 1], atol=1e-10)
        np.testing.assert_allclose(sorted_cols[:, 0], sorted_cols[:, 2], atol=1e-10)

    def test_rank_order_preserved(self, random_matrix):
        data = quantile_normalization(random_matrix).matrix.data
        for j in range(random_matrix.n_samples):
            observed = ~np.isnan(random_matrix.data[:, j])
            np.testing.assert_array_equal(
                np.argsort(random_matrix.data[observed, j]),
                np.argsort(data[observed, j]),
            )

    def test_nan_cells_stay_nan(self, random_matrix):
        data = normalize(random_matrix, "Quantile").matrix.data
        np.testing.assert_array_equal(np.isnan(data), np.isnan(random_matrix.data))

    def test_recentered(self, random_matrix):
        data = normalize(random_matrix, "Quantile").matrix.data
        np.testing.assert_allclose(np.nanmedian(data, axis=0), 0.0, atol=1e-12)

    def test_ties_share_target(self):
        matrix = _matrix([[1.0, 1.0], [1.0, 2.0], [3.0, 3.0], [4.0, 4.0]])
        data = quantile_normalization(matrix).matrix.data
        assert data[0, 0] == data[1, 0]


# ── 2-component ─────────────────────────────────────────────────────────


class TestTwoComponent:

    def test_uses_selected_component(self):
        matrix = _matrix([[0.0, 1.0], [1.0, 3.0], [2.0, 5.0], [9.0, 9.0]])
        result = normalize(matrix, "2-component", fitter=FixedFitter(location=1.0, scale=2.0))

        assert result.success
        np.testing.assert_allclose(result.matrix.data, (matrix.data - 1.0) / 2.0)
        np.testing.assert_allclose(result.location, [1.0, 1.0])
        np.testing.assert_allclose(result.scale, [2.0, 2.0])
        assert set(result.fits) == {"S1", "S2"}

    def test_secondary_component_is_flagged(self):
        matrix = _matrix([[0.0, 1.0], [1.0, 3.0], [2.0, 5.0], [9.0, 9.0]])
        result = normalize(matrix, "2-component", fitter=FixedFitter())

        flags = result.matrix.quality_flags
        secondary = (flags & QualityFlag.SECONDARY_COMPONENT) != 0
        np.testing.assert_array_equal(secondary[:, 0], [False, False, False, True])
        # value is kept
        assert result.matrix.data[3, 0] == 9.0

    def test_failure_names_column_and_returns_no_matrix(self):
        matrix = _matrix([[0.0, 1.0, 0.5], [1.0, 50.0, 0.2], [2.0, 3.0, 0.1]])
        result = normalize(matrix, "2-component", fitter=FixedFitter(fail_above=20.0))

        assert not result.success
        assert result.matrix is None
        assert result.failure.kind == "fit_failure"
        assert result.failure.column == "S2"
        assert "No_success" in result.failure.message

    def test_real_fitter_on_bimodal_column(self, bimodal_column):
        matrix = _matrix(np.column_stack([bimodal_column, bimodal_column + 1.0]))
        result = normalize(matrix, "2-component")

        assert result.success
        # the dominant cluster ends up near zero
        core = result.matrix.data[:900]
        assert abs(np.median(core[:, 0])) < 0.5
        assert abs(np.median(core[:, 1])) < 0.5


# ── Dispatch ────────────────────────────────────────────────────────────


class TestDispatch:

    def test_unknown_method_is_configuration_failure(self, random_matrix):
        result = normalize(random_matrix, "median")
        assert not result.success
        assert result.failure.kind == "configuration_error"

    def test_unknown_mixture_mode_is_configuration_failure(self, random_matrix):
        result = normalize(random_matrix, "2-component", mode="trimodal")

        assert not result.success
        assert result.matrix is None
        assert result.failure.kind == "configuration_error"
        assert "trimodal" in result.failure.message

    @pytest.mark.parametrize("method", [m.value for m in NormalizationMethod if m.value != "2-component"])
    def test_every_method_preserves_shape(self, random_matrix, method):
        result = normalize(random_matrix, method)
        assert result.method == method
        assert result.matrix.shape == random_matrix.shape

    def test_normalizer_transform(self, random_matrix):
        normalizer = Normalizer("Median-MAD")
        assert "Median-MAD" in repr(normalizer)
        assert normalizer.params == {"method": "Median-MAD"}
        assert not hasattr(normalizer, "timestamp")
        normalized = normalizer.apply(random_matrix)
        assert normalized.shape == random_matrix.shape
