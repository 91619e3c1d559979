"""
Tests for limits of agreement between replicate pairs.
"""

import numpy as np
import pytest

from proteorepro.core.errors import DegenerateInputError
from proteorepro.quality.agreement import (
    BLAND_ALTMAN_Z,
    limits_of_agreement,
    pairwise_agreement,
)


def test_default_multiplier_is_999_quantile():
    from scipy.stats import norm

    assert BLAND_ALTMAN_Z == pytest.approx(norm.ppf(0.9995), abs=1e-6)


def test_flagged_set_matches_definition():
    rng = np.random.default_rng(5)
    a = rng.normal(size=200)
    b = a + rng.normal(0.1, 0.3, size=200)
    b[[7, 42, 150]] += [2.5, -3.0, 4.0]

    z = 2.0
    result = pairwise_agreement(a, b, z_multiplier=z)

    d = a - b
    lower = d.mean() - z * d.std(ddof=1)
    upper = d.mean() + z * d.std(ddof=1)
    expected = np.flatnonzero((d < lower) | (d > upper))

    np.testing.assert_array_equal(np.flatnonzero(result.flagged), expected)
    assert {7, 42, 150} <= set(expected)
    assert result.limits.lower == pytest.approx(lower)
    assert result.limits.upper == pytest.approx(upper)


def test_identical_columns_flag_nothing():
    a = np.linspace(-3, 3, 25)
    result = pairwise_agreement(a, a.copy())

    assert result.n_flagged == 0
    assert result.limits.sd_difference == 0.0
    assert result.limits.mean_difference == 0.0


def test_missing_member_is_never_flagged():
    a = np.array([0.0, 0.1, -0.1, 0.05, np.nan, 0.0, 0.02, -0.03])
    b = np.array([0.0, 0.0, 0.0, 0.0, 50.0, 0.01, 0.0, np.nan])

    result = pairwise_agreement(a, b, z_multiplier=1.0)

    assert result.limits.n_pairs == 6
    assert not result.flagged[4]
    assert not result.flagged[7]
    assert np.isnan(result.differences[4])


def test_pair_table_disagreements(pair_matrix):
    result = pairwise_agreement(pair_matrix.column('A_1'), pair_matrix.column('A_2'), 2.0)
    assert np.flatnonzero(result.flagged).tolist() == [3]

    result = pairwise_agreement(pair_matrix.column('B_1'), pair_matrix.column('B_2'), 2.0)
    assert np.flatnonzero(result.flagged).tolist() == [7]


@pytest.mark.parametrize("a, b", [
    (np.array([1.0, np.nan, 3.0]), np.array([np.nan, 2.0, np.nan])),
    (np.array([1.0, 2.0]), np.array([np.nan, 2.5])),
    (np.array([]), np.array([])),
])
def test_fewer_than_two_pairs(a, b):
    with pytest.raises(DegenerateInputError, match="at least 2 paired"):
        limits_of_agreement(a, b)


def test_length_mismatch():
    with pytest.raises(ValueError):
        limits_of_agreement(np.zeros(3), np.zeros(4))
