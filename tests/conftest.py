"""
Pytest configuration and shared fixtures.

Provides small, fully deterministic ratio matrices whose reproducibility
outcome is known in advance, plus generators for larger synthetic data.
"""

import numpy as np
import pandas as pd
import pytest

from proteorepro.core.groups import GroupAssignment
from proteorepro.core.matrix import ExpressionMatrix


BASE = np.array([-2.0, -1.5, -1.0, -0.5, 0.0, 0.3, 0.7, 1.1, 1.6, 2.2])
NOISE_1 = np.array([0.02, -0.01, 0.03, 0.0, -0.02, 0.01, -0.03, 0.02, 0.0, -0.01])
NOISE_2 = np.array([-0.01, 0.02, 0.0, -0.02, 0.01, -0.03, 0.02, 0.0, 0.01, 0.02])


def make_pair_table() -> pd.DataFrame:
    """
    10 features × 4 samples in two replicate pairs (A and B).

    Known disagreements:
        - P04 is 5 units higher in A_2 than in A_1
        - P08 is 4 units lower in B_2 than in B_1
    B_1 misses P01.
    """
    a_1 = BASE + NOISE_1
    a_2 = BASE + NOISE_2
    a_2[3] += 5.0

    b_1 = BASE + 0.5 + NOISE_2
    b_2 = BASE + 0.5 + NOISE_1
    b_2[7] -= 4.0
    b_1[0] = np.nan

    return pd.DataFrame({
        'id': [f"P{i + 1:02d}" for i in range(10)],
        'A_1': a_1,
        'A_2': a_2,
        'B_1': b_1,
        'B_2': b_2,
    })


def generate_replicate_block(
    n_features: int = 30,
    n_replicates: int = 3,
    noise_sd: float = 0.1,
    seed: int = 42,
) -> np.ndarray:
    """
    Features × replicates block with feature abundance, replicate offsets and
    small noise. Every feature is reproducible.
    """
    rng = np.random.default_rng(seed)
    abundance = rng.normal(0.0, 1.0, size=(n_features, 1))
    offsets = np.linspace(-0.1, 0.2, n_replicates)[np.newaxis, :]
    return abundance + offsets + rng.normal(0.0, noise_sd, size=(n_features, n_replicates))


def generate_bimodal_column(
    n_core: int = 900,
    n_outliers: int = 100,
    seed: int = 42,
) -> np.ndarray:
    """90% tight cluster at 0, 10% outliers at 10."""
    rng = np.random.default_rng(seed)
    return np.concatenate([
        rng.normal(0.0, 0.3, n_core),
        rng.normal(10.0, 0.3, n_outliers),
    ])


@pytest.fixture
def pair_table():
    return make_pair_table()


@pytest.fixture
def pair_matrix():
    """ExpressionMatrix of :func:`make_pair_table`."""
    return ExpressionMatrix.from_dataframe(make_pair_table(), id_column='id')


@pytest.fixture
def pair_groups():
    return GroupAssignment({'A_1': 'A', 'A_2': 'A', 'B_1': 'B', 'B_2': 'B'})


@pytest.fixture
def triplicate_matrix():
    """
    30 features × (3 replicates of C + 2 replicates of D).

    F01 is 3 units off in C_2. F06 misses C_3, F07 is only observed in C_1.
    """
    block_c = generate_replicate_block(30, 3, seed=7)
    block_c[0, 1] += 3.0
    block_c[5, 2] = np.nan
    block_c[6, 1:] = np.nan
    block_d = generate_replicate_block(30, 2, seed=8)

    data = np.hstack([block_c, block_d])
    return ExpressionMatrix(
        data=data,
        feature_ids=pd.Index([f"F{i + 1:02d}" for i in range(30)]),
        sample_ids=pd.Index(['C_1', 'C_2', 'C_3', 'D_1', 'D_2']),
    )


@pytest.fixture
def triplicate_groups():
    return GroupAssignment({'C_1': 'C', 'C_2': 'C', 'C_3': 'C', 'D_1': 'D', 'D_2': 'D'})


@pytest.fixture
def bimodal_column():
    return generate_bimodal_column()
