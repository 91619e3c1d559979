"""
Tests for ExpressionMatrix and GroupAssignment.
"""

import numpy as np
import pandas as pd
import pytest

from proteorepro.core.errors import ConfigurationError
from proteorepro.core.groups import GroupAssignment
from proteorepro.core.matrix import ExpressionMatrix
from proteorepro.core.quality import QualityFlag


class TestFromDataFrame:

    def test_missing_value_tokens_become_nan(self):
        df = pd.DataFrame({
            'id': ['P1', 'P2', 'P3', 'P4'],
            'S1': ['0.5', 'NA', '#NUM!', ' #DIV/0! '],
            'S2': [1.0, -0.2, 0.3, 0.0],
        })
        matrix = ExpressionMatrix.from_dataframe(df, id_column='id')

        assert matrix.shape == (4, 2)
        assert matrix.data[0, 0] == 0.5
        assert np.isnan(matrix.data[1:, 0]).all()
        # zeros stay zeros
        assert matrix.data[3, 1] == 0.0

    def test_missing_values_are_flagged(self):
        df = pd.DataFrame({'id': ['P1', 'P2'], 'S1': ['1.0', 'NA'], 'S2': [1.0, 2.0]})
        matrix = ExpressionMatrix.from_dataframe(df, id_column='id')

        assert matrix.quality_flags[1, 0] == QualityFlag.MISSING_ORIGINAL
        assert matrix.quality_flags[0, 0] == QualityFlag.ORIGINAL

    @pytest.mark.parametrize("dtype", [object, "string"])
    def test_tokens_in_text_dtypes(self, dtype):
        df = pd.DataFrame({
            'id': ['P1', 'P2', 'P3'],
            'S1': pd.Series(['0.5', 'NA', None], dtype=dtype),
            'S2': [1.0, 2.0, 3.0],
        })
        matrix = ExpressionMatrix.from_dataframe(df, id_column='id')

        assert matrix.data[0, 0] == 0.5
        assert np.isnan(matrix.data[1:, 0]).all()

    def test_non_numeric_cell_is_rejected(self):
        df = pd.DataFrame({'id': ['P1', 'P2'], 'S1': ['1.0', 'oops'], 'S2': [1.0, 2.0]})

        with pytest.raises(ConfigurationError) as exc_info:
            ExpressionMatrix.from_dataframe(df, id_column='id')

        assert exc_info.value.column == 'S1'
        assert exc_info.value.feature == 'P2'

    def test_missing_id_column(self):
        df = pd.DataFrame({'name': ['P1'], 'S1': [1.0]})
        with pytest.raises(ConfigurationError, match="Identifier column 'id'"):
            ExpressionMatrix.from_dataframe(df, id_column='id')

    def test_duplicated_ids(self):
        df = pd.DataFrame({'id': ['P1', 'P1'], 'S1': [1.0, 2.0]})
        with pytest.raises(ConfigurationError, match="duplicated"):
            ExpressionMatrix.from_dataframe(df, id_column='id')

    def test_id_column_never_enters_data(self, pair_matrix):
        assert 'id' not in pair_matrix.sample_ids
        assert pair_matrix.data.dtype == np.float64
        assert list(pair_matrix.feature_ids[:2]) == ['P01', 'P02']


class TestMatrixOperations:

    def test_to_dataframe_puts_id_first(self, pair_matrix):
        df = pair_matrix.to_dataframe()
        assert list(df.columns) == ['id', 'A_1', 'A_2', 'B_1', 'B_2']
        assert df['id'].tolist()[0] == 'P01'

    def test_select_samples_keeps_order(self, pair_matrix):
        subset = pair_matrix.select_samples(['B_2', 'A_1'])
        assert list(subset.sample_ids) == ['B_2', 'A_1']
        np.testing.assert_array_equal(subset.data[:, 1], pair_matrix.column('A_1'))

    def test_select_unknown_sample(self, pair_matrix):
        with pytest.raises(ConfigurationError):
            pair_matrix.select_samples(['A_1', 'Z_9'])

    def test_with_values_does_not_touch_original(self, pair_matrix):
        before = pair_matrix.data.copy()
        shifted = pair_matrix.with_values(pair_matrix.data + 1.0)

        np.testing.assert_array_equal(pair_matrix.data, before)
        np.testing.assert_allclose(shifted.data, before + 1.0)
        assert shifted.feature_ids.equals(pair_matrix.feature_ids)

    def test_with_values_shape_mismatch(self, pair_matrix):
        with pytest.raises(ValueError):
            pair_matrix.with_values(np.zeros((3, 3)))

    def test_observed_counts(self, pair_matrix):
        counts = pair_matrix.observed_counts()
        assert counts['B_1'] == 9
        assert counts['A_1'] == 10

    def test_copy_is_independent(self, pair_matrix):
        clone = pair_matrix.copy()
        clone.data[0, 0] = 99.0
        assert pair_matrix.data[0, 0] != 99.0

    def test_constructor_rejects_duplicate_samples(self):
        with pytest.raises(ValueError, match="unique"):
            ExpressionMatrix(
                data=np.zeros((2, 2)),
                feature_ids=pd.Index(['P1', 'P2']),
                sample_ids=pd.Index(['S1', 'S1']),
            )


class TestGroupAssignment:

    def test_labels_in_first_appearance_order(self):
        groups = GroupAssignment({'S3': 'B', 'S1': 'A', 'S2': 'B'})
        assert groups.labels == ['B', 'A']
        assert len(groups) == 2

    def test_members_follow_matrix_order(self, pair_matrix):
        groups = GroupAssignment({'A_2': 'A', 'B_1': 'B', 'A_1': 'A', 'B_2': 'B'})
        assert groups.members('A', pair_matrix) == ['A_1', 'A_2']

    def test_validate_unlabelled_column(self, pair_matrix):
        groups = GroupAssignment({'A_1': 'A', 'A_2': 'A', 'B_1': 'B'})
        with pytest.raises(ConfigurationError) as exc_info:
            groups.validate(pair_matrix)
        assert exc_info.value.column == 'B_2'

    def test_validate_unknown_sample(self, pair_matrix, pair_groups):
        groups = GroupAssignment({**pair_groups.to_series().to_dict(), 'X_1': 'X'})
        with pytest.raises(ConfigurationError, match="not in the matrix"):
            groups.validate(pair_matrix)

    def test_from_dataframe(self):
        df = pd.DataFrame({'sample': ['S1', 'S2', 'S3'], 'group': ['A', 'A', 'B']})
        groups = GroupAssignment.from_dataframe(df)
        assert groups.group_of('S3') == 'B'
        assert groups.size('A') == 2

    def test_from_dataframe_duplicated_sample(self):
        df = pd.DataFrame({'sample': ['S1', 'S1'], 'group': ['A', 'B']})
        with pytest.raises(ConfigurationError, match="more than one group"):
            GroupAssignment.from_dataframe(df)

    def test_empty_assignment(self):
        with pytest.raises(ConfigurationError):
            GroupAssignment({})
