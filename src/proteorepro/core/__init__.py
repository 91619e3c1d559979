"""
Core data structures and abstractions for the processing pipeline.

1. ExpressionMatrix: feature × sample matrix with identifiers and quality flags
2. GroupAssignment: sample -> replicate group mapping
3. QualityFlag: bitwise flags for per-value provenance
4. Transform: abstract base class for immutable matrix transformations
5. Errors: ProcessingError taxonomy and the Failure value

Examples:
    >>> from proteorepro.core import ExpressionMatrix, GroupAssignment
    >>> matrix = ExpressionMatrix.from_dataframe(df, id_column='id')
    >>> groups = GroupAssignment({'S1': 'A', 'S2': 'A'})
    >>> groups.validate(matrix)
"""

from proteorepro.core.errors import (
    ConfigurationError,
    DegenerateInputError,
    Failure,
    FitFailure,
    InternalConsistencyError,
    ProcessingError,
)
from proteorepro.core.groups import GroupAssignment
from proteorepro.core.matrix import ExpressionMatrix, MISSING_VALUE_TOKENS
from proteorepro.core.quality import QualityFlag
from proteorepro.core.transform import Transform

__all__ = [
    'ExpressionMatrix',
    'MISSING_VALUE_TOKENS',
    'GroupAssignment',
    'QualityFlag',
    'Transform',
    'ProcessingError',
    'ConfigurationError',
    'FitFailure',
    'DegenerateInputError',
    'InternalConsistencyError',
    'Failure',
]
