"""
Quality flag system for tracking per-value provenance.

Each cell of an :class:`~proteorepro.core.matrix.ExpressionMatrix` carries an
integer flag. Flags combine with ``|`` so a value can be both originally
present and later masked by the reproducibility filter, which lets reporting
answer "how many values did the filter remove?" without diffing matrices.

Examples:
    >>> import numpy as np
    >>> from proteorepro.core.quality import QualityFlag
    >>> flags = np.array([0, 2, 2, 1], dtype=int)
    >>> int(np.sum((flags & QualityFlag.NOT_REPRODUCIBLE) != 0))
    2
"""

from __future__ import annotations

from enum import IntFlag

__all__ = ['QualityFlag']


class QualityFlag(IntFlag):
    """
    Bitwise flags for per-value quality tracking.

    Attributes:
        ORIGINAL: Untouched value from the input table (0)
        MISSING_ORIGINAL: Missing (NaN or a missing-value token) in the input (1)
        NOT_REPRODUCIBLE: Masked by the reproducibility filter (2)
        SECONDARY_COMPONENT: Assigned to the non-selected mixture component
            during two-component normalization (4)
    """

    ORIGINAL = 0
    """Untouched original value."""

    MISSING_ORIGINAL = 1
    """Missing in the input table."""

    NOT_REPRODUCIBLE = 2
    """
    Set to missing because the feature disagreed across the replicates of
    its group (limits of agreement or mixed-model test).
    """

    SECONDARY_COMPONENT = 4
    """
    Value fell into the minor component of the two-component fit. The value
    itself is kept; the flag only records the assignment.
    """
