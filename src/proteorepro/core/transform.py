"""
Base transformation framework for immutable matrix operations.

Normalization and reproducibility filtering are both expressed as
transformations: pure functions from one :class:`ExpressionMatrix` to a new
one. The input is never modified, so a caller re-running the pipeline with
different parameters can keep the original matrix around and start over.

Examples:
    >>> from proteorepro.core.transform import Transform
    >>>
    >>> class Shift(Transform):
    ...     def __init__(self, offset: float = 1.0):
    ...         super().__init__(name="Shift", params={"offset": offset})
    ...         self.offset = offset
    ...
    ...     def apply(self, matrix):
    ...         return matrix.with_values(matrix.data + self.offset)
    >>>
    >>> shifted = Shift(2.0).apply(matrix)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from proteorepro.core.matrix import ExpressionMatrix

__all__ = ['Transform']


class Transform(ABC):
    """
    Abstract base class for matrix transformations.

    Attributes:
        name: Human-readable transformation name (e.g., "Normalizer")
        params: Parameters used for this transformation, kept for provenance
    """

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        self.name = name
        self.params = params

    @abstractmethod
    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        """
        Execute transformation and return a new matrix.

        Must never modify the input matrix.

        Raises:
            ProcessingError: If the transformation cannot be applied
        """
        pass

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        """
        Check preconditions before applying the transformation.

        Subclasses override and call ``super().validate()`` first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if matrix.data.size == 0:
            errors.append("Cannot process empty matrix")

        return errors

    def __repr__(self) -> str:
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"
