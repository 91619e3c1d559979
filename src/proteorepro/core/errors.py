"""
Error taxonomy and failure values for the processing core.

Functions inside the core raise one of the ``ProcessingError`` subclasses.
The public entry points (``normalize``, ``filter_reproducibility`` and
``AnalysisPipeline.run``) catch them and hand back a :class:`Failure` so a
presentation layer can show which column or feature caused the problem
without unwinding through its own call stack.

Examples:
    >>> from proteorepro.core.errors import FitFailure, Failure
    >>> try:
    ...     raise FitFailure("No_success", column="S1")
    ... except FitFailure as exc:
    ...     failure = Failure.from_error(exc)
    >>> failure.kind
    'fit_failure'
    >>> failure.column
    'S1'
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    'ProcessingError',
    'ConfigurationError',
    'FitFailure',
    'DegenerateInputError',
    'InternalConsistencyError',
    'Failure',
]


class ProcessingError(ValueError):
    """Base class for all errors raised by the processing core."""

    kind = "processing_error"

    def __init__(
        self,
        message: str,
        column: str | None = None,
        feature: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.column = column
        self.feature = feature


class ConfigurationError(ProcessingError):
    """Unknown method, missing column, or incomplete group assignment."""

    kind = "configuration_error"


class FitFailure(ProcessingError):
    """Two-component mixture fit did not converge or degenerated."""

    kind = "fit_failure"


class DegenerateInputError(ProcessingError):
    """Input cannot support the requested estimate (e.g. zero MAD)."""

    kind = "degenerate_input"


class InternalConsistencyError(ProcessingError):
    """An estimator returned output that does not align with the matrix."""

    kind = "internal_consistency"


@dataclass(frozen=True)
class Failure:
    """Explicit failure value returned by the public entry points.

    Attributes:
        kind: Error category (``ProcessingError.kind`` of the source error)
        message: Human-readable description
        column: Offending sample column, when one is known
        feature: Offending feature identifier, when one is known
        stage: Pipeline stage that failed ("normalization", "reproducibility", ...)
    """

    kind: str
    message: str
    column: str | None = None
    feature: str | None = None
    stage: str | None = None

    @classmethod
    def from_error(cls, error: ProcessingError, stage: str | None = None) -> Failure:
        return cls(
            kind=error.kind,
            message=error.message,
            column=error.column,
            feature=error.feature,
            stage=stage,
        )

    def __str__(self) -> str:
        where = []
        if self.column is not None:
            where.append(f"column '{self.column}'")
        if self.feature is not None:
            where.append(f"feature '{self.feature}'")
        location = f" ({', '.join(where)})" if where else ""
        prefix = f"[{self.stage}] " if self.stage else ""
        return f"{prefix}{self.kind}: {self.message}{location}"
