"""
Error taxonomy for the reporting pipeline.

Every stage fails fast: the first error aborts the run and no partial
output is produced. Each error carries the stage that raised it and, where
one is involved, the offending column.
"""

from typing import Optional


class PipelineError(Exception):
    """Base error for all pipeline failures."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        column: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.column = column

    def __str__(self) -> str:
        prefix = f"[{self.stage}] " if self.stage else ""
        suffix = f" (column: {self.column!r})" if self.column is not None else ""
        return f"{prefix}{self.message}{suffix}"


class RetrievalError(PipelineError):
    """Resource unreachable, timed out, non-200, or not a readable CSV."""


class FormatError(PipelineError):
    """Schema or date-pattern mismatch."""


class ValidationError(PipelineError):
    """Invalid configuration or data for the requested operation."""


class CollinearityError(ValidationError):
    """Design matrix is rank deficient; names the first redundant column."""
