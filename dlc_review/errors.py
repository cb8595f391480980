"""
Error taxonomy for the verification pipeline.

Caller errors (InvalidInput, NotFound) propagate to the caller. Everything
raised inside a run is caught at a step boundary and recorded on the
Verification as an ErrorCode; callers only ever observe the terminal state.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Run-scoped terminal failure codes stored on Verification.error_code."""
    RETRIEVAL_FAILED = "RETRIEVAL_FAILED"
    EVALUATION_FAILED = "EVALUATION_FAILED"
    REPORT_FAILED = "REPORT_FAILED"
    TIMEOUT = "TIMEOUT"
    STALLED = "STALLED"
    CANCELLED = "CANCELLED"


class ComplianceError(Exception):
    """Base class for all pipeline errors."""


class InvalidInput(ComplianceError):
    """Caller supplied degenerate input. Never retried."""


class NotFound(ComplianceError):
    """Referenced submission or verification does not exist."""


class ModelUnavailable(ComplianceError):
    """The generative/embedding provider failed. Retried once at the call site."""


class OperationTimeout(ComplianceError):
    """An external call (model or store) exceeded its deadline."""


class ModelTimeout(OperationTimeout):
    """A model call exceeded its deadline."""


class EvaluationError(ComplianceError):
    """A single content unit could not be judged. Absorbed per unit."""

    def __init__(self, message: str, unit_id: Optional[str] = None):
        super().__init__(message)
        self.unit_id = unit_id


class ReportUnavailable(ComplianceError):
    """No determinate findings exist, so no score can be computed."""


class RunAborted(ComplianceError):
    """
    The run lost ownership of its Verification record.

    Raised when the record (or its submission) disappeared between steps, or
    when a compare-and-swap lost to a concurrent writer. Never recorded.
    """


class AccessDenied(ComplianceError):
    """Caller does not own the referenced submission."""
