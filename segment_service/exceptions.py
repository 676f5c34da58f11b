"""Exceptions raised by the segment service."""


class SegmentServiceError(Exception):
    """Base class for segment service errors."""
    pass


class RuleStructureError(SegmentServiceError, ValueError):
    """Raised when a rule builder edit is rejected. The tree is left unchanged."""
    pass


class RuleEvaluationError(SegmentServiceError):
    """Raised when a rule tree cannot be evaluated (NOT group arity)."""
    pass


class RuleDeserializationError(SegmentServiceError, ValueError):
    """Raised when a stored rule document cannot be loaded."""
    pass


class PermissionDeniedError(SegmentServiceError):
    """Raised when the session context lacks a required permission."""
    pass


class SegmentNotFoundError(SegmentServiceError, LookupError):
    """Raised when a segment does not exist for the organization."""
    pass


class RuleValidationError(SegmentServiceError, ValueError):
    """Raised when an incomplete or invalid rule is about to be saved."""

    def __init__(self, message, issues=None):
        super().__init__(message)
        self.issues = list(issues or [])


class WorkerNotFoundError(SegmentServiceError, LookupError):
    """Raised when a worker does not exist for the organization."""
    pass
