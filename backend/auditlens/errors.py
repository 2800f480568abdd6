"""
Domain exceptions for AuditLens.

Services raise these; the HTTP layer maps them to status codes in
``auditlens.middleware.error_handling``.
"""

from typing import List, Optional, Tuple


class AnalyticsError(Exception):
    """Base class for all AuditLens domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AnalyticsError):
    """A referenced audit, company, user or permission record does not exist."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class BadParametersError(AnalyticsError):
    """
    Invalid input on an administrative or query operation.

    Carries every problem found, not just the first one, as
    ``(field, message)`` pairs.
    """

    def __init__(self, errors: List[Tuple[Optional[str], str]], message: str = "Invalid parameters"):
        super().__init__(message)
        self.errors = list(errors)

    @classmethod
    def single(cls, field: Optional[str], message: str) -> "BadParametersError":
        return cls([(field, message)], message=message)


class InternalError(AnalyticsError):
    """Unexpected persistence or processing failure."""
