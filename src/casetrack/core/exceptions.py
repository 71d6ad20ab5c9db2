"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries:

- Configuration errors (bad rule data, no applicable rule) are fatal and
  propagate to the caller.
- Case state and concurrency errors are recoverable and are handled per case
  by the batch evaluation service.
"""

from typing import Any, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationError(ApplicationException):
    """
    Malformed rule or settings data.

    Raised when a calendar walk exceeds its lookahead guard (for example a
    rule with no operating day) or when a rule catalog cannot be parsed.
    Not a retry candidate.
    """


class NoApplicableRuleError(DomainException):
    """No SLA rule matched a case and no system default is available."""

    def __init__(self, case_attrs: Any, details: Optional[dict] = None):
        self.case_attrs = case_attrs
        super().__init__(
            "No applicable SLA rule for case "
            f"(case_type={getattr(case_attrs, 'case_type', None)!r}, "
            f"priority={getattr(case_attrs, 'priority', None)!r}, "
            f"severity={getattr(case_attrs, 'severity', None)!r})",
            details
        )


class InvalidCaseStateError(DomainException):
    """Evaluation was requested for a case that cannot be evaluated."""

    def __init__(self, case_id: str, reason: str, details: Optional[dict] = None):
        self.case_id = case_id
        self.reason = reason
        super().__init__(
            f"Case {case_id} cannot be evaluated: {reason}",
            details or {"case_id": case_id, "reason": reason}
        )


class StaleCaseVersionError(RepositoryException):
    """The case was modified by someone else since it was read."""

    def __init__(self, case_id: str, expected_version: int, details: Optional[dict] = None):
        self.case_id = case_id
        self.expected_version = expected_version
        super().__init__(
            f"Case {case_id} changed since version {expected_version}",
            details or {"case_id": case_id, "expected_version": expected_version}
        )
