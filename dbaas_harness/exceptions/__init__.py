"""
Custom exceptions for the DBaaS provisioning harness.

Every exception renders as ``<operation>() failed! <cause>`` when an operation
name is given, so the same text serves log assertions and human diagnosis.
"""
from typing import Any, Dict, List, Optional


class HarnessError(Exception):
    """
    Base exception for all harness errors.

    All custom exceptions should inherit from this base class.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.cause = message
        self.operation = operation
        self.message = f"{operation}() failed! {message}" if operation else message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(HarnessError):
    """
    Raised when a required input is missing or invalid.

    Never retried.
    """


class NotFoundError(HarnessError):
    """
    Raised when a requested resource is not found.

    Used for missing store records, snapshot groups, NDB entities, etc.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"{resource} '{resource_id}' not found",
            operation=operation,
            details=details or {"resource": resource, "resource_id": resource_id},
        )


class ResourceStoreError(HarnessError):
    """
    Raised when a cluster resource store call fails.

    Used for create/get/delete failures other than not-found.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status = status
        super().__init__(message=message, operation=operation, details=details)


class NotReadyError(HarnessError):
    """
    Raised by readiness polls while a resource has not reached its target state.

    Carries the last observed status so an exhausted poll reports it.
    """

    def __init__(self, resource: str, name: str, status: str, operation: Optional[str] = None):
        self.status = status
        super().__init__(
            message=f"{resource} {name} is in '{status}' status.",
            operation=operation,
            details={"resource": resource, "name": name, "status": status},
        )


class InvalidCredentialError(HarnessError):
    """Raised when a credential record cannot be read or lacks username/password."""


class CloneSpecError(HarnessError):
    """Raised when a clone record is missing a field it must carry before submission."""

    def __init__(self, missing: List[str], operation: Optional[str] = None):
        self.missing = missing
        super().__init__(
            message=f"clone is missing required fields: {', '.join(missing)}",
            operation=operation,
            details={"missing": missing},
        )


class NDBApiError(HarnessError):
    """
    Raised when an NDB API call fails.

    Used for transport errors, non-200 responses and undecodable bodies.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__(message=message, operation=operation, details=details)


class ScheduleMismatchError(HarnessError):
    """Raised when a time machine schedule differs from the requested one."""

    def __init__(self, mismatches: List[str], operation: Optional[str] = "check_schedule"):
        self.mismatches = mismatches
        super().__init__(
            message=f"Found invalid properties: {mismatches}",
            operation=operation,
            details={"mismatches": mismatches},
        )


class TemplateError(HarnessError):
    """Raised when one or more resource templates cannot be loaded."""


class ConnectivityError(HarnessError):
    """Raised when the verification workload cannot be reached through a port-forward."""


class ProvisioningError(HarnessError):
    """
    Raised when a provisioning run ends with an exhausted readiness poll.

    The per-step report of the run is attached as ``report``.
    """

    def __init__(self, message: str, report: Any = None, operation: Optional[str] = "provision"):
        self.report = report
        super().__init__(message=message, operation=operation)


# Export all exceptions
__all__ = [
    "HarnessError",
    "ConfigurationError",
    "NotFoundError",
    "ResourceStoreError",
    "NotReadyError",
    "InvalidCredentialError",
    "CloneSpecError",
    "NDBApiError",
    "ScheduleMismatchError",
    "TemplateError",
    "ConnectivityError",
    "ProvisioningError",
]
