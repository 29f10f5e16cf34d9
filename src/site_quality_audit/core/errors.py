"""Error taxonomy for audit batch orchestration."""

from enum import Enum


class AuditBatchError(Exception):
    """Base class for orchestration errors."""


class ConfigurationError(AuditBatchError):
    """A required setting (e.g. the worker URL) is missing."""


class AuthError(AuditBatchError):
    """The caller's credential is missing or invalid."""


class PublisherListError(AuditBatchError):
    """The eligible-publisher list could not be read."""


class BatchCreationError(AuditBatchError):
    """The batch and its jobs could not be persisted."""


class TargetResolutionError(AuditBatchError):
    """Site names for one publisher could not be looked up."""

    def __init__(self, publisher_id: object, message: str) -> None:
        super().__init__(f"Failed to fetch site names: {message}")
        self.publisher_id = publisher_id


class BatchNotFoundError(AuditBatchError):
    """No batch with the given id."""


class JobNotFoundError(AuditBatchError):
    """No job with the given id."""


class InvalidJobTransitionError(AuditBatchError):
    """A job update would move its status backwards."""


class IncompleteJobResultError(InvalidJobTransitionError):
    """A terminal job update lacks its score or error message."""


class ErrorKind(str, Enum):
    """How an error is surfaced to the caller."""

    CONFIGURATION = "configuration"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID = "invalid"
    COORDINATOR_FAULT = "coordinator_fault"


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception escaping the coordinator to an error kind.

    Per-target failures never reach here; anything not in the taxonomy
    is a coordinator fault.
    """
    if isinstance(exc, ConfigurationError):
        return ErrorKind.CONFIGURATION
    if isinstance(exc, AuthError):
        return ErrorKind.AUTH
    if isinstance(exc, BatchNotFoundError | JobNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, IncompleteJobResultError):
        return ErrorKind.INVALID
    if isinstance(exc, InvalidJobTransitionError):
        return ErrorKind.CONFLICT
    return ErrorKind.COORDINATOR_FAULT
