"""Core type definitions, errors and policy loading."""

from .errors import (
    AuditBatchError,
    AuthError,
    BatchCreationError,
    BatchNotFoundError,
    ConfigurationError,
    ErrorKind,
    IncompleteJobResultError,
    InvalidJobTransitionError,
    JobNotFoundError,
    PublisherListError,
    TargetResolutionError,
    classify_error,
)
from .types import (
    AllPublishersScope,
    AuditTarget,
    BatchPolicy,
    BatchProgress,
    BatchStatus,
    BatchSummary,
    BatchType,
    DispatchFailed,
    DispatchResult,
    JobStatus,
    JobView,
    PublisherRef,
    Queued,
    SiteListScope,
    clean_site_names,
)

__all__ = [
    "AllPublishersScope",
    "AuditBatchError",
    "AuditTarget",
    "AuthError",
    "BatchCreationError",
    "BatchNotFoundError",
    "BatchPolicy",
    "BatchProgress",
    "BatchStatus",
    "BatchSummary",
    "BatchType",
    "ConfigurationError",
    "DispatchFailed",
    "DispatchResult",
    "ErrorKind",
    "IncompleteJobResultError",
    "InvalidJobTransitionError",
    "JobNotFoundError",
    "JobStatus",
    "JobView",
    "PublisherListError",
    "PublisherRef",
    "Queued",
    "SiteListScope",
    "TargetResolutionError",
    "classify_error",
    "clean_site_names",
]
