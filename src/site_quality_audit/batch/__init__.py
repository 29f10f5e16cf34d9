"""Audit batch orchestration: resolve, dispatch, persist and watch."""

from .coordinator import BatchCoordinator
from .dispatcher import RateLimitedDispatcher
from .poller import HTTPBatchReader, ProgressPoller
from .resolver import TargetResolver
from .store import BatchStore, CreatedBatch

__all__ = [
    "BatchCoordinator",
    "BatchStore",
    "CreatedBatch",
    "HTTPBatchReader",
    "ProgressPoller",
    "RateLimitedDispatcher",
    "TargetResolver",
]
