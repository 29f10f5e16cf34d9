"""Database layer for batch persistence."""

from .models import AuditBatch, AuditJob, Base, Publisher, PublisherSiteReport
from .repositories import BatchRepository, PublisherRepository

__all__ = [
    "Base",
    "Publisher",
    "PublisherSiteReport",
    "AuditBatch",
    "AuditJob",
    "PublisherRepository",
    "BatchRepository",
]
