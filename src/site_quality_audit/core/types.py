"""Type definitions for the audit batch system."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

PRIMARY_SITE_NAME = "primary"


class BatchStatus(str, Enum):
    """Lifecycle of an audit batch."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)


class JobStatus(str, Enum):
    """Lifecycle of a single site audit job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        """Position in the one-directional lifecycle."""
        return 2 if self.is_terminal else _JOB_RANKS[self]


_JOB_RANKS = {JobStatus.PENDING: 0, JobStatus.IN_PROGRESS: 1}


class BatchType(str, Enum):
    """What kind of request created the batch."""

    ALL_PUBLISHERS = "all_publishers"
    MULTI_SITE = "multi_site"


class AuditTarget(BaseModel):
    """One (publisher, site) pair that will receive an audit."""

    model_config = ConfigDict(frozen=True)

    publisher_id: UUID
    site_name: str


class PublisherRef(BaseModel):
    """Minimal view of a publisher eligible for audits."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    domain: str | None = None


class PublisherTargets(BaseModel):
    """All targets of one publisher, dispatched to the worker as one request."""

    model_config = ConfigDict(frozen=True)

    publisher: PublisherRef
    targets: tuple[AuditTarget, ...]
    job_ids: tuple[UUID, ...] = ()

    @property
    def site_names(self) -> list[str]:
        return [t.site_name for t in self.targets]


# Batch scopes


def clean_site_names(value: list[str]) -> list[str]:
    """Strip names and drop blanks and duplicates, keeping request order."""
    cleaned = list(dict.fromkeys(name.strip() for name in value if name and name.strip()))
    if not cleaned:
        raise ValueError("site_names must contain at least one non-blank name")
    return cleaned


class AllPublishersScope(BaseModel):
    """Audit every eligible publisher."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["all_publishers"] = "all_publishers"


class SiteListScope(BaseModel):
    """Audit an explicit list of sites for one publisher."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["site_list"] = "site_list"
    publisher_id: UUID
    site_names: list[str] = Field(min_length=1)

    @field_validator("site_names")
    @classmethod
    def check_site_names(cls, value: list[str]) -> list[str]:
        return clean_site_names(value)


BatchScope = Annotated[AllPublishersScope | SiteListScope, Field(discriminator="kind")]


# Dispatch outcomes


class Queued(BaseModel):
    """The worker accepted the request for asynchronous processing."""

    model_config = ConfigDict(frozen=True)

    outcome: Literal["queued"] = "queued"


class DispatchFailed(BaseModel):
    """The request never reached the worker or was rejected by it."""

    model_config = ConfigDict(frozen=True)

    outcome: Literal["dispatch_failed"] = "dispatch_failed"
    reason: str
    status_code: int | None = None


DispatchOutcome = Annotated[Queued | DispatchFailed, Field(discriminator="outcome")]


class DispatchResult(BaseModel):
    """Per-publisher outcome of a trigger call."""

    model_config = ConfigDict(frozen=True)

    publisher: PublisherRef
    site_names: list[str] = Field(default_factory=list)
    result: DispatchOutcome

    @property
    def queued(self) -> bool:
        return isinstance(self.result, Queued)

    @property
    def error(self) -> str | None:
        if isinstance(self.result, DispatchFailed):
            return self.result.reason
        return None


class BatchSummary(BaseModel):
    """Immutable result of one trigger call."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    batch_id: UUID | None
    success: bool
    total_publishers: int
    queued_publishers: int
    failed_publishers: int
    total_sites: int
    results: list[DispatchResult]

    @classmethod
    def from_results(
        cls,
        request_id: str,
        batch_id: UUID | None,
        results: list[DispatchResult],
        total_sites: int,
    ) -> "BatchSummary":
        """Fold dispatch results into a summary."""
        queued = sum(1 for r in results if r.queued)
        return cls(
            request_id=request_id,
            batch_id=batch_id,
            success=queued > 0,
            total_publishers=len(results),
            queued_publishers=queued,
            failed_publishers=len(results) - queued,
            total_sites=total_sites,
            results=list(results),
        )


# Read models


class BatchProgress(BaseModel):
    """Aggregate snapshot of a batch, derived from its jobs."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    batch_id: UUID
    batch_type: BatchType
    publisher_id: UUID | None = None
    total_sites: int
    queued_sites: int
    completed_sites: int
    failed_sites: int
    status: BatchStatus
    created_at: datetime
    completed_at: datetime | None = None

    @property
    def finished_sites(self) -> int:
        return self.completed_sites + self.failed_sites


class JobView(BaseModel):
    """Read-only view of one job."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    job_id: UUID
    batch_id: UUID
    publisher_id: UUID
    site_name: str
    status: JobStatus
    dispatch_outcome: Literal["queued", "dispatch_failed"] | None = None
    score: float | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class ProgressSnapshot(BaseModel):
    """One poll cycle's view of a batch."""

    model_config = ConfigDict(frozen=True)

    attempt: int
    batch: BatchProgress
    jobs: list[JobView]

    @property
    def terminal(self) -> bool:
        return self.batch.status.is_terminal


class PollOutcome(BaseModel):
    """How a polling session ended."""

    model_config = ConfigDict(frozen=True)

    state: Literal["terminal", "exhausted"]
    attempts: int
    last: ProgressSnapshot | None = None


def derive_batch_status(
    total: int, completed: int, failed: int, stored: BatchStatus | None = None
) -> BatchStatus:
    """Derive a batch's status from its job counts.

    A stored ``failed`` status is the coordinator's override for a batch
    where nothing could be dispatched and always wins. Otherwise the
    batch is ``pending`` until a job finishes, ``in_progress`` while some
    are finished and ``completed`` once all are, however many failed.
    """
    if stored == BatchStatus.FAILED:
        return BatchStatus.FAILED
    finished = completed + failed
    if total == 0 or finished == 0:
        return BatchStatus.PENDING
    if finished < total:
        return BatchStatus.IN_PROGRESS
    return BatchStatus.COMPLETED


# Configuration models


class DispatchPolicy(BaseModel):
    """Throttling applied between consecutive worker requests."""

    min_delay_ms: int = Field(default=2000, ge=0, description="Lower bound of the delay window")
    max_delay_ms: int = Field(default=5000, ge=0, description="Upper bound of the delay window")
    timeout_seconds: float = Field(default=120.0, gt=0, description="Per-request network timeout")

    @model_validator(mode="after")
    def check_window(self) -> "DispatchPolicy":
        if self.min_delay_ms > self.max_delay_ms:
            raise ValueError("min_delay_ms must not exceed max_delay_ms")
        return self


class PollPolicy(BaseModel):
    """Bounded wait used when watching a batch."""

    interval_ms: int = Field(default=2000, ge=0, description="Pause between poll cycles")
    max_attempts: int = Field(default=60, ge=1, description="Reads before giving up")


class BatchPolicy(BaseModel):
    """Complete batch orchestration policy."""

    dispatch: DispatchPolicy = Field(default_factory=DispatchPolicy)
    poll: PollPolicy = Field(default_factory=PollPolicy)
