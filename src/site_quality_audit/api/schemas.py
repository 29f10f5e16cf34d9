"""API request/response schemas.

Wire format is camelCase; models accept snake_case names as well.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..core.types import BatchSummary, DispatchResult, JobStatus, SiteListScope, clean_site_names


class CamelModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    """Body of every error response."""

    success: bool = False
    error: str


# Trigger schemas


class PublisherAuditResult(CamelModel):
    """Outcome of dispatching one publisher's sites."""

    publisher_id: UUID
    publisher_name: str
    status: Literal["queued", "failed"]
    site_names: list[str] = Field(default_factory=list)
    error: str | None = None

    @classmethod
    def from_result(cls, result: DispatchResult) -> "PublisherAuditResult":
        return cls(
            publisher_id=result.publisher.id,
            publisher_name=result.publisher.name,
            status="queued" if result.queued else "failed",
            site_names=result.site_names,
            error=result.error,
        )


class TriggerResponse(CamelModel):
    """Summary returned by the trigger endpoints."""

    success: bool
    request_id: str
    batch_id: UUID | None
    total_publishers: int
    queued_publishers: int
    failed_publishers: int
    total_sites: int
    results: list[PublisherAuditResult]

    @classmethod
    def from_summary(cls, summary: BatchSummary) -> "TriggerResponse":
        return cls(
            success=summary.success,
            request_id=summary.request_id,
            batch_id=summary.batch_id,
            total_publishers=summary.total_publishers,
            queued_publishers=summary.queued_publishers,
            failed_publishers=summary.failed_publishers,
            total_sites=summary.total_sites,
            results=[PublisherAuditResult.from_result(r) for r in summary.results],
        )


class MultiSiteRequest(CamelModel):
    """Request to audit an explicit list of sites for one publisher."""

    publisher_id: UUID
    site_names: list[str] = Field(min_length=1, max_length=500)

    @field_validator("site_names")
    @classmethod
    def check_site_names(cls, value: list[str]) -> list[str]:
        return clean_site_names(value)

    def to_scope(self) -> SiteListScope:
        return SiteListScope(publisher_id=self.publisher_id, site_names=self.site_names)


# Worker callback schemas


class JobStatusUpdate(CamelModel):
    """Status report sent by the audit worker for one job."""

    status: JobStatus
    score: float | None = Field(default=None, ge=0)
    error_message: str | None = Field(default=None, max_length=4000)

    @model_validator(mode="after")
    def check_not_pending(self) -> "JobStatusUpdate":
        if self.status == JobStatus.PENDING:
            raise ValueError("Jobs cannot be moved back to pending")
        return self


# Health schemas


class ComponentHealth(BaseModel):
    """Individual component health."""

    status: str
    latency_ms: float | None
    message: str | None


class HealthStatus(BaseModel):
    """Health check status."""

    status: str = Field(description="Overall status: healthy, degraded, unhealthy")
    version: str
    timestamp: datetime
    checks: dict[str, ComponentHealth]
