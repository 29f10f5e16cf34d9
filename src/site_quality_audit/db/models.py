"""SQLAlchemy database models."""

from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Publisher(Base):
    """Publisher account. Owned by the admin console; read-only here."""

    __tablename__ = "publishers"
    __table_args__ = (Index("ix_publishers_created", "created_at"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    network_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # Workflow status; NULL means the publisher is not eligible for audits
    gam_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    site_reports: Mapped[list["PublisherSiteReport"]] = relationship(
        "PublisherSiteReport", back_populates="publisher"
    )


class PublisherSiteReport(Base):
    """A reporting row that observed a site for a publisher."""

    __tablename__ = "publisher_site_reports"
    __table_args__ = (Index("ix_site_reports_publisher", "publisher_id", "site_name"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    publisher_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("publishers.id"), nullable=False
    )
    site_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    report_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    publisher: Mapped["Publisher"] = relationship("Publisher", back_populates="site_reports")


class AuditBatch(Base):
    """One "audit these targets" request."""

    __tablename__ = "audit_batches"
    __table_args__ = (Index("ix_audit_batches_created", "created_at"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    publisher_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    batch_type: Mapped[str] = mapped_column(String(20), nullable=False)
    total_sites: Mapped[int] = mapped_column(nullable=False)
    # Only "pending" or the coordinator's "failed" override; the rest is derived
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    jobs: Mapped[list["AuditJob"]] = relationship("AuditJob", back_populates="batch")


class AuditJob(Base):
    """Lifecycle of one site audit within a batch."""

    __tablename__ = "audit_jobs"
    __table_args__ = (
        Index("ix_audit_jobs_batch", "batch_id", "created_at"),
        Index("ix_audit_jobs_status", "status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    batch_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("audit_batches.id"), nullable=False)
    publisher_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    site_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    dispatch_outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    batch: Mapped["AuditBatch"] = relationship("AuditBatch", back_populates="jobs")
