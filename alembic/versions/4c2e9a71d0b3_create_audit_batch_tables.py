"""Create publisher, site report and audit batch tables

Revision ID: 4c2e9a71d0b3
Revises:
Create Date: 2026-10-18 09:12:40.512318

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c2e9a71d0b3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables."""
    # Publishers table (owned by the admin console)
    op.create_table(
        "publishers",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255), nullable=True),
        sa.Column("network_code", sa.String(50), nullable=True),
        sa.Column("gam_status", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_publishers_created", "publishers", ["created_at"])

    # Sites observed in reporting data
    op.create_table(
        "publisher_site_reports",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("publisher_id", sa.Uuid, sa.ForeignKey("publishers.id"), nullable=False),
        sa.Column("site_name", sa.String(255), nullable=True),
        sa.Column("report_date", sa.Date, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_site_reports_publisher", "publisher_site_reports", ["publisher_id", "site_name"]
    )

    # Audit batches table
    op.create_table(
        "audit_batches",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("publisher_id", sa.Uuid, nullable=True),
        sa.Column("batch_type", sa.String(20), nullable=False),
        sa.Column("total_sites", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("error_details", sa.JSON, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_audit_batches_created", "audit_batches", ["created_at"])

    # Audit jobs table
    op.create_table(
        "audit_jobs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("batch_id", sa.Uuid, sa.ForeignKey("audit_batches.id"), nullable=False),
        sa.Column("publisher_id", sa.Uuid, nullable=False),
        sa.Column("site_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("dispatch_outcome", sa.String(20), nullable=True),
        sa.Column("score", sa.Float, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_audit_jobs_batch", "audit_jobs", ["batch_id", "created_at"])
    op.create_index("ix_audit_jobs_status", "audit_jobs", ["status"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_audit_jobs_status", table_name="audit_jobs")
    op.drop_index("ix_audit_jobs_batch", table_name="audit_jobs")
    op.drop_table("audit_jobs")
    op.drop_index("ix_audit_batches_created", table_name="audit_batches")
    op.drop_table("audit_batches")
    op.drop_index("ix_site_reports_publisher", table_name="publisher_site_reports")
    op.drop_table("publisher_site_reports")
    op.drop_index("ix_publishers_created", table_name="publishers")
    op.drop_table("publishers")
