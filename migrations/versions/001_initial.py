"""Create tables for the legal case pipeline.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy import inspect

# revision identifiers
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    # Lawyer registry, populated by the directory import
    if not table_exists("lawyers"):
        op.create_table(
            "lawyers",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("firm", sa.String(255), nullable=True),
            sa.Column("state", sa.String(100), nullable=True),
            sa.Column("bar_membership_number", sa.String(50), nullable=True),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_lawyers_name", "lawyers", ["name"])

    # Canonical cases, one row per slug
    if not table_exists("cases"):
        op.create_table(
            "cases",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("slug", sa.String(100), nullable=False, unique=True),
            sa.Column("title", sa.Text, nullable=False),
            sa.Column("alternative_names", postgresql.JSONB, nullable=False, server_default="[]"),
            sa.Column(
                "category",
                sa.String(50),
                nullable=False,
                comment="corruption, political, corporate, criminal, constitutional, other",
            ),
            sa.Column(
                "status",
                sa.String(50),
                nullable=False,
                comment="ongoing, concluded, appeal",
            ),
            sa.Column("court", sa.Text, nullable=False, server_default=""),
            sa.Column("judges", postgresql.JSONB, nullable=False, server_default="[]"),
            sa.Column("charges", postgresql.JSONB, nullable=False, server_default="[]"),
            sa.Column("verdict", sa.Text, nullable=True),
            sa.Column("summary", sa.Text, nullable=False, server_default=""),
            sa.Column("confidence", sa.Integer, nullable=False),
            sa.Column("base_confidence", sa.Integer, nullable=False),
            sa.Column(
                "publication_state",
                sa.String(20),
                nullable=False,
                comment="published, flagged, pending",
            ),
            sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("needs_review", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("source_document_ids", postgresql.JSONB, nullable=False, server_default="[]"),
            sa.Column("version", sa.Integer, nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_cases_publication_state", "cases", ["publication_state"])

    # Alternative name keys pointing at their canonical case
    if not table_exists("case_aliases"):
        op.create_table(
            "case_aliases",
            sa.Column("alias_key", sa.String(100), primary_key=True),
            sa.Column(
                "case_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("cases.id", ondelete="CASCADE"),
                nullable=False,
            ),
        )
        op.create_index("ix_case_aliases_case_id", "case_aliases", ["case_id"])

    if not table_exists("case_lawyers"):
        op.create_table(
            "case_lawyers",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "case_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("cases.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("position", sa.Integer, nullable=False),
            sa.Column("extracted_name", sa.Text, nullable=False),
            sa.Column(
                "role",
                sa.String(20),
                nullable=False,
                comment="prosecution, defense, judge, other",
            ),
            sa.Column("role_description", sa.Text, nullable=True),
            sa.Column("confidence", sa.Float, nullable=False, server_default="0"),
            sa.Column("lawyer_id", sa.String(64), nullable=True, comment="lawyers.id when resolved"),
            sa.Column("resolved_name", sa.Text, nullable=True),
            sa.Column("match_confidence", sa.Float, nullable=True),
            sa.Column("match_strategy", sa.String(50), nullable=True),
            sa.Column("is_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        )
        op.create_index("ix_case_lawyers_case_id", "case_lawyers", ["case_id"])
        op.create_index("ix_case_lawyers_lawyer_id", "case_lawyers", ["lawyer_id"])

    if not table_exists("case_timeline"):
        op.create_table(
            "case_timeline",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "case_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("cases.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("position", sa.Integer, nullable=False),
            sa.Column("event_date", sa.Text, nullable=False, comment="As extracted"),
            sa.Column("event_on", sa.Date, nullable=True, comment="Parsed date, if parseable"),
            sa.Column("event", sa.Text, nullable=False),
        )
        op.create_index("ix_case_timeline_case_id", "case_timeline", ["case_id"])

    if not table_exists("case_media_references"):
        op.create_table(
            "case_media_references",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "case_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("cases.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("position", sa.Integer, nullable=False),
            sa.Column("source_document_id", sa.String(64), nullable=False),
            sa.Column("source_name", sa.Text, nullable=False, server_default=""),
            sa.Column("url", sa.Text, nullable=False, server_default=""),
            sa.Column("title", sa.Text, nullable=False, server_default=""),
            sa.Column("published_at", sa.DateTime, nullable=True),
        )
        op.create_index("ix_case_media_references_case_id", "case_media_references", ["case_id"])

    # One row per crawl job run
    if not table_exists("scraping_logs"):
        op.create_table(
            "scraping_logs",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("job_type", sa.String(50), nullable=False),
            sa.Column("source_type", sa.String(20), nullable=False, comment="news, judgments, directory"),
            sa.Column(
                "status",
                sa.String(20),
                nullable=False,
                comment="running, completed, partial, failed",
            ),
            sa.Column("records_processed", sa.Integer, nullable=False, server_default="0"),
            sa.Column("records_created", sa.Integer, nullable=False, server_default="0"),
            sa.Column("records_updated", sa.Integer, nullable=False, server_default="0"),
            sa.Column("records_skipped", sa.Integer, nullable=False, server_default="0"),
            sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
            sa.Column("errors", postgresql.JSONB, nullable=False, server_default="[]"),
            sa.Column("metadata", postgresql.JSONB, nullable=False, server_default="{}"),
            sa.Column("started_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
            sa.Column("completed_at", sa.DateTime, nullable=True),
            sa.Column("duration_ms", sa.Integer, nullable=True),
        )
        op.create_index("ix_scraping_logs_started_at", "scraping_logs", ["started_at"])


def downgrade() -> None:
    op.drop_table("scraping_logs")
    op.drop_table("case_media_references")
    op.drop_table("case_timeline")
    op.drop_table("case_lawyers")
    op.drop_table("case_aliases")
    op.drop_table("cases")
    op.drop_table("lawyers")
