"""Create meeting, task, Zoom linking, extraction run, and audit tables.

Revision ID: 001_initial_tables
Revises:
Create Date: 2026-10-19

Creates six tables:
- meetings: Meeting records, unique per (user_id, external_meeting_id)
- tasks: Extracted action items (FK to meetings, cascade delete)
- zoom_meetings: Synced Zoom recordings and their link to a meeting
- zoom_tokens: Per-user Zoom access credential
- extraction_runs: Run status and idempotency keys, unique per (user_id, request_id)
- pipeline_audit_log: Append-only dry-run and failure records
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # ── meetings table ───────────────────────────────────────────────────

    op.create_table(
        "meetings",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("duration", sa.String(50), nullable=True),
        sa.Column("transcript", sa.Text(), nullable=True),
        sa.Column("external_meeting_id", sa.String(100), nullable=True),
        sa.Column("external_uuid", sa.String(200), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "user_id", "external_meeting_id", name="uq_meetings_user_external_id"
        ),
    )
    op.create_index("ix_meetings_user_id", "meetings", ["user_id"])

    # ── tasks table ──────────────────────────────────────────────────────

    op.create_table(
        "tasks",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "meeting_id",
            UUID(as_uuid=True),
            sa.ForeignKey("meetings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("extraction_run_id", UUID(as_uuid=True), nullable=True),
        sa.Column("task", sa.Text(), nullable=False),
        sa.Column(
            "assignee",
            sa.String(200),
            server_default=sa.text("'Unassigned'"),
            nullable=False,
        ),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column(
            "priority",
            sa.String(20),
            server_default=sa.text("'Medium'"),
            nullable=False,
        ),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column(
            "completed",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])
    op.create_index("ix_tasks_meeting_id", "tasks", ["meeting_id"])
    op.create_index("ix_tasks_extraction_run_id", "tasks", ["extraction_run_id"])

    # ── zoom_meetings table ──────────────────────────────────────────────

    op.create_table(
        "zoom_meetings",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("zoom_meeting_id", sa.String(100), nullable=False),
        sa.Column("zoom_uuid", sa.String(200), nullable=True),
        sa.Column("topic", sa.String(500), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("recording_files", sa.JSON(), nullable=True),
        sa.Column("transcript_file_url", sa.String(2000), nullable=True),
        sa.Column("meeting_id", UUID(as_uuid=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "user_id", "zoom_meeting_id", name="uq_zoom_meetings_user_zoom_id"
        ),
    )
    op.create_index("ix_zoom_meetings_user_id", "zoom_meetings", ["user_id"])

    # ── zoom_tokens table ────────────────────────────────────────────────

    op.create_table(
        "zoom_tokens",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── extraction_runs table ────────────────────────────────────────────

    op.create_table(
        "extraction_runs",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("meeting_id", UUID(as_uuid=True), nullable=False),
        sa.Column("request_id", sa.String(200), nullable=True),
        sa.Column("entry_point", sa.String(30), nullable=False),
        sa.Column(
            "status",
            sa.String(20),
            server_default=sa.text("'running'"),
            nullable=False,
        ),
        sa.Column(
            "dry_run",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column(
            "tasks_count",
            sa.Integer(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        sa.Column("error_code", sa.String(50), nullable=True),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "user_id", "request_id", name="uq_extraction_runs_user_request"
        ),
    )
    op.create_index("ix_extraction_runs_user_id", "extraction_runs", ["user_id"])

    # ── pipeline_audit_log table ─────────────────────────────────────────

    op.create_table(
        "pipeline_audit_log",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("run_type", sa.String(20), nullable=False),
        sa.Column("meeting_id", sa.String(100), nullable=False),
        sa.Column(
            "transcript_sample",
            sa.Text(),
            server_default=sa.text("''"),
            nullable=False,
        ),
        sa.Column("error_classification", sa.String(50), nullable=True),
        sa.Column("raw_output", sa.Text(), nullable=True),
        sa.Column("extracted_data", sa.JSON(), nullable=True),
        sa.Column("prompt_version", sa.String(50), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_pipeline_audit_log_user_id", "pipeline_audit_log", ["user_id"]
    )


def downgrade() -> None:
    op.drop_table("pipeline_audit_log")
    op.drop_table("extraction_runs")
    op.drop_table("zoom_tokens")
    op.drop_table("zoom_meetings")
    op.drop_table("tasks")
    op.drop_table("meetings")
