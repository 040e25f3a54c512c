"""Persistence models for the transcript-to-task pipeline.

Six SQLAlchemy models on the shared declarative Base:
- MeetingModel: Durable meeting record (user-entered or platform-sourced)
- TaskModel: Action item persisted from a validated extraction candidate
- ZoomMeetingModel: Linking record for a synced Zoom recording
- ZoomTokenModel: Per-user Zoom access credential
- ExtractionRunModel: Run-status tracking and idempotency keys
- PipelineAuditModel: Append-only failure / dry-run audit records

Every row carries ``user_id``; repositories scope all queries by it.
"""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.meeting_tasks.core.database import Base


class MeetingModel(Base):
    """A meeting owned by one user.

    Platform-sourced meetings carry the external meeting id; the
    ``(user_id, external_meeting_id)`` pair is unique so concurrent
    reconciliations converge on one row. ``transcript`` is written by the
    reconciler and the task persister.
    """

    __tablename__ = "meetings"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "external_meeting_id",
            name="uq_meetings_user_external_id",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    duration: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_meeting_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    external_uuid: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class TaskModel(Base):
    """An action item extracted from a meeting transcript."""

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    extraction_run_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True
    )
    task: Mapped[str] = mapped_column(Text, nullable=False)
    assignee: Mapped[str] = mapped_column(
        String(200), default="Unassigned", server_default=text("'Unassigned'")
    )
    due_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[str] = mapped_column(
        String(20), default="Medium", server_default=text("'Medium'")
    )
    context: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class ZoomMeetingModel(Base):
    """Zoom recording synced for a user, linked to a Meeting once reconciled.

    ``recording_files`` stores the platform's file descriptors as JSON
    (``file_type``, ``file_extension``, ``download_url``, ...).
    """

    __tablename__ = "zoom_meetings"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "zoom_meeting_id",
            name="uq_zoom_meetings_user_zoom_id",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    zoom_meeting_id: Mapped[str] = mapped_column(String(100), nullable=False)
    zoom_uuid: Mapped[str | None] = mapped_column(String(200), nullable=True)
    topic: Mapped[str | None] = mapped_column(String(500), nullable=True)
    start_time: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recording_files: Mapped[list | None] = mapped_column(JSON, nullable=True)
    transcript_file_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    meeting_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class ZoomTokenModel(Base):
    """Stored Zoom OAuth credential (one per user)."""

    __tablename__ = "zoom_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, unique=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class ExtractionRunModel(Base):
    """One extraction run: status, outcome, and optional idempotency key."""

    __tablename__ = "extraction_runs"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "request_id",
            name="uq_extraction_runs_user_request",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    meeting_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    request_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    entry_point: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="running", server_default=text("'running'")
    )
    dry_run: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    tasks_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PipelineAuditModel(Base):
    """Append-only audit record for dry runs and terminal failures.

    Written for offline inspection only; the pipeline never reads it back.
    """

    __tablename__ = "pipeline_audit_log"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    run_type: Mapped[str] = mapped_column(String(20), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(100), nullable=False)
    transcript_sample: Mapped[str] = mapped_column(Text, default="", server_default=text("''"))
    error_classification: Mapped[str | None] = mapped_column(String(50), nullable=True)
    raw_output: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_data: Mapped[list | None] = mapped_column(JSON, nullable=True)
    prompt_version: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
