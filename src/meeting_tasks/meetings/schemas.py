"""Pydantic v2 schemas for meetings, tasks, and extraction runs.

Defines the data contracts shared by the repository, the pipeline stages,
and the API layer. ``ExtractedTaskCandidate`` is the structural contract a
model response must satisfy before anything is persisted.
"""

from __future__ import annotations

import datetime as dt
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictStr


# ── Enums ────────────────────────────────────────────────────────────────────


class Priority(str, Enum):
    """Task priority accepted by the task store."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class RunStatus(str, Enum):
    """Lifecycle of one extraction run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class EntryPoint(str, Enum):
    """How a run was triggered."""

    DIRECT = "direct"
    RECORDING = "recording"


class RunType(str, Enum):
    """Audit record kind."""

    DRY_RUN = "dry_run"
    LIVE = "live"


# ── Extraction Contract ──────────────────────────────────────────────────────


class ExtractedTaskCandidate(BaseModel):
    """One action item as returned by the model.

    All five keys must be present. ``task`` and ``assignee`` must be
    strings; the remaining three must be strings or null. Keys beyond
    these are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    task: StrictStr
    assignee: StrictStr
    due_date: StrictStr | None = Field(description="ISO date (YYYY-MM-DD) or null")
    priority: StrictStr | None = Field(description="High, Medium or Low")
    context: StrictStr | None = Field(description="Supporting quote or reason")


# ── Stored Entities ──────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """A meeting owned by one user."""

    id: uuid.UUID
    user_id: str
    title: str
    date: dt.date | None = None
    duration: str | None = None
    transcript: str | None = None
    external_meeting_id: str | None = None
    external_uuid: str | None = None
    created_at: dt.datetime | None = None


class MeetingCreate(BaseModel):
    """Fields for creating a platform-sourced meeting."""

    title: str
    date: dt.date | None = None
    duration: str | None = None
    transcript: str | None = None
    external_meeting_id: str | None = None
    external_uuid: str | None = None


class Task(BaseModel):
    """A persisted action item."""

    id: uuid.UUID
    user_id: str
    meeting_id: uuid.UUID
    extraction_run_id: uuid.UUID | None = None
    task: str
    assignee: str
    due_date: dt.date | None = None
    priority: Priority = Priority.MEDIUM
    context: str | None = None
    completed: bool = False
    created_at: dt.datetime | None = None


class TaskCreate(BaseModel):
    """A task row ready for insertion (defaults already applied)."""

    task: str
    assignee: str
    due_date: dt.date | None = None
    priority: Priority = Priority.MEDIUM
    context: str | None = None
    completed: bool = False


class RecordingFile(BaseModel):
    """One file of a platform recording."""

    model_config = ConfigDict(extra="allow")

    file_type: str | None = None
    file_extension: str | None = None
    download_url: str | None = None


class ZoomMeeting(BaseModel):
    """A synced Zoom recording and its link to a Meeting."""

    id: uuid.UUID
    user_id: str
    zoom_meeting_id: str
    zoom_uuid: str | None = None
    topic: str | None = None
    start_time: dt.datetime | None = None
    duration: int | None = None
    recording_files: list[RecordingFile] = Field(default_factory=list)
    transcript_file_url: str | None = None
    meeting_id: uuid.UUID | None = None


class ZoomMeetingCreate(BaseModel):
    """Fields for registering a recording found during sync."""

    zoom_meeting_id: str
    zoom_uuid: str | None = None
    topic: str | None = None
    start_time: dt.datetime | None = None
    duration: int | None = None
    recording_files: list[RecordingFile] = Field(default_factory=list)


class ZoomToken(BaseModel):
    """A stored Zoom access credential."""

    user_id: str
    access_token: str
    refresh_token: str | None = None
    expires_at: dt.datetime


class ExtractionRun(BaseModel):
    """One extraction run and its outcome."""

    id: uuid.UUID
    user_id: str
    meeting_id: uuid.UUID
    request_id: str | None = None
    entry_point: EntryPoint
    status: RunStatus
    dry_run: bool = False
    tasks_count: int = 0
    error_code: str | None = None
    created_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None


class AuditRecord(BaseModel):
    """Failure or dry-run record kept for offline inspection."""

    id: uuid.UUID | None = None
    user_id: str | None = None
    run_type: RunType
    meeting_id: str
    transcript_sample: str = ""
    error_classification: str | None = None
    raw_output: str | None = None
    extracted_data: list[dict] | None = None
    prompt_version: str
    created_at: dt.datetime | None = None
