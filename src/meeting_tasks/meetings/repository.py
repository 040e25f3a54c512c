"""Meeting repository -- async CRUD for everything the extraction pipeline touches.

Provides MeetingRepository with the session_factory callable pattern.
Handles serialization between Pydantic schemas and SQLAlchemy models for
meetings, tasks, Zoom recordings and tokens, extraction runs, and audit
records.

All methods take user_id as first argument; no query ever reads another
user's rows. IDs are passed as strings and converted with ``uuid.UUID``;
a malformed id raises ``ValueError`` for the caller to classify.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.meeting_tasks.meetings.models import (
    ExtractionRunModel,
    MeetingModel,
    PipelineAuditModel,
    TaskModel,
    ZoomMeetingModel,
    ZoomTokenModel,
)
from src.meeting_tasks.meetings.schemas import (
    AuditRecord,
    EntryPoint,
    ExtractionRun,
    Meeting,
    MeetingCreate,
    Priority,
    RecordingFile,
    RunStatus,
    RunType,
    Task,
    TaskCreate,
    ZoomMeeting,
    ZoomMeetingCreate,
    ZoomToken,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=model.id,
        user_id=str(model.user_id),
        title=model.title,
        date=model.date,
        duration=model.duration,
        transcript=model.transcript,
        external_meeting_id=model.external_meeting_id,
        external_uuid=model.external_uuid,
        created_at=model.created_at,
    )


def _model_to_task(model: TaskModel) -> Task:
    """Convert TaskModel to Task schema."""
    return Task(
        id=model.id,
        user_id=str(model.user_id),
        meeting_id=model.meeting_id,
        extraction_run_id=model.extraction_run_id,
        task=model.task,
        assignee=model.assignee,
        due_date=model.due_date,
        priority=Priority(model.priority),
        context=model.context,
        completed=model.completed,
        created_at=model.created_at,
    )


def _model_to_zoom_meeting(model: ZoomMeetingModel) -> ZoomMeeting:
    """Convert ZoomMeetingModel to ZoomMeeting schema."""
    return ZoomMeeting(
        id=model.id,
        user_id=str(model.user_id),
        zoom_meeting_id=model.zoom_meeting_id,
        zoom_uuid=model.zoom_uuid,
        topic=model.topic,
        start_time=model.start_time,
        duration=model.duration,
        recording_files=[
            RecordingFile.model_validate(f) for f in (model.recording_files or [])
        ],
        transcript_file_url=model.transcript_file_url,
        meeting_id=model.meeting_id,
    )


def _model_to_run(model: ExtractionRunModel) -> ExtractionRun:
    """Convert ExtractionRunModel to ExtractionRun schema."""
    return ExtractionRun(
        id=model.id,
        user_id=str(model.user_id),
        meeting_id=model.meeting_id,
        request_id=model.request_id,
        entry_point=EntryPoint(model.entry_point),
        status=RunStatus(model.status),
        dry_run=model.dry_run,
        tasks_count=model.tasks_count,
        error_code=model.error_code,
        created_at=model.created_at,
        completed_at=model.completed_at,
    )


def _model_to_audit(model: PipelineAuditModel) -> AuditRecord:
    """Convert PipelineAuditModel to AuditRecord schema."""
    return AuditRecord(
        id=model.id,
        user_id=str(model.user_id) if model.user_id else None,
        run_type=RunType(model.run_type),
        meeting_id=model.meeting_id,
        transcript_sample=model.transcript_sample or "",
        error_classification=model.error_classification,
        raw_output=model.raw_output,
        extracted_data=model.extracted_data,
        prompt_version=model.prompt_version,
        created_at=model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async CRUD operations for meetings, tasks, and pipeline bookkeeping.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Meetings ─────────────────────────────────────────────────────────

    async def get_meeting(self, user_id: str, meeting_id: str) -> Meeting | None:
        """Get a meeting by internal ID.

        Args:
            user_id: Owning user UUID string.
            meeting_id: Meeting UUID string.

        Returns:
            Meeting if found and owned by user_id, None otherwise.
        """
        async for session in self._session_factory():
            stmt = select(MeetingModel).where(
                MeetingModel.user_id == uuid.UUID(user_id),
                MeetingModel.id == uuid.UUID(meeting_id),
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def get_meeting_by_external_id(
        self, user_id: str, external_meeting_id: str
    ) -> Meeting | None:
        """Get a platform-sourced meeting by its external meeting ID."""
        async for session in self._session_factory():
            stmt = select(MeetingModel).where(
                MeetingModel.user_id == uuid.UUID(user_id),
                MeetingModel.external_meeting_id == external_meeting_id,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def create_meeting(self, user_id: str, data: MeetingCreate) -> Meeting:
        """Create a meeting row.

        Raises:
            IntegrityError: If a meeting with the same external ID already
                exists for this user. The session is rolled back first.
        """
        async for session in self._session_factory():
            model = MeetingModel(
                user_id=uuid.UUID(user_id),
                title=data.title,
                date=data.date,
                duration=data.duration,
                transcript=data.transcript,
                external_meeting_id=data.external_meeting_id,
                external_uuid=data.external_uuid,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
            await session.refresh(model)
            return _model_to_meeting(model)

    async def update_transcript(
        self, user_id: str, meeting_id: str, transcript: str
    ) -> None:
        """Write the transcript onto an owned meeting.

        Raises:
            ValueError: If the meeting does not exist for this user.
        """
        async for session in self._session_factory():
            stmt = (
                update(MeetingModel)
                .where(
                    MeetingModel.user_id == uuid.UUID(user_id),
                    MeetingModel.id == uuid.UUID(meeting_id),
                )
                .values(transcript=transcript)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                raise ValueError(f"Meeting {meeting_id} not found")
            await session.commit()

    # ── Tasks ────────────────────────────────────────────────────────────

    async def insert_tasks(
        self,
        user_id: str,
        meeting_id: str,
        tasks: list[TaskCreate],
        run_id: str | None = None,
    ) -> list[Task]:
        """Insert a task set in one transaction.

        Either every row is committed or none is: any failure rolls the
        session back and re-raises.
        """
        async for session in self._session_factory():
            models = [
                TaskModel(
                    id=uuid.uuid4(),
                    user_id=uuid.UUID(user_id),
                    meeting_id=uuid.UUID(meeting_id),
                    extraction_run_id=uuid.UUID(run_id) if run_id else None,
                    task=t.task,
                    assignee=t.assignee,
                    due_date=t.due_date,
                    priority=t.priority.value,
                    context=t.context,
                    completed=t.completed,
                )
                for t in tasks
            ]
            try:
                session.add_all(models)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            for model in models:
                await session.refresh(model)
            return [_model_to_task(m) for m in models]

    async def get_tasks_for_run(self, user_id: str, run_id: str) -> list[Task]:
        """Get the tasks inserted by one extraction run."""
        async for session in self._session_factory():
            stmt = (
                select(TaskModel)
                .where(
                    TaskModel.user_id == uuid.UUID(user_id),
                    TaskModel.extraction_run_id == uuid.UUID(run_id),
                )
                .order_by(TaskModel.created_at)
            )
            result = await session.execute(stmt)
            return [_model_to_task(m) for m in result.scalars().all()]

    # ── Zoom Recordings ──────────────────────────────────────────────────

    async def get_zoom_meeting(
        self, user_id: str, zoom_meeting_row_id: str
    ) -> ZoomMeeting | None:
        """Get a synced recording by its row ID."""
        async for session in self._session_factory():
            stmt = select(ZoomMeetingModel).where(
                ZoomMeetingModel.user_id == uuid.UUID(user_id),
                ZoomMeetingModel.id == uuid.UUID(zoom_meeting_row_id),
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_zoom_meeting(model)

    async def zoom_meeting_exists(self, user_id: str, zoom_meeting_id: str) -> bool:
        """Check whether a recording with this platform meeting ID is already synced."""
        async for session in self._session_factory():
            stmt = select(ZoomMeetingModel.id).where(
                ZoomMeetingModel.user_id == uuid.UUID(user_id),
                ZoomMeetingModel.zoom_meeting_id == zoom_meeting_id,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def create_zoom_meeting(
        self, user_id: str, data: ZoomMeetingCreate
    ) -> ZoomMeeting:
        """Insert a linking row for a recording found during sync."""
        async for session in self._session_factory():
            model = ZoomMeetingModel(
                user_id=uuid.UUID(user_id),
                zoom_meeting_id=data.zoom_meeting_id,
                zoom_uuid=data.zoom_uuid,
                topic=data.topic,
                start_time=data.start_time,
                duration=data.duration,
                recording_files=[
                    f.model_dump(mode="json") for f in data.recording_files
                ],
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_zoom_meeting(model)

    async def set_transcript_file_url(
        self, user_id: str, zoom_meeting_row_id: str, url: str
    ) -> None:
        """Remember which recording file the transcript was downloaded from."""
        async for session in self._session_factory():
            stmt = (
                update(ZoomMeetingModel)
                .where(
                    ZoomMeetingModel.user_id == uuid.UUID(user_id),
                    ZoomMeetingModel.id == uuid.UUID(zoom_meeting_row_id),
                )
                .values(transcript_file_url=url)
            )
            await session.execute(stmt)
            await session.commit()

    async def link_zoom_meeting(
        self, user_id: str, zoom_meeting_row_id: str, meeting_id: str
    ) -> None:
        """Point a recording's linking row at its reconciled Meeting."""
        async for session in self._session_factory():
            stmt = (
                update(ZoomMeetingModel)
                .where(
                    ZoomMeetingModel.user_id == uuid.UUID(user_id),
                    ZoomMeetingModel.id == uuid.UUID(zoom_meeting_row_id),
                )
                .values(meeting_id=uuid.UUID(meeting_id))
            )
            await session.execute(stmt)
            await session.commit()

    async def get_zoom_token(self, user_id: str) -> ZoomToken | None:
        """Get the user's stored Zoom credential, if connected."""
        async for session in self._session_factory():
            stmt = select(ZoomTokenModel).where(
                ZoomTokenModel.user_id == uuid.UUID(user_id),
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return ZoomToken(
                user_id=str(model.user_id),
                access_token=model.access_token,
                refresh_token=model.refresh_token,
                expires_at=model.expires_at,
            )

    # ── Extraction Runs ──────────────────────────────────────────────────

    async def start_run(
        self,
        user_id: str,
        meeting_id: str,
        entry_point: EntryPoint,
        dry_run: bool = False,
        request_id: str | None = None,
    ) -> ExtractionRun:
        """Record a new run in ``running`` status.

        Raises:
            IntegrityError: If request_id was already used by this user.
        """
        async for session in self._session_factory():
            model = ExtractionRunModel(
                id=uuid.uuid4(),
                user_id=uuid.UUID(user_id),
                meeting_id=uuid.UUID(meeting_id),
                request_id=request_id,
                entry_point=entry_point.value,
                status=RunStatus.RUNNING.value,
                dry_run=dry_run,
                tasks_count=0,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
            await session.refresh(model)
            return _model_to_run(model)

    async def finish_run(
        self,
        user_id: str,
        run_id: str,
        status: RunStatus,
        tasks_count: int = 0,
        error_code: str | None = None,
    ) -> None:
        """Move a run to a terminal status."""
        async for session in self._session_factory():
            stmt = (
                update(ExtractionRunModel)
                .where(
                    ExtractionRunModel.user_id == uuid.UUID(user_id),
                    ExtractionRunModel.id == uuid.UUID(run_id),
                )
                .values(
                    status=status.value,
                    tasks_count=tasks_count,
                    error_code=error_code,
                    completed_at=datetime.now(timezone.utc),
                )
            )
            await session.execute(stmt)
            await session.commit()

    async def restart_run(
        self, user_id: str, run_id: str, dry_run: bool = False
    ) -> ExtractionRun:
        """Put a failed run back into ``running`` so its request id can be retried."""
        async for session in self._session_factory():
            stmt = select(ExtractionRunModel).where(
                ExtractionRunModel.user_id == uuid.UUID(user_id),
                ExtractionRunModel.id == uuid.UUID(run_id),
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                raise ValueError(f"Extraction run {run_id} not found")
            model.status = RunStatus.RUNNING.value
            model.dry_run = dry_run
            model.tasks_count = 0
            model.error_code = None
            model.completed_at = None
            await session.commit()
            await session.refresh(model)
            return _model_to_run(model)

    async def get_run_by_request_id(
        self, user_id: str, request_id: str
    ) -> ExtractionRun | None:
        """Look up a run by its caller-supplied idempotency key."""
        async for session in self._session_factory():
            stmt = select(ExtractionRunModel).where(
                ExtractionRunModel.user_id == uuid.UUID(user_id),
                ExtractionRunModel.request_id == request_id,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_run(model)

    # ── Audit Log ────────────────────────────────────────────────────────

    async def save_audit_record(self, record: AuditRecord) -> AuditRecord:
        """Append one audit record."""
        async for session in self._session_factory():
            model = PipelineAuditModel(
                user_id=uuid.UUID(record.user_id) if record.user_id else None,
                run_type=record.run_type.value,
                meeting_id=record.meeting_id,
                transcript_sample=record.transcript_sample,
                error_classification=record.error_classification,
                raw_output=record.raw_output,
                extracted_data=record.extracted_data,
                prompt_version=record.prompt_version,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_audit(model)

    async def list_audit_records(
        self, user_id: str, limit: int = 50
    ) -> list[AuditRecord]:
        """Most recent audit records for a user, newest first."""
        async for session in self._session_factory():
            stmt = (
                select(PipelineAuditModel)
                .where(PipelineAuditModel.user_id == uuid.UUID(user_id))
                .order_by(PipelineAuditModel.created_at.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [_model_to_audit(m) for m in result.scalars().all()]
