"""TaskExtractionPipeline -- the two entry points wired end to end.

Direct submission:
    normalize -> resolve meeting -> extract -> persist (or audit a dry run)

Recording-based extraction:
    load recording + token -> pick caption track -> download -> normalize
    -> reconcile meeting -> delegate to direct submission

Every run is tracked in ``extraction_runs`` (running -> completed | failed).
A caller-supplied request id makes a completed run replayable instead of
re-extracting. Terminal provider and persistence failures, and every dry
run, go to the audit log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
import structlog
from sqlalchemy.exc import IntegrityError

from src.meeting_tasks.core.monitoring import record_pipeline_run
from src.meeting_tasks.errors import (
    InvalidSchema,
    IntegrationNotConnected,
    IntegrationTokenExpired,
    NoRecordingFiles,
    PersistenceError,
    PipelineError,
    PlatformError,
    RateLimited,
    RecordingNotFound,
    RequestIdReused,
    RunInProgress,
    ServiceError,
    TranscriptDownloadFailed,
    TranscriptFileMissing,
)
from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.meetings.schemas import (
    EntryPoint,
    ExtractionRun,
    RecordingFile,
    RunStatus,
    RunType,
    ZoomMeetingCreate,
    ZoomToken,
)
from src.meeting_tasks.pipeline.audit import AuditEvent, AuditLogger
from src.meeting_tasks.pipeline.extraction import ExtractionEngine
from src.meeting_tasks.pipeline.normalizer import normalize_transcript
from src.meeting_tasks.pipeline.persister import TaskPersister
from src.meeting_tasks.pipeline.reconciler import MeetingReconciler, is_uuid
from src.meeting_tasks.services.zoom import ZoomClient, find_transcript_file

logger = structlog.get_logger(__name__)

# Failures worth a post-mortem record.
AUDITED_FAILURES = (InvalidSchema, RateLimited, ServiceError, PersistenceError)


# ── Results ─────────────────────────────────────────────────────────────────


@dataclass
class DirectResult:
    run_id: str
    meeting_id: str
    tasks_count: int
    extracted_tasks: list[dict] = field(default_factory=list)
    dry_run: bool = False
    replayed: bool = False

    @property
    def message(self) -> str:
        if self.dry_run:
            return f"Dry run: extracted {self.tasks_count} tasks (not saved)"
        return f"Successfully extracted {self.tasks_count} tasks from transcript"


@dataclass
class RecordingResult:
    meeting_id: str
    tasks_extracted: int
    message: str
    warning: str | None = None
    dry_run: bool = False


@dataclass
class SyncResult:
    synced_count: int

    @property
    def message(self) -> str:
        return f"Synced {self.synced_count} meetings"


def _saved_with_warning(meeting_id: str, reason: str) -> RecordingResult:
    return RecordingResult(
        meeting_id=meeting_id,
        tasks_extracted=0,
        message="Transcript extracted successfully",
        warning=f"Transcript saved but task extraction failed: {reason}",
    )


# ── Pipeline ────────────────────────────────────────────────────────────────


class TaskExtractionPipeline:
    """Orchestrates normalizer, reconciler, engine, persister, and audit log.

    Args:
        repository: Meeting/task store, scoped by user id.
        engine: Configured ExtractionEngine.
        zoom_client: Recording platform client.
        audit: Fire-and-forget audit logger.
        force_dry_run: Treat every direct submission as a dry run.
    """

    def __init__(
        self,
        repository: MeetingRepository,
        engine: ExtractionEngine,
        zoom_client: ZoomClient,
        audit: AuditLogger,
        force_dry_run: bool = False,
    ) -> None:
        self._repo = repository
        self._engine = engine
        self._zoom = zoom_client
        self._audit = audit
        self._reconciler = MeetingReconciler(repository)
        self._persister = TaskPersister(repository)
        self._force_dry_run = force_dry_run

    # ── Entry point 1: direct transcript ─────────────────────────────────

    async def run_direct(
        self,
        user_id: str,
        meeting_id: str,
        transcript: str,
        dry_run: bool = False,
        request_id: str | None = None,
        entry_point: EntryPoint = EntryPoint.DIRECT,
    ) -> DirectResult:
        """Extract tasks from ``transcript`` and persist them against the meeting.

        Raises:
            PipelineError: Any classified terminal failure.
        """
        dry_run = dry_run or self._force_dry_run
        log = logger.bind(
            user_id=user_id,
            meeting_id=meeting_id,
            entry_point=entry_point.value,
            dry_run=dry_run,
        )

        try:
            normalized = normalize_transcript(transcript)
            meeting = await self._reconciler.resolve_meeting(user_id, meeting_id)
        except PipelineError as e:
            record_pipeline_run(entry_point.value, e.code)
            raise
        meeting_id = str(meeting.id)

        try:
            run = await self._open_run(user_id, meeting_id, entry_point, dry_run, request_id)
        except PipelineError as e:
            record_pipeline_run(entry_point.value, e.code)
            log.warning("pipeline.run_rejected", code=e.code, detail=e.detail)
            raise
        if run.status == RunStatus.COMPLETED:
            log.info("pipeline.replayed", run_id=str(run.id))
            return await self._replay(user_id, run)

        run_id = str(run.id)
        log = log.bind(run_id=run_id)
        log.info("pipeline.run_started")

        try:
            candidates = await self._engine.extract(normalized)

            if dry_run:
                extracted = [c.model_dump() for c in candidates]
                self._audit.record(
                    AuditEvent(
                        run_type=RunType.DRY_RUN,
                        meeting_id=meeting_id,
                        transcript=normalized,
                        extracted_data=extracted,
                        user_id=user_id,
                    )
                )
                await self._finish(user_id, run_id, RunStatus.COMPLETED, len(candidates))
                record_pipeline_run(entry_point.value, "dry_run")
                log.info("pipeline.dry_run_completed", tasks=len(candidates))
                return DirectResult(
                    run_id=run_id,
                    meeting_id=meeting_id,
                    tasks_count=len(candidates),
                    extracted_tasks=extracted,
                    dry_run=True,
                )

            persisted = await self._persister.persist(
                user_id, meeting_id, normalized, candidates, run_id=run_id
            )
        except PipelineError as e:
            if isinstance(e, AUDITED_FAILURES):
                self._audit.record(
                    AuditEvent(
                        run_type=RunType.DRY_RUN if dry_run else RunType.LIVE,
                        meeting_id=meeting_id,
                        transcript=normalized,
                        error_classification=e.code,
                        raw_output=getattr(e, "raw_output", None),
                        user_id=user_id,
                    )
                )
            await self._finish(user_id, run_id, RunStatus.FAILED, error_code=e.code)
            record_pipeline_run(entry_point.value, e.code)
            log.warning("pipeline.run_failed", code=e.code, detail=e.detail)
            raise
        except Exception:
            await self._finish(user_id, run_id, RunStatus.FAILED, error_code="UNEXPECTED_ERROR")
            record_pipeline_run(entry_point.value, "UNEXPECTED_ERROR")
            raise

        await self._finish(user_id, run_id, RunStatus.COMPLETED, persisted.count)
        record_pipeline_run(entry_point.value, "completed")
        log.info("pipeline.run_completed", tasks=persisted.count)
        return DirectResult(
            run_id=run_id,
            meeting_id=meeting_id,
            tasks_count=persisted.count,
            extracted_tasks=[t.model_dump(mode="json") for t in persisted.tasks],
        )

    # ── Entry point 2: platform recording ────────────────────────────────

    async def run_recording(self, user_id: str, zoom_meeting_id: str) -> RecordingResult:
        """Download a recording's caption track and run extraction on it.

        Once the transcript has been saved, a failed extraction is reported
        as a ``warning`` on a successful result.

        Raises:
            PipelineError: Failures up to and including the transcript save.
        """
        recording = None
        if is_uuid(zoom_meeting_id):
            recording = await self._repo.get_zoom_meeting(user_id, zoom_meeting_id)
        if recording is None:
            raise RecordingNotFound(f"Recording {zoom_meeting_id!r} not found for user")

        token = await self._valid_token(user_id)

        if not recording.recording_files:
            raise NoRecordingFiles()
        caption = find_transcript_file(
            [f.model_dump() for f in recording.recording_files]
        )
        if caption is None or not caption.get("download_url"):
            raise TranscriptFileMissing()

        download_url = caption["download_url"]
        try:
            raw = await self._zoom.download_file(download_url, token.access_token)
        except httpx.HTTPError as e:
            logger.error(
                "pipeline.transcript_download_failed",
                zoom_meeting_id=recording.zoom_meeting_id,
                error=str(e),
            )
            raise TranscriptDownloadFailed(str(e)) from e

        transcript = normalize_transcript(
            raw, format_hint=(caption.get("file_extension") or "vtt")
        )
        await self._repo.set_transcript_file_url(user_id, str(recording.id), download_url)
        meeting_id = await self._reconciler.reconcile_recording(user_id, recording, transcript)

        try:
            direct = await self.run_direct(
                user_id,
                meeting_id,
                transcript,
                entry_point=EntryPoint.RECORDING,
            )
        except PipelineError as e:
            logger.warning(
                "pipeline.recording_extraction_failed",
                meeting_id=meeting_id,
                code=e.code,
            )
            return _saved_with_warning(meeting_id, e.user_message)
        except Exception:
            logger.error(
                "pipeline.recording_extraction_crashed",
                meeting_id=meeting_id,
                exc_info=True,
            )
            return _saved_with_warning(meeting_id, PipelineError.user_message)

        if direct.dry_run:
            return RecordingResult(
                meeting_id=meeting_id,
                tasks_extracted=direct.tasks_count,
                message=f"Transcript extracted; dry run found {direct.tasks_count} tasks (not saved)",
                dry_run=True,
            )
        return RecordingResult(
            meeting_id=meeting_id,
            tasks_extracted=direct.tasks_count,
            message="Transcript extracted and processed successfully",
        )

    # ── Recording sync ───────────────────────────────────────────────────

    async def sync_recordings(self, user_id: str) -> SyncResult:
        """Register the user's past platform meetings as linkable recordings.

        Already-synced meetings are skipped; a meeting whose recordings
        cannot be fetched is still registered without files.
        """
        token = await self._valid_token(user_id)
        try:
            meetings = await self._zoom.list_previous_meetings(token.access_token)
        except httpx.HTTPError as e:
            logger.error("pipeline.sync_list_failed", user_id=user_id, error=str(e))
            raise PlatformError(str(e)) from e

        synced = 0
        for meeting in meetings:
            zoom_meeting_id = str(meeting.get("id", ""))
            if not zoom_meeting_id:
                continue
            try:
                if await self._repo.zoom_meeting_exists(user_id, zoom_meeting_id):
                    continue
                try:
                    files = await self._zoom.get_recording_files(
                        token.access_token, zoom_meeting_id
                    )
                except httpx.HTTPError:
                    logger.info("pipeline.sync_no_recordings", zoom_meeting_id=zoom_meeting_id)
                    files = []
                await self._repo.create_zoom_meeting(
                    user_id,
                    ZoomMeetingCreate(
                        zoom_meeting_id=zoom_meeting_id,
                        zoom_uuid=meeting.get("uuid"),
                        topic=meeting.get("topic"),
                        start_time=meeting.get("start_time"),
                        duration=meeting.get("duration"),
                        recording_files=[RecordingFile.model_validate(f) for f in files],
                    ),
                )
            except Exception:
                logger.warning(
                    "pipeline.sync_meeting_failed",
                    zoom_meeting_id=zoom_meeting_id,
                    exc_info=True,
                )
                continue
            synced += 1

        logger.info("pipeline.sync_completed", user_id=user_id, synced=synced)
        return SyncResult(synced_count=synced)

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _valid_token(self, user_id: str) -> ZoomToken:
        token = await self._repo.get_zoom_token(user_id)
        if token is None:
            raise IntegrationNotConnected()
        if token.expires_at <= datetime.now(timezone.utc):
            raise IntegrationTokenExpired()
        return token

    async def _open_run(
        self,
        user_id: str,
        meeting_id: str,
        entry_point: EntryPoint,
        dry_run: bool,
        request_id: str | None,
    ) -> ExtractionRun:
        """Start a run, or return the completed run already recorded for request_id.

        A request id is bound to the meeting and run mode it was first used
        with; reusing it for anything else is a conflict, not a replay.
        """
        if request_id:
            prior = await self._repo.get_run_by_request_id(user_id, request_id)
            if prior is not None:
                if str(prior.meeting_id) != meeting_id or prior.dry_run != dry_run:
                    raise RequestIdReused(
                        f"Request id {request_id!r} belongs to run {prior.id} "
                        f"(meeting {prior.meeting_id}, dry_run={prior.dry_run})"
                    )
                if prior.status == RunStatus.COMPLETED:
                    return prior
                if prior.status == RunStatus.RUNNING:
                    raise RunInProgress(f"Run {prior.id} is still running")
                return await self._repo.restart_run(user_id, str(prior.id), dry_run=dry_run)
        try:
            return await self._repo.start_run(
                user_id, meeting_id, entry_point, dry_run=dry_run, request_id=request_id
            )
        except IntegrityError as e:
            raise RunInProgress(f"Request id {request_id!r} already in use") from e

    async def _replay(self, user_id: str, run: ExtractionRun) -> DirectResult:
        tasks = []
        if not run.dry_run:
            tasks = await self._repo.get_tasks_for_run(user_id, str(run.id))
        return DirectResult(
            run_id=str(run.id),
            meeting_id=str(run.meeting_id),
            tasks_count=run.tasks_count,
            extracted_tasks=[t.model_dump(mode="json") for t in tasks],
            dry_run=run.dry_run,
            replayed=True,
        )

    async def _finish(
        self,
        user_id: str,
        run_id: str,
        status: RunStatus,
        tasks_count: int = 0,
        error_code: str | None = None,
    ) -> None:
        try:
            await self._repo.finish_run(
                user_id, run_id, status, tasks_count=tasks_count, error_code=error_code
            )
        except Exception:
            logger.warning(
                "pipeline.run_status_update_failed",
                run_id=run_id,
                status=status.value,
                exc_info=True,
            )
