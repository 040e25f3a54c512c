"""Audit Logger: fire-and-forget records of dry runs and terminal failures.

``record()`` returns immediately. The write runs as a background task; if
it fails the failure is logged and dropped, so the pipeline's own result
never depends on the audit store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.meetings.schemas import AuditRecord, RunType
from src.meeting_tasks.pipeline.prompts import PROMPT_VERSION

logger = structlog.get_logger(__name__)

TRANSCRIPT_SAMPLE_CHARS = 200


@dataclass
class AuditEvent:
    run_type: RunType
    meeting_id: str
    transcript: str = ""
    error_classification: str | None = None
    raw_output: str | None = None
    extracted_data: list[dict] | None = None
    user_id: str | None = None
    prompt_version: str = PROMPT_VERSION

    def to_record(self) -> AuditRecord:
        return AuditRecord(
            user_id=self.user_id,
            run_type=self.run_type,
            meeting_id=self.meeting_id,
            transcript_sample=self.transcript[:TRANSCRIPT_SAMPLE_CHARS],
            error_classification=self.error_classification,
            raw_output=self.raw_output,
            extracted_data=self.extracted_data,
            prompt_version=self.prompt_version,
        )


class AuditLogger:
    """Schedules audit writes without blocking the caller.

    Args:
        repository: Store exposing ``save_audit_record``.
    """

    def __init__(self, repository: MeetingRepository) -> None:
        self._repo = repository
        self._pending: set[asyncio.Task] = set()

    def record(self, event: AuditEvent) -> None:
        """Queue one audit write. Never raises."""
        try:
            record = event.to_record()
            task = asyncio.get_running_loop().create_task(self._write(record))
        except Exception:
            logger.warning(
                "audit.schedule_failed",
                run_type=event.run_type.value,
                meeting_id=event.meeting_id,
                exc_info=True,
            )
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, record: AuditRecord) -> None:
        try:
            await self._repo.save_audit_record(record)
        except Exception:
            logger.warning(
                "audit.write_failed",
                run_type=record.run_type.value,
                meeting_id=record.meeting_id,
                exc_info=True,
            )
            return
        logger.info(
            "audit.recorded",
            run_type=record.run_type.value,
            meeting_id=record.meeting_id,
            error_classification=record.error_classification,
        )

    async def flush(self) -> None:
        """Wait for queued writes (shutdown hook and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
