"""Audit-log review endpoint.

GET /api/v1/pipeline/audit-log -- the caller's most recent dry-run and
failure records, newest first. The model's raw output stays in storage;
the listing only says whether one was kept.
"""

from __future__ import annotations

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.meeting_tasks.api.deps import get_current_user_id, get_meeting_repository
from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.meetings.schemas import AuditRecord, RunType

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


class AuditLogEntry(BaseModel):
    id: uuid.UUID | None = None
    run_type: RunType
    meeting_id: str
    transcript_sample: str = ""
    error_classification: str | None = None
    has_raw_output: bool = False
    extracted_data: list[dict] | None = None
    prompt_version: str
    created_at: dt.datetime | None = None

    @classmethod
    def from_record(cls, record: AuditRecord) -> AuditLogEntry:
        return cls(
            id=record.id,
            run_type=record.run_type,
            meeting_id=record.meeting_id,
            transcript_sample=record.transcript_sample,
            error_classification=record.error_classification,
            has_raw_output=record.raw_output is not None,
            extracted_data=record.extracted_data,
            prompt_version=record.prompt_version,
            created_at=record.created_at,
        )


class AuditLogResponse(BaseModel):
    success: bool = True
    records: list[AuditLogEntry] = Field(default_factory=list)


@router.get("/audit-log", response_model=AuditLogResponse)
async def list_audit_log(
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    repo: MeetingRepository = Depends(get_meeting_repository),
) -> AuditLogResponse:
    """List recent audit records for offline review."""
    records = await repo.list_audit_records(user_id, limit=limit)
    return AuditLogResponse(records=[AuditLogEntry.from_record(r) for r in records])
