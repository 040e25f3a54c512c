"""Direct transcript submission endpoint.

POST /api/v1/transcripts/process -- extract tasks from a pasted transcript
and save them against one of the caller's meetings. ``dry_run`` extracts
and audit-logs without saving. ``requestId`` (or an ``Idempotency-Key``
header) makes a retried submission return the first completed result.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Header
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.meeting_tasks.api.deps import get_current_user_id, get_pipeline
from src.meeting_tasks.pipeline.service import DirectResult, TaskExtractionPipeline

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/transcripts", tags=["transcripts"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class ProcessTranscriptRequest(BaseModel):
    """Body of a direct submission; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str = Field(
        min_length=1, validation_alias=AliasChoices("meetingId", "meeting_id")
    )
    transcript: str = Field(min_length=1)
    dry_run: bool = Field(False, validation_alias=AliasChoices("dry_run", "dryRun"))
    request_id: str | None = Field(
        None,
        max_length=200,
        validation_alias=AliasChoices("requestId", "request_id"),
    )


class ProcessTranscriptResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    tasks_count: int
    extracted_tasks: list[dict]
    meeting_id: str
    run_id: str
    dry_run: bool = False
    replayed: bool = False


def _to_response(result: DirectResult) -> ProcessTranscriptResponse:
    return ProcessTranscriptResponse(
        message=result.message,
        tasks_count=result.tasks_count,
        extracted_tasks=result.extracted_tasks,
        meeting_id=result.meeting_id,
        run_id=result.run_id,
        dry_run=result.dry_run,
        replayed=result.replayed,
    )


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/process", response_model=ProcessTranscriptResponse)
async def process_transcript(
    body: ProcessTranscriptRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: TaskExtractionPipeline = Depends(get_pipeline),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=200),
) -> ProcessTranscriptResponse:
    """Extract tasks from a transcript and persist them for the meeting."""
    logger.info(
        "transcripts.process_requested",
        user_id=user_id,
        meeting_id=body.meeting_id,
        dry_run=body.dry_run,
        transcript_chars=len(body.transcript),
    )
    result = await pipeline.run_direct(
        user_id,
        body.meeting_id,
        body.transcript,
        dry_run=body.dry_run,
        request_id=body.request_id or idempotency_key,
    )
    return _to_response(result)
