"""Recording-based extraction and recording sync endpoints.

POST /api/v1/zoom/extract-transcript -- download a synced recording's
    caption track, attach it to a meeting, and extract tasks from it.
POST /api/v1/zoom/sync -- register the caller's past Zoom meetings so
    their recordings can be extracted.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.meeting_tasks.api.deps import get_current_user_id, get_pipeline
from src.meeting_tasks.pipeline.service import TaskExtractionPipeline

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/zoom", tags=["zoom"])


class ExtractTranscriptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    zoom_meeting_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("zoomMeetingId", "zoom_meeting_id"),
    )


class ExtractTranscriptResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    meeting_id: str
    tasks_extracted: int
    dry_run: bool = False
    warning: str | None = None


class SyncResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    synced_count: int


@router.post(
    "/extract-transcript",
    response_model=ExtractTranscriptResponse,
    response_model_exclude_none=True,
)
async def extract_transcript(
    body: ExtractTranscriptRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: TaskExtractionPipeline = Depends(get_pipeline),
) -> ExtractTranscriptResponse:
    """Extract the transcript of a synced recording and run task extraction."""
    logger.info(
        "zoom.extract_requested",
        user_id=user_id,
        zoom_meeting_id=body.zoom_meeting_id,
    )
    result = await pipeline.run_recording(user_id, body.zoom_meeting_id)
    return ExtractTranscriptResponse(
        message=result.message,
        meeting_id=result.meeting_id,
        tasks_extracted=result.tasks_extracted,
        dry_run=result.dry_run,
        warning=result.warning,
    )


@router.post("/sync", response_model=SyncResponse)
async def sync_meetings(
    user_id: str = Depends(get_current_user_id),
    pipeline: TaskExtractionPipeline = Depends(get_pipeline),
) -> SyncResponse:
    """Pull the caller's past Zoom meetings into the linking table."""
    result = await pipeline.sync_recordings(user_id)
    return SyncResponse(message=result.message, synced_count=result.synced_count)
