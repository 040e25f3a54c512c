"""FastAPI dependency injection for authentication and pipeline components.

These dependencies are used in endpoint function signatures to inject the
authenticated user id and the components built at startup on ``app.state``.
"""

from __future__ import annotations

import uuid

from fastapi import HTTPException, Request, status

from src.meeting_tasks.core.security import user_id_from_authorization
from src.meeting_tasks.errors import Unauthorized
from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.pipeline.service import TaskExtractionPipeline


async def get_current_user_id(request: Request) -> str:
    """Resolve the requesting user's id from the bearer token.

    Raises:
        Unauthorized: If the header is missing or the token is invalid, or
            its subject is not a user UUID.
    """
    user_id = user_id_from_authorization(request.headers.get("Authorization"))
    try:
        uuid.UUID(user_id)
    except ValueError:
        raise Unauthorized("Token subject is not a user id")
    return user_id


def get_pipeline(request: Request) -> TaskExtractionPipeline:
    """Retrieve TaskExtractionPipeline from app.state, 503 if not available."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Extraction pipeline not initialized",
        )
    return pipeline


def get_meeting_repository(request: Request) -> MeetingRepository:
    """Retrieve MeetingRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "meeting_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting repository not initialized",
        )
    return repo
