"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.meeting_tasks.api.v1 import health, pipeline, transcripts, zoom

router = APIRouter()

router.include_router(health.router)
router.include_router(transcripts.router)
router.include_router(zoom.router)
router.include_router(pipeline.router)
