"""Meeting Reconciler: find-or-create the Meeting a transcript belongs to.

Explicit meeting ids are resolved strictly within the requesting user's
rows. Platform recordings converge on one Meeting per
``(user_id, external_meeting_id)``: the linking row's ``meeting_id`` is
tried first, then the external-id lookup, then a create guarded by the
storage unique constraint (a conflicting concurrent create is re-read).
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.exc import IntegrityError

from src.meeting_tasks.errors import MeetingNotFound, PersistenceError
from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.meetings.schemas import Meeting, MeetingCreate, ZoomMeeting

logger = structlog.get_logger(__name__)

FALLBACK_TITLE = "Zoom Meeting"


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def meeting_fields_from_recording(recording: ZoomMeeting, transcript: str) -> MeetingCreate:
    """Derive Meeting columns from a recording's metadata."""
    return MeetingCreate(
        title=recording.topic or FALLBACK_TITLE,
        date=recording.start_time.date() if recording.start_time else None,
        duration=f"{recording.duration} minutes" if recording.duration is not None else None,
        transcript=transcript,
        external_meeting_id=recording.zoom_meeting_id,
        external_uuid=recording.zoom_uuid,
    )


class MeetingReconciler:
    """Resolves and reconciles Meeting rows for the extraction pipeline.

    Args:
        repository: MeetingRepository (or a test double with the same interface).
    """

    def __init__(self, repository: MeetingRepository) -> None:
        self._repo = repository

    async def resolve_meeting(self, user_id: str, meeting_id: str) -> Meeting:
        """Return the caller's meeting or fail closed.

        Raises:
            MeetingNotFound: If the id is malformed, unknown, or owned by
                another user.
        """
        if not meeting_id or not is_uuid(meeting_id):
            raise MeetingNotFound(f"Malformed meeting id {meeting_id!r}")
        meeting = await self._repo.get_meeting(user_id, meeting_id)
        if meeting is None:
            raise MeetingNotFound(f"Meeting {meeting_id} not found for user")
        return meeting

    async def reconcile_recording(
        self, user_id: str, recording: ZoomMeeting, transcript: str
    ) -> str:
        """Attach ``transcript`` to the Meeting for ``recording``; return its id.

        Safe to call repeatedly for the same recording: every call after the
        first updates the row the first call created.

        Raises:
            PersistenceError: If the meeting row cannot be written.
        """
        meeting_id = await self._find_existing(user_id, recording)

        if meeting_id is None:
            meeting_id = await self._create(user_id, recording, transcript)
        else:
            await self._update_transcript(user_id, meeting_id, transcript)
            logger.info("reconciler.meeting_updated", meeting_id=meeting_id)

        if recording.meeting_id is None or str(recording.meeting_id) != meeting_id:
            await self._repo.link_zoom_meeting(user_id, str(recording.id), meeting_id)

        return meeting_id

    async def _update_transcript(self, user_id: str, meeting_id: str, transcript: str) -> None:
        try:
            await self._repo.update_transcript(user_id, meeting_id, transcript)
        except Exception as e:
            logger.error(
                "reconciler.transcript_update_failed",
                meeting_id=meeting_id,
                error=str(e),
            )
            raise PersistenceError("Failed to save transcript to meeting") from e

    async def _find_existing(self, user_id: str, recording: ZoomMeeting) -> str | None:
        if recording.meeting_id is not None:
            linked = await self._repo.get_meeting(user_id, str(recording.meeting_id))
            if linked is not None:
                return str(linked.id)
            logger.warning(
                "reconciler.stale_link",
                zoom_meeting_id=recording.zoom_meeting_id,
                meeting_id=str(recording.meeting_id),
            )

        existing = await self._repo.get_meeting_by_external_id(
            user_id, recording.zoom_meeting_id
        )
        return str(existing.id) if existing is not None else None

    async def _create(self, user_id: str, recording: ZoomMeeting, transcript: str) -> str:
        data = meeting_fields_from_recording(recording, transcript)
        try:
            meeting = await self._repo.create_meeting(user_id, data)
        except IntegrityError:
            # A concurrent run created it first; converge on that row.
            existing = await self._repo.get_meeting_by_external_id(
                user_id, recording.zoom_meeting_id
            )
            if existing is None:
                raise PersistenceError("Meeting create conflicted but no row was found")
            await self._update_transcript(user_id, str(existing.id), transcript)
            logger.info(
                "reconciler.create_conflict_resolved",
                meeting_id=str(existing.id),
                zoom_meeting_id=recording.zoom_meeting_id,
            )
            return str(existing.id)

        logger.info(
            "reconciler.meeting_created",
            meeting_id=str(meeting.id),
            zoom_meeting_id=recording.zoom_meeting_id,
        )
        return str(meeting.id)
