"""Task Persister: write validated candidates as Task rows, all or nothing."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field

import structlog

from src.meeting_tasks.errors import PersistenceError
from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.meetings.schemas import (
    ExtractedTaskCandidate,
    Priority,
    Task,
    TaskCreate,
)

logger = structlog.get_logger(__name__)

UNTITLED_TASK = "Untitled Task"
UNASSIGNED = "Unassigned"


@dataclass
class PersistResult:
    count: int
    tasks: list[Task] = field(default_factory=list)


def _parse_priority(value: str | None) -> Priority:
    if value:
        for priority in Priority:
            if priority.value.lower() == value.strip().lower():
                return priority
    return Priority.MEDIUM


def _parse_due_date(value: str | None) -> dt.date | None:
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value.strip())
    except ValueError:
        return None


def candidate_to_task(candidate: ExtractedTaskCandidate) -> TaskCreate:
    """Map one candidate to a Task row, applying placeholder defaults."""
    return TaskCreate(
        task=candidate.task.strip() or UNTITLED_TASK,
        assignee=candidate.assignee.strip() or UNASSIGNED,
        due_date=_parse_due_date(candidate.due_date),
        priority=_parse_priority(candidate.priority),
        context=candidate.context,
        completed=False,
    )


class TaskPersister:
    """Persists one run's task set against a meeting.

    The transcript is written first. If that fails nothing else is
    attempted; if the bulk insert fails no task rows remain.
    """

    def __init__(self, repository: MeetingRepository) -> None:
        self._repo = repository

    async def persist(
        self,
        user_id: str,
        meeting_id: str,
        transcript: str,
        candidates: list[ExtractedTaskCandidate],
        run_id: str | None = None,
    ) -> PersistResult:
        """Save the transcript, then insert every candidate in one batch.

        Raises:
            PersistenceError: If either write fails.
        """
        try:
            await self._repo.update_transcript(user_id, meeting_id, transcript)
        except Exception as e:
            logger.error(
                "persister.transcript_write_failed",
                meeting_id=meeting_id,
                error=str(e),
            )
            raise PersistenceError("Failed to save transcript to meeting") from e

        rows = [candidate_to_task(c) for c in candidates]
        if not rows:
            logger.info("persister.no_tasks", meeting_id=meeting_id)
            return PersistResult(count=0)

        try:
            tasks = await self._repo.insert_tasks(user_id, meeting_id, rows, run_id=run_id)
        except Exception as e:
            logger.error(
                "persister.bulk_insert_failed",
                meeting_id=meeting_id,
                attempted=len(rows),
                error=str(e),
            )
            raise PersistenceError("Failed to save extracted tasks") from e

        logger.info(
            "persister.tasks_saved",
            meeting_id=meeting_id,
            count=len(tasks),
        )
        return PersistResult(count=len(tasks), tasks=tasks)
