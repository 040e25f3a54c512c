"""Unit tests for MeetingRepository transaction handling.

The session is an AsyncMock; these tests pin commit/rollback behavior,
not SQL.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.meeting_tasks.meetings.repository import MeetingRepository
from src.meeting_tasks.meetings.schemas import MeetingCreate, Priority, TaskCreate


def _repository(session: AsyncMock) -> MeetingRepository:
    async def session_factory():
        yield session

    return MeetingRepository(session_factory=session_factory)


def _session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    return session


@pytest.mark.asyncio
async def test_failed_task_insert_rolls_back_and_reraises():
    session = _session()
    session.commit.side_effect = RuntimeError("deadlock detected")
    repo = _repository(session)

    with pytest.raises(RuntimeError):
        await repo.insert_tasks(
            str(uuid.uuid4()),
            str(uuid.uuid4()),
            [TaskCreate(task="a", assignee="b"), TaskCreate(task="c", assignee="d")],
        )

    session.rollback.assert_awaited_once()
    [models] = session.add_all.call_args.args
    assert len(models) == 2
    assert models[0].priority == Priority.MEDIUM.value


@pytest.mark.asyncio
async def test_update_transcript_on_missing_meeting_raises():
    session = _session()
    session.execute.return_value = MagicMock(rowcount=0)
    repo = _repository(session)

    with pytest.raises(ValueError):
        await repo.update_transcript(str(uuid.uuid4()), str(uuid.uuid4()), "text")

    session.rollback.assert_awaited_once()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_transcript_commits():
    session = _session()
    session.execute.return_value = MagicMock(rowcount=1)
    repo = _repository(session)

    await repo.update_transcript(str(uuid.uuid4()), str(uuid.uuid4()), "text")

    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_duplicate_meeting_create_rolls_back_and_reraises():
    session = _session()
    session.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))
    repo = _repository(session)

    with pytest.raises(IntegrityError):
        await repo.create_meeting(
            str(uuid.uuid4()),
            MeetingCreate(title="Zoom Meeting", external_meeting_id="850"),
        )

    session.rollback.assert_awaited_once()
