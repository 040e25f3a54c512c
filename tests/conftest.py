"""Shared test doubles and fixtures for the extraction pipeline.

Provides:
- InMemoryMeetingRepository: dict-backed MeetingRepository with failure switches
- RecordingSleep: stand-in for asyncio.sleep that records requested delays
- ScriptedProvider: httpx.MockTransport replaying a scripted list of responses
- chat_completion(): a provider response body carrying the given content
- ZoomPlatform: httpx.MockTransport standing in for the Zoom REST API
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from src.meeting_tasks.meetings.schemas import (
    AuditRecord,
    EntryPoint,
    ExtractionRun,
    Meeting,
    MeetingCreate,
    RunStatus,
    Task,
    TaskCreate,
    ZoomMeeting,
    ZoomMeetingCreate,
    ZoomToken,
)
from src.meeting_tasks.pipeline.audit import AuditLogger
from src.meeting_tasks.pipeline.extraction import ExtractionConfig, ExtractionEngine
from src.meeting_tasks.pipeline.service import TaskExtractionPipeline
from src.meeting_tasks.services.llm import ChatCompletionClient
from src.meeting_tasks.services.zoom import ZoomClient


def _conflict(what: str) -> IntegrityError:
    return IntegrityError(f"INSERT {what}", {}, Exception("duplicate key value"))


# ── InMemoryMeetingRepository ────────────────────────────────────────────────


class InMemoryMeetingRepository:
    """In-memory test double for MeetingRepository.

    Mirrors the MeetingRepository interface using dicts for storage, including
    the (user_id, external_meeting_id) and (user_id, request_id) unique
    constraints. Flip the ``fail_*`` switches to simulate storage failures.
    """

    def __init__(self) -> None:
        self.meetings: dict[str, Meeting] = {}
        self.tasks: dict[str, Task] = {}
        self.zoom_meetings: dict[str, ZoomMeeting] = {}
        self.zoom_tokens: dict[str, ZoomToken] = {}
        self.runs: dict[str, ExtractionRun] = {}
        self.audit_records: list[AuditRecord] = []
        self.fail_update_transcript = False
        self.fail_insert_tasks = False
        self.fail_audit = False
        self.create_meeting_calls = 0

    # ── Seeding helpers ──────────────────────────────────────────────────

    def add_meeting(self, user_id: str, title: str = "Weekly Sync", **fields) -> Meeting:
        meeting = Meeting(id=uuid.uuid4(), user_id=user_id, title=title, **fields)
        self.meetings[str(meeting.id)] = meeting
        return meeting

    def add_zoom_meeting(self, user_id: str, **fields) -> ZoomMeeting:
        defaults = {
            "zoom_meeting_id": "85012345678",
            "zoom_uuid": "aBcD1234==",
            "topic": "Sprint Planning",
            "start_time": datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc),
            "duration": 45,
            "recording_files": [
                {"file_type": "MP4", "file_extension": "MP4", "download_url": "https://zoom.test/rec/video.mp4"},
                {"file_type": "TRANSCRIPT", "file_extension": "VTT", "download_url": "https://zoom.test/rec/transcript.vtt"},
            ],
        }
        defaults.update(fields)
        zoom_meeting = ZoomMeeting(id=uuid.uuid4(), user_id=user_id, **defaults)
        self.zoom_meetings[str(zoom_meeting.id)] = zoom_meeting
        return zoom_meeting

    def add_zoom_token(self, user_id: str, expires_in: timedelta = timedelta(hours=1)) -> ZoomToken:
        token = ZoomToken(
            user_id=user_id,
            access_token="zoom-access-token",
            expires_at=datetime.now(timezone.utc) + expires_in,
        )
        self.zoom_tokens[user_id] = token
        return token

    def tasks_for(self, meeting_id: str) -> list[Task]:
        return [t for t in self.tasks.values() if str(t.meeting_id) == meeting_id]

    # ── Meetings ─────────────────────────────────────────────────────────

    async def get_meeting(self, user_id: str, meeting_id: str) -> Meeting | None:
        meeting = self.meetings.get(str(uuid.UUID(meeting_id)))
        if meeting is None or meeting.user_id != user_id:
            return None
        return meeting

    async def get_meeting_by_external_id(
        self, user_id: str, external_meeting_id: str
    ) -> Meeting | None:
        for meeting in self.meetings.values():
            if meeting.user_id == user_id and meeting.external_meeting_id == external_meeting_id:
                return meeting
        return None

    async def create_meeting(self, user_id: str, data: MeetingCreate) -> Meeting:
        self.create_meeting_calls += 1
        if data.external_meeting_id and await self.get_meeting_by_external_id(
            user_id, data.external_meeting_id
        ):
            raise _conflict("meetings")
        meeting = Meeting(id=uuid.uuid4(), user_id=user_id, **data.model_dump())
        self.meetings[str(meeting.id)] = meeting
        return meeting

    async def update_transcript(self, user_id: str, meeting_id: str, transcript: str) -> None:
        if self.fail_update_transcript:
            raise RuntimeError("connection reset")
        meeting = await self.get_meeting(user_id, meeting_id)
        if meeting is None:
            raise ValueError(f"Meeting {meeting_id} not found")
        self.meetings[str(meeting.id)] = meeting.model_copy(update={"transcript": transcript})

    # ── Tasks ────────────────────────────────────────────────────────────

    async def insert_tasks(
        self,
        user_id: str,
        meeting_id: str,
        tasks: list[TaskCreate],
        run_id: str | None = None,
    ) -> list[Task]:
        if self.fail_insert_tasks:
            raise RuntimeError("insert failed")
        created = [
            Task(
                id=uuid.uuid4(),
                user_id=user_id,
                meeting_id=uuid.UUID(meeting_id),
                extraction_run_id=uuid.UUID(run_id) if run_id else None,
                created_at=datetime.now(timezone.utc),
                **t.model_dump(),
            )
            for t in tasks
        ]
        for task in created:
            self.tasks[str(task.id)] = task
        return created

    async def get_tasks_for_run(self, user_id: str, run_id: str) -> list[Task]:
        return [
            t
            for t in self.tasks.values()
            if t.user_id == user_id and str(t.extraction_run_id) == run_id
        ]

    # ── Zoom Recordings ──────────────────────────────────────────────────

    async def get_zoom_meeting(self, user_id: str, zoom_meeting_row_id: str) -> ZoomMeeting | None:
        zoom_meeting = self.zoom_meetings.get(zoom_meeting_row_id)
        if zoom_meeting is None or zoom_meeting.user_id != user_id:
            return None
        return zoom_meeting

    async def zoom_meeting_exists(self, user_id: str, zoom_meeting_id: str) -> bool:
        return any(
            z.user_id == user_id and z.zoom_meeting_id == zoom_meeting_id
            for z in self.zoom_meetings.values()
        )

    async def create_zoom_meeting(self, user_id: str, data: ZoomMeetingCreate) -> ZoomMeeting:
        zoom_meeting = ZoomMeeting(id=uuid.uuid4(), user_id=user_id, **data.model_dump())
        self.zoom_meetings[str(zoom_meeting.id)] = zoom_meeting
        return zoom_meeting

    async def set_transcript_file_url(self, user_id: str, zoom_meeting_row_id: str, url: str) -> None:
        zoom_meeting = self.zoom_meetings[zoom_meeting_row_id]
        self.zoom_meetings[zoom_meeting_row_id] = zoom_meeting.model_copy(
            update={"transcript_file_url": url}
        )

    async def link_zoom_meeting(self, user_id: str, zoom_meeting_row_id: str, meeting_id: str) -> None:
        zoom_meeting = self.zoom_meetings[zoom_meeting_row_id]
        self.zoom_meetings[zoom_meeting_row_id] = zoom_meeting.model_copy(
            update={"meeting_id": uuid.UUID(meeting_id)}
        )

    async def get_zoom_token(self, user_id: str) -> ZoomToken | None:
        return self.zoom_tokens.get(user_id)

    # ── Extraction Runs ──────────────────────────────────────────────────

    async def start_run(
        self,
        user_id: str,
        meeting_id: str,
        entry_point: EntryPoint,
        dry_run: bool = False,
        request_id: str | None = None,
    ) -> ExtractionRun:
        if request_id and await self.get_run_by_request_id(user_id, request_id):
            raise _conflict("extraction_runs")
        run = ExtractionRun(
            id=uuid.uuid4(),
            user_id=user_id,
            meeting_id=uuid.UUID(meeting_id),
            request_id=request_id,
            entry_point=entry_point,
            status=RunStatus.RUNNING,
            dry_run=dry_run,
        )
        self.runs[str(run.id)] = run
        return run

    async def restart_run(self, user_id: str, run_id: str, dry_run: bool = False) -> ExtractionRun:
        run = self.runs[run_id].model_copy(
            update={"status": RunStatus.RUNNING, "dry_run": dry_run, "error_code": None, "tasks_count": 0}
        )
        self.runs[run_id] = run
        return run

    async def finish_run(
        self,
        user_id: str,
        run_id: str,
        status: RunStatus,
        tasks_count: int = 0,
        error_code: str | None = None,
    ) -> None:
        self.runs[run_id] = self.runs[run_id].model_copy(
            update={
                "status": status,
                "tasks_count": tasks_count,
                "error_code": error_code,
                "completed_at": datetime.now(timezone.utc),
            }
        )

    async def get_run_by_request_id(self, user_id: str, request_id: str) -> ExtractionRun | None:
        for run in self.runs.values():
            if run.user_id == user_id and run.request_id == request_id:
                return run
        return None

    # ── Audit Log ────────────────────────────────────────────────────────

    async def save_audit_record(self, record: AuditRecord) -> AuditRecord:
        if self.fail_audit:
            raise RuntimeError("audit store unavailable")
        saved = record.model_copy(
            update={"id": uuid.uuid4(), "created_at": datetime.now(timezone.utc)}
        )
        self.audit_records.append(saved)
        return saved

    async def list_audit_records(self, user_id: str, limit: int = 50) -> list[AuditRecord]:
        mine = [r for r in self.audit_records if r.user_id == user_id]
        return list(reversed(mine))[:limit]


# ── Provider Doubles ─────────────────────────────────────────────────────────


class RecordingSleep:
    """Async stand-in for asyncio.sleep that records each requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def chat_completion(content: str, status_code: int = 200, headers: dict | None = None) -> httpx.Response:
    """Provider response whose first choice carries ``content``."""
    body = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "model": "gpt-4o-mini",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
        "usage": {"prompt_tokens": 120, "completion_tokens": 40, "total_tokens": 160},
    }
    return httpx.Response(status_code, json=body, headers=headers)


def provider_error(status_code: int, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"error": {"message": "provider error", "code": status_code}},
        headers=headers,
    )


class ScriptedProvider:
    """httpx.MockTransport serving scripted responses in order.

    Once the script runs out the last entry repeats. An entry may be an
    exception instance, which is raised instead of answering.
    """

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._responses)) - 1
        response = self._responses[index]
        if isinstance(response, Exception):
            raise response
        # Fresh copy per call; a scripted entry may be served several times.
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            content=response.content,
        )

    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


def make_engine(
    provider: ScriptedProvider,
    sleep: RecordingSleep | None = None,
    **overrides,
) -> ExtractionEngine:
    """ExtractionEngine wired to a scripted provider and a recording sleep."""
    config = ExtractionConfig(
        api_key="sk-test",
        base_url="https://llm.test/v1",
        sleep=sleep or RecordingSleep(),
        **overrides,
    )
    client = ChatCompletionClient(
        api_key=config.api_key,
        base_url=config.base_url,
        transport=provider.transport,
    )
    return ExtractionEngine(config, client=client)


class ZoomPlatform:
    """httpx.MockTransport answering the Zoom endpoints the pipeline calls.

    ``files`` maps download URLs to bytes (or an int status code).
    ``recordings`` maps Zoom meeting ids to file lists (or a status code).
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes | int] = {}
        self.meetings: list[dict] | int = []
        self.recordings: dict[str, list[dict] | int] = {}
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?")[0]
        path = request.url.path

        if url in self.files:
            body = self.files[url]
            if isinstance(body, int):
                return httpx.Response(body)
            return httpx.Response(200, content=body)

        if path.endswith("/users/me/meetings"):
            if isinstance(self.meetings, int):
                return httpx.Response(self.meetings)
            return httpx.Response(200, json={"meetings": self.meetings})

        if path.endswith("/recordings"):
            zoom_id = path.split("/")[-2]
            files = self.recordings.get(zoom_id, 404)
            if isinstance(files, int):
                return httpx.Response(files, json={"code": 3301, "message": "No recording"})
            return httpx.Response(200, json={"recording_files": files})

        return httpx.Response(404)


def make_pipeline(
    repo: InMemoryMeetingRepository,
    provider: ScriptedProvider,
    zoom: ZoomPlatform | None = None,
    sleep: RecordingSleep | None = None,
    force_dry_run: bool = False,
) -> TaskExtractionPipeline:
    """TaskExtractionPipeline over in-memory storage and mocked HTTP peers."""
    zoom = zoom or ZoomPlatform()
    return TaskExtractionPipeline(
        repository=repo,
        engine=make_engine(provider, sleep),
        zoom_client=ZoomClient(base_url="https://zoom.test/v2", transport=zoom.transport),
        audit=AuditLogger(repo),
        force_dry_run=force_dry_run,
    )


CAPTION_FILE = (
    b"WEBVTT\n\n1\n00:00:01.000 --> 00:00:04.000\n"
    b"John: I will send the report by Friday.\n"
)
CAPTION_URL = "https://zoom.test/rec/transcript.vtt"


SEND_REPORT_TASKS = json.dumps(
    [
        {
            "task": "Send the report",
            "assignee": "John",
            "due_date": "2024-01-19",
            "priority": "Medium",
            "context": "standup",
        }
    ]
)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def repo() -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def zoom() -> ZoomPlatform:
    platform = ZoomPlatform()
    platform.files[CAPTION_URL] = CAPTION_FILE
    return platform


# ── API Helpers ──────────────────────────────────────────────────────────────


def auth_headers(user_id: str) -> dict[str, str]:
    from src.meeting_tasks.core.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def make_client(
    repo: InMemoryMeetingRepository,
    pipeline: TaskExtractionPipeline | None = None,
    raise_app_exceptions: bool = True,
) -> httpx.AsyncClient:
    """AsyncClient over a fresh app with components placed on app.state.

    The lifespan does not run under ASGITransport, so no database is touched.
    """
    from src.meeting_tasks.main import create_app

    app = create_app()
    app.state.meeting_repository = repo
    app.state.pipeline = pipeline
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
    return httpx.AsyncClient(transport=transport, base_url="http://test")
