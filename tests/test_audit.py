"""Tests for the fire-and-forget AuditLogger."""

from __future__ import annotations

import asyncio

import pytest

from src.meeting_tasks.meetings.schemas import RunType
from src.meeting_tasks.pipeline.audit import TRANSCRIPT_SAMPLE_CHARS, AuditEvent, AuditLogger
from src.meeting_tasks.pipeline.prompts import PROMPT_VERSION


def _event(**overrides) -> AuditEvent:
    fields = {
        "run_type": RunType.LIVE,
        "meeting_id": "m-1",
        "transcript": "x" * 500,
        "error_classification": "INVALID_SCHEMA",
        "raw_output": "not json",
        "user_id": "u-1",
    }
    fields.update(overrides)
    return AuditEvent(**fields)


def test_record_keeps_only_a_transcript_sample():
    record = _event().to_record()
    assert len(record.transcript_sample) == TRANSCRIPT_SAMPLE_CHARS
    assert record.prompt_version == PROMPT_VERSION
    assert record.raw_output == "not json"


@pytest.mark.asyncio
async def test_record_returns_before_write_completes(repo):
    audit = AuditLogger(repo)

    audit.record(_event())
    assert repo.audit_records == []

    await audit.flush()
    assert len(repo.audit_records) == 1
    assert repo.audit_records[0].error_classification == "INVALID_SCHEMA"


@pytest.mark.asyncio
async def test_write_failure_is_swallowed(repo):
    repo.fail_audit = True
    audit = AuditLogger(repo)

    audit.record(_event())
    await audit.flush()

    assert repo.audit_records == []


@pytest.mark.asyncio
async def test_slow_store_does_not_block_caller(repo):
    release = asyncio.Event()
    original = repo.save_audit_record

    async def slow_save(record):
        await release.wait()
        return await original(record)

    repo.save_audit_record = slow_save
    audit = AuditLogger(repo)

    audit.record(_event(run_type=RunType.DRY_RUN, extracted_data=[{"task": "a"}]))
    await asyncio.sleep(0)
    assert repo.audit_records == []

    release.set()
    await audit.flush()
    assert repo.audit_records[0].run_type == RunType.DRY_RUN
    assert repo.audit_records[0].extracted_data == [{"task": "a"}]


def test_record_outside_event_loop_does_not_raise(repo):
    AuditLogger(repo).record(_event())
    assert repo.audit_records == []
