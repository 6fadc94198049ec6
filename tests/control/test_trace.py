from __future__ import annotations

from pathlib import Path

import pytest

from gbpilot.control.trace import CycleTraceRecorder, TraceValidationError, read_trace


def _record(**overrides) -> dict:
    record = {
        "cycle": 1,
        "timestamp": "2024-05-01T12:00:00+00:00",
        "title": "TESTGAME",
        "status": "active",
        "action": "a",
        "reward": 0.5,
        "episode_total": 0.5,
        "feedback": ["coin, Reward: +0.50"],
    }
    record.update(overrides)
    return record


def test_records_are_appended_across_recorders(tmp_path: Path) -> None:
    path = tmp_path / "runs" / "trace.jsonl"
    first = CycleTraceRecorder(path)
    first.record(_record())
    first.close()
    second = CycleTraceRecorder(path)
    second.record(_record(cycle=2, status="error", action=None, error="boom"))
    second.close()

    assert [record["cycle"] for record in read_trace(path)] == [1, 2]


def test_invalid_record_is_rejected_and_not_written(tmp_path: Path) -> None:
    recorder = CycleTraceRecorder(tmp_path / "trace.jsonl")

    with pytest.raises(TraceValidationError) as excinfo:
        recorder.record(_record(status="paused", extra=True))
    recorder.close()

    assert len(excinfo.value.errors) == 2
    assert read_trace(tmp_path / "trace.jsonl") == []
