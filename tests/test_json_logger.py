import io
import json
from pathlib import Path

import pytest

from ero_automation.common.json_logger import JsonLogger, log_event, timed_event


def _lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_log_event_writes_structured_line() -> None:
    stream = io.StringIO()
    logger = JsonLogger(run_id="run-42", stream=stream, log_file_path=None)

    log_event(logger=logger, phase="cycle", message="Starting", depot="D1")

    (event,) = _lines(stream)
    assert event["run_id"] == "run-42"
    assert event["phase"] == "cycle"
    assert event["status"] == "ok"
    assert event["depot"] == "D1"
    assert "ts" in event


def test_bind_adds_context_and_shares_file(tmp_path: Path) -> None:
    stream = io.StringIO()
    log_file = tmp_path / "logs" / "run.jsonl"
    logger = JsonLogger(run_id="run-1", stream=stream, log_file_path=str(log_file))
    child = logger.bind(depot="D7")

    child.warn(phase="item", message="careful")
    logger.close()
    child.error(phase="item", message="after close")

    events = _lines(stream)
    assert len(events) == 1
    assert events[0]["depot"] == "D7"
    assert events[0]["status"] == "warn"
    assert json.loads(log_file.read_text().strip())["message"] == "careful"


def test_timed_event_logs_duration_and_reraises() -> None:
    stream = io.StringIO()
    logger = JsonLogger(stream=stream, log_file_path=None)

    with timed_event(logger=logger, phase="fetch", message="Fetch"):
        pass
    with pytest.raises(RuntimeError):
        with timed_event(logger=logger, phase="fetch", message="Fetch"):
            raise RuntimeError("boom")

    ok, failed = _lines(stream)
    assert ok["status"] == "ok" and "duration_ms" in ok
    assert failed["status"] == "error"
    assert failed["message"] == "Fetch failed: boom"
