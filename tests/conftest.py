import io
import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
PROJECT_PARENT = ROOT.parent

for path in (ROOT, PROJECT_PARENT):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from ero_automation.common.json_logger import JsonLogger  # noqa: E402


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> JsonLogger:
    return JsonLogger(run_id="test-run", stream=log_stream, log_file_path=None)


@pytest.fixture
def events(log_stream: io.StringIO):
    def _read() -> list[dict]:
        return [json.loads(line) for line in log_stream.getvalue().splitlines() if line.strip()]

    return _read
