import io
import json
from pathlib import Path

from ero_automation.common.json_logger import JsonLogger
from ero_automation.release_orders.grouping import normalize
from ero_automation.release_orders.ledger import ResultLedger
from ero_automation.release_orders.models import FailedRecord, SuccessRecord


def _ledger(tmp_path: Path) -> ResultLedger:
    return ResultLedger(tmp_path / "results", logger=JsonLogger(stream=io.StringIO(), log_file_path=None))


def _item(number):
    return normalize({"DEPOT": "D1", "ID": f"id-{number}", "releaseOrderNumber": number})


def test_init_cycle_creates_empty_documents(tmp_path: Path) -> None:
    files = _ledger(tmp_path).init_cycle()

    for path in (files.success_file, files.failed_file):
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["total"] == 0
        assert document["data"] == []
    assert files.success_file.name.startswith("success-")
    assert files.failed_file.name.startswith("failed-")


def test_append_failed_is_at_least_once(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    files = ledger.init_cycle()
    record = FailedRecord.for_item("D1", _item("RO-1"), "Popup error detected: boom")

    assert ledger.append_failed(files.failed_file, record) == 1
    assert ledger.append_failed(files.failed_file, record) == 2

    document = json.loads(files.failed_file.read_text(encoding="utf-8"))
    assert document["total"] == 2
    assert document["data"][0] == {
        "depot": "D1",
        "releaseOrderID": "id-RO-1",
        "releaseOrderNumber": "RO-1",
        "reason": "Popup error detected: boom",
        "timestamp": record.timestamp,
    }
    assert ledger.list_failed_keys(files.failed_file) == {"RO-1"}


def test_save_success_overwrites_and_summarize(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    files = ledger.init_cycle()
    successes = [SuccessRecord.for_item("D1", _item("RO-1"))]
    ledger.save_success(files.success_file, successes)
    successes.append(SuccessRecord.for_item("D1", _item(77)))
    ledger.save_success(files.success_file, successes)
    ledger.append_failed(files.failed_file, FailedRecord.for_item("D1", _item("RO-9"), "x"))

    document = json.loads(files.success_file.read_text(encoding="utf-8"))
    summary = ledger.summarize(files.success_file, files.failed_file, successes)

    assert document["total"] == 2
    assert document["data"][1]["releaseOrderNumber"] == 77
    assert (summary.success_total, summary.failed_total, summary.total) == (2, 1, 3)
    assert "Total processed: 3" in summary.summary_text()


def test_corrupt_failed_file_reads_as_empty(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    files = ledger.init_cycle()
    files.failed_file.write_text("{truncated", encoding="utf-8")

    assert ledger.list_failed_keys(files.failed_file) == set()
    assert ledger.append_failed(files.failed_file, FailedRecord.for_item("D1", _item("RO-2"), "x")) == 1


def test_failed_keys_are_normalised_to_strings(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    files = ledger.init_cycle()
    ledger.append_failed(files.failed_file, FailedRecord.for_item("D1", _item(101), "x"))

    assert ledger.list_failed_keys(files.failed_file) == {"101"}


def test_unusable_results_dir_is_logged_not_raised(tmp_path: Path) -> None:
    blocker = tmp_path / "results"
    blocker.write_text("not a directory", encoding="utf-8")
    stream = io.StringIO()
    ledger = ResultLedger(blocker, logger=JsonLogger(stream=stream, log_file_path=None))

    files = ledger.init_cycle()
    ledger.save_success(files.success_file, [SuccessRecord.for_item("D1", _item("RO-1"))])
    assert ledger.append_failed(files.failed_file, FailedRecord.for_item("D1", _item("RO-2"), "x")) == 1

    summary = ledger.summarize(files.success_file, files.failed_file, [])
    assert summary.failed_total == 0
    assert blocker.read_text(encoding="utf-8") == "not a directory"
    events = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert any(event["message"] == "Error writing result file" for event in events)
