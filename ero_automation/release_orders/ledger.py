"""Per-cycle result files.

Each cycle owns two JSON files: a success snapshot rewritten whenever the
in-memory success list is flushed, and a failed ledger that only ever grows
within the cycle. Every write replaces the whole file, so a crash mid-write can
leave a truncated file; readers then fall back to "no prior data" instead of
stopping the cycle.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Sequence

from ero_automation.common.json_logger import JsonLogger, log_event

from .grouping import file_timestamp
from .models import FailedRecord, SuccessRecord, record_key, utc_now_iso

__all__ = ["LedgerFiles", "LedgerSummary", "ResultLedger"]


@dataclass(frozen=True)
class LedgerFiles:
    success_file: Path
    failed_file: Path


@dataclass(frozen=True)
class LedgerSummary:
    success_file: Path
    failed_file: Path
    success_total: int
    failed_total: int

    @property
    def total(self) -> int:
        return self.success_total + self.failed_total

    def summary_text(self) -> str:
        return (
            f"Total processed: {self.total} | Success: {self.success_total} | "
            f"Failed: {self.failed_total} | success file: {self.success_file} | "
            f"failed file: {self.failed_file}"
        )


def _empty_document() -> Dict[str, Any]:
    return {"timestamp": utc_now_iso(), "total": 0, "data": []}


class ResultLedger:
    def __init__(self, results_dir: Path, *, logger: JsonLogger) -> None:
        self.results_dir = results_dir
        self.logger = logger

    def init_cycle(self) -> LedgerFiles:
        stamp = file_timestamp()
        files = LedgerFiles(
            success_file=self.results_dir / f"success-{stamp}.json",
            failed_file=self.results_dir / f"failed-{stamp}.json",
        )
        self._write(files.success_file, _empty_document())
        self._write(files.failed_file, _empty_document())
        log_event(
            logger=self.logger,
            phase="ledger",
            message="Result files initialized",
            success_file=str(files.success_file),
            failed_file=str(files.failed_file),
        )
        return files

    def append_failed(self, failed_file: Path, record: FailedRecord) -> int:
        """Append one failed record and return the new total.

        Appends are at-least-once: recording the same release order twice
        yields two entries.
        """

        document = self._read(failed_file)
        entries = document["data"]
        entries.append(record.to_json())
        document["total"] = len(entries)
        self._write(failed_file, document)
        log_event(
            logger=self.logger,
            phase="ledger",
            status="warn",
            message="Failed item appended",
            depot=record.depot,
            release_order_number=record.release_order_number,
            reason=record.reason,
            total=document["total"],
        )
        return document["total"]

    def list_failed_keys(self, failed_file: Path) -> set[str]:
        document = self._read(failed_file)
        return {
            record_key(entry.get("releaseOrderNumber"))
            for entry in document["data"]
            if isinstance(entry, dict)
        }

    def save_success(self, success_file: Path, success_list: Sequence[SuccessRecord]) -> None:
        document = {
            "timestamp": utc_now_iso(),
            "total": len(success_list),
            "data": [record.to_json() for record in success_list],
        }
        if self._write(success_file, document):
            log_event(
                logger=self.logger,
                phase="ledger",
                message=f"Success file updated: {len(success_list)} items",
                total=len(success_list),
            )

    def summarize(
        self, success_file: Path, failed_file: Path, success_list: Sequence[SuccessRecord]
    ) -> LedgerSummary:
        failed_document = self._read(failed_file)
        return LedgerSummary(
            success_file=success_file,
            failed_file=failed_file,
            success_total=len(success_list),
            failed_total=len(failed_document["data"]),
        )

    def _read(self, path: Path) -> Dict[str, Any]:
        try:
            content = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log_event(
                logger=self.logger,
                phase="ledger",
                status="error",
                message="Error reading result file; treating as empty",
                path=str(path),
                error=str(exc),
            )
            return _empty_document()
        if not isinstance(content, dict) or not isinstance(content.get("data"), list):
            log_event(
                logger=self.logger,
                phase="ledger",
                status="error",
                message="Result file has unexpected shape; treating as empty",
                path=str(path),
            )
            return _empty_document()
        return content

    def _write(self, path: Path, document: Dict[str, Any]) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(document, indent=2, default=str, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            log_event(
                logger=self.logger,
                phase="ledger",
                status="error",
                message="Error writing result file",
                path=str(path),
                error=str(exc),
            )
            return False
        return True

