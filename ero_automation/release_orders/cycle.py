"""One fetch → group → process-all-depots → summarize pass."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Mapping, Sequence

from ero_automation.automation.browser import BrowserManager
from ero_automation.automation.executor import ActionExecutor
from ero_automation.automation.popups import PopupClassifier
from ero_automation.common.json_logger import JsonLogger, log_event, timed_event

from .depot_session import DepotAborted, DepotSession
from .grouping import group_by_depot, persist_grouped_snapshot
from .ledger import LedgerFiles, LedgerSummary, ResultLedger
from .models import FailedRecord, SuccessRecord, WorkItem
from .site_config import Account, SiteConfig

__all__ = [
    "CycleRunner",
    "CycleSummary",
    "SURFACE_CLOSED_REASON",
    "DEPOT_ERROR_REASON",
]

SURFACE_CLOSED_REASON = "surface closed unexpectedly"
DEPOT_ERROR_REASON = "Depot processing error: {error}"

FetchFn = Callable[[], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class CycleSummary:
    """Outcome of one cycle.

    ``status`` is one of ``completed``, ``stopped``, ``fetch_failed`` or
    ``no_data``. ``ledger`` is only set once result files exist.
    """

    status: str
    depots: List[str] = field(default_factory=list)
    aborted_depots: List[str] = field(default_factory=list)
    ledger: LedgerSummary | None = None


class CycleRunner:
    def __init__(
        self,
        *,
        fetch: FetchFn,
        site: SiteConfig,
        accounts: Mapping[str, Account],
        manager: BrowserManager,
        executor: ActionExecutor,
        classifier: PopupClassifier,
        ledger: ResultLedger,
        data_dir: Path,
        logger: JsonLogger,
        max_attempts: int = 3,
        retry_delay_seconds: float = 10,
        sleep: SleepFn = asyncio.sleep,
        session_factory: Callable[..., DepotSession] = DepotSession,
    ) -> None:
        self.fetch = fetch
        self.site = site
        self.accounts = accounts
        self.manager = manager
        self.executor = executor
        self.classifier = classifier
        self.ledger = ledger
        self.data_dir = data_dir
        self.logger = logger
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self.sleep = sleep
        self.session_factory = session_factory
        self._stop_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        """Let the in-flight depot finish; start no further depots."""

        if not self._stop_requested:
            log_event(logger=self.logger, phase="cycle", status="warn", message="Stop requested")
        self._stop_requested = True

    async def fetch_with_retry(self) -> Mapping[str, Any] | None:
        for attempt in range(1, self.max_attempts + 1):
            log_event(
                logger=self.logger,
                phase="fetch",
                message=f"Attempt {attempt}/{self.max_attempts} to get data from API",
                attempt=attempt,
            )
            try:
                response = await self.fetch()
            except Exception as exc:
                log_event(
                    logger=self.logger,
                    phase="fetch",
                    status="error",
                    message="Fetch attempt raised",
                    attempt=attempt,
                    error=str(exc),
                )
                response = None
            if isinstance(response, Mapping) and response.get("data") is not None:
                return response
            if attempt < self.max_attempts:
                if self._stop_requested:
                    break
                log_event(
                    logger=self.logger,
                    phase="fetch",
                    status="warn",
                    message=f"Retrying in {self.retry_delay_seconds} seconds",
                    attempt=attempt,
                )
                await self.sleep(self.retry_delay_seconds)
        return None

    async def run_cycle(self) -> CycleSummary:
        log_event(logger=self.logger, phase="cycle", message="Starting automation cycle")

        with timed_event(logger=self.logger, phase="fetch", message="Fetch release orders"):
            response = await self.fetch_with_retry()
        if response is None:
            log_event(
                logger=self.logger,
                phase="cycle",
                status="error",
                message=f"Failed to get data after {self.max_attempts} attempts; will retry next cycle",
            )
            return CycleSummary(status="fetch_failed")

        raw_items = response["data"]
        if not isinstance(raw_items, Sequence) or isinstance(raw_items, (str, bytes)):
            log_event(
                logger=self.logger,
                phase="cycle",
                status="error",
                message="API data is not a list; skipping cycle",
                data_type=type(raw_items).__name__,
            )
            return CycleSummary(status="no_data")
        if not raw_items:
            log_event(logger=self.logger, phase="cycle", message="No data to process; will retry next cycle")
            return CycleSummary(status="no_data")

        grouped = group_by_depot(raw_items, logger=self.logger)
        persist_grouped_snapshot(grouped, data_dir=self.data_dir, logger=self.logger)

        files = self.ledger.init_cycle()
        success_list: List[SuccessRecord] = []
        summary = CycleSummary(status="completed")

        for depot, items in grouped.items():
            if self._stop_requested:
                log_event(
                    logger=self.logger,
                    phase="cycle",
                    status="warn",
                    message="Stop requested; remaining depots left for the next cycle",
                    next_depot=depot,
                )
                summary.status = "stopped"
                break
            summary.depots.append(depot)
            session = self.session_factory(
                depot=depot,
                items=items,
                account=self.accounts.get(depot),
                site=self.site,
                manager=self.manager,
                executor=self.executor,
                classifier=self.classifier,
                ledger=self.ledger,
                failed_file=files.failed_file,
                success_list=success_list,
                logger=self.logger,
            )
            try:
                await session.run()
            except DepotAborted as exc:
                summary.aborted_depots.append(depot)
                log_event(
                    logger=self.logger,
                    phase="cycle",
                    status="error",
                    message=f"Browser closed for DEPOT {depot}; saving progress and marking remaining ROs as failed",
                    depot=depot,
                    error=str(exc.cause),
                )
                self.ledger.save_success(files.success_file, success_list)
                self.reconcile_depot(depot, session.pending_items(), files, SURFACE_CLOSED_REASON)
            except Exception as exc:
                log_event(
                    logger=self.logger,
                    phase="cycle",
                    status="error",
                    message=f"Error processing DEPOT {depot}",
                    depot=depot,
                    error=str(exc),
                )
                self.reconcile_depot(
                    depot, session.pending_items(), files, DEPOT_ERROR_REASON.format(error=exc)
                )
            self.ledger.save_success(files.success_file, success_list)

        summary.ledger = self.ledger.summarize(files.success_file, files.failed_file, success_list)
        log_event(
            logger=self.logger,
            phase="cycle",
            message=summary.ledger.summary_text(),
            status_detail=summary.status,
            success_total=summary.ledger.success_total,
            failed_total=summary.ledger.failed_total,
        )
        return summary

    def reconcile_depot(
        self,
        depot: str,
        pending: Sequence[WorkItem],
        files: LedgerFiles,
        reason: str,
    ) -> int:
        """Mark the items the depot session left without an outcome as failed."""

        marked = 0
        for item in pending:
            self.ledger.append_failed(files.failed_file, FailedRecord.for_item(depot, item, reason))
            marked += 1
        log_event(
            logger=self.logger,
            phase="cycle",
            status="warn" if marked else "ok",
            message=f"Marked {marked} remaining ROs of DEPOT {depot} as failed",
            depot=depot,
            reason=reason,
        )
        return marked
