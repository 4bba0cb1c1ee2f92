"""One depot's browsing session.

A session opens an isolated browser context, logs in with the depot's account,
pushes every release order of the depot through the item actions and logs out.
The context is released on every exit path. A closed page, context or browser
aborts the session with :class:`DepotAborted`; everything else that goes wrong
with a single release order is recorded against that order only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Sequence

from playwright.async_api import BrowserContext, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ero_automation.automation.actions import ActionSpec, Click
from ero_automation.automation.browser import BrowserManager
from ero_automation.automation.errors import ActionError, SurfaceClosedError, is_surface_closed_error
from ero_automation.automation.executor import ActionExecutor
from ero_automation.automation.popups import PopupClassifier
from ero_automation.common.json_logger import JsonLogger, log_event

from .ledger import ResultLedger
from .models import FailedRecord, SuccessRecord, WorkItem
from .site_config import Account, SiteConfig

__all__ = [
    "DepotAborted",
    "DepotResult",
    "DepotSession",
    "SessionState",
    "NO_ACCOUNT_REASON",
    "ITEM_FAILURE_FALLBACK_REASON",
]

NO_ACCOUNT_REASON = "No account configured for depot"
ITEM_FAILURE_FALLBACK_REASON = "Action execution failed"
NAVIGATION_SETTLE_TIMEOUT_MS = 30_000
LOGOUT_SETTLE_MS = 1_000


class SessionState(str, Enum):
    IDLE = "IDLE"
    CONTEXT_OPEN = "CONTEXT_OPEN"
    LOGGED_IN = "LOGGED_IN"
    PROCESSING_ITEMS = "PROCESSING_ITEMS"
    LOGGING_OUT = "LOGGING_OUT"
    CLOSED = "CLOSED"
    ABORTED = "ABORTED"


class DepotAborted(RuntimeError):
    """The browsing surface closed while a depot was being processed."""

    def __init__(self, depot: str, cause: BaseException) -> None:
        super().__init__(f"Depot {depot} aborted: {cause}")
        self.depot = depot
        self.cause = cause


@dataclass
class DepotResult:
    depot: str
    state: SessionState
    succeeded: int = 0
    failed: int = 0


@dataclass
class DepotSession:
    depot: str
    items: Sequence[WorkItem]
    account: Account | None
    site: SiteConfig
    manager: BrowserManager
    executor: ActionExecutor
    classifier: PopupClassifier
    ledger: ResultLedger
    failed_file: Path
    success_list: List[SuccessRecord]
    logger: JsonLogger
    state: SessionState = SessionState.IDLE
    history: List[SessionState] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.logger = self.logger.bind(depot=self.depot)
        self.history.append(self.state)
        self._succeeded = 0
        self._failed = 0
        self._settled: set[int] = set()

    def _transition(self, state: SessionState) -> None:
        self.state = state
        self.history.append(state)
        log_event(logger=self.logger, phase="depot", message=f"Session state {state.value}", state=state.value)

    def pending_items(self) -> List[WorkItem]:
        """Items of this depot that have neither succeeded nor failed yet."""

        return [item for index, item in enumerate(self.items) if index not in self._settled]

    def _result(self) -> DepotResult:
        return DepotResult(
            depot=self.depot, state=self.state, succeeded=self._succeeded, failed=self._failed
        )

    async def run(self) -> DepotResult:
        log_event(
            logger=self.logger,
            phase="depot",
            message=f"Processing DEPOT {self.depot}",
            items=len(self.items),
        )
        if self.account is None:
            log_event(
                logger=self.logger,
                phase="depot",
                status="error",
                message=f"No account found for DEPOT {self.depot}",
            )
            for index, item in enumerate(self.items):
                self._record_failure(index, item, NO_ACCOUNT_REASON)
            self._transition(SessionState.CLOSED)
            return self._result()

        context: BrowserContext | None = None
        try:
            context = await self.manager.new_context()
            page = await context.new_page()
            self._transition(SessionState.CONTEXT_OPEN)
            await page.goto(self.site.url)
            await self._settle(page)

            await self._login(page)
            self._transition(SessionState.LOGGED_IN)

            self._transition(SessionState.PROCESSING_ITEMS)
            for index, item in enumerate(self.items):
                await self._process_item(page, index, item)

            self._transition(SessionState.LOGGING_OUT)
            await self._logout(page)
        except Exception as exc:
            if not is_surface_closed_error(exc):
                raise
            self._transition(SessionState.ABORTED)
            log_event(
                logger=self.logger,
                phase="depot",
                status="error",
                message=f"Browser/Page closed unexpectedly for DEPOT {self.depot}",
                error=str(exc),
            )
            raise DepotAborted(self.depot, exc) from exc
        finally:
            if context is not None:
                await self.manager.release(context)
            if self.state is not SessionState.ABORTED:
                self._transition(SessionState.CLOSED)

        log_event(
            logger=self.logger,
            phase="depot",
            message=f"Finished DEPOT {self.depot}",
            succeeded=self._succeeded,
            failed=self._failed,
        )
        return self._result()

    def _context_for(self, item: WorkItem) -> Dict[str, Any]:
        assert self.account is not None
        return {"account": self.account.as_context(), **item.fields}

    async def _settle(self, page: Page) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=NAVIGATION_SETTLE_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            log_event(
                logger=self.logger,
                phase="depot",
                status="warn",
                message="Page did not reach network idle; continuing",
            )

    async def _run_action(self, page: Page, spec: ActionSpec, data: Dict[str, Any]):
        if not await self.executor.execute(page, spec, data):
            return None
        await self.executor.pause(page, spec)
        return await self.classifier.classify(page)

    async def _login(self, page: Page) -> None:
        # The first release order supplies the shared login fields.
        data = self._context_for(self.items[0]) if self.items else {"account": self.account.as_context()}
        for spec in self.site.login_actions:
            verdict = await self._run_action(page, spec, data)
            if verdict is not None and verdict.is_failure:
                log_event(
                    logger=self.logger,
                    phase="login",
                    status="warn",
                    message=f"Popup {verdict.kind} during login; continuing",
                    popup_message=verdict.message,
                )
        log_event(logger=self.logger, phase="login", message=f"Login actions completed for DEPOT {self.depot}")

    async def _process_item(self, page: Page, index: int, item: WorkItem) -> None:
        data = self._context_for(item)
        reason: str | None = None
        for spec in self.site.item_actions:
            try:
                verdict = await self._run_action(page, spec, data)
            except SurfaceClosedError:
                raise
            except ActionError as exc:
                reason = str(exc)
            except Exception as exc:
                if is_surface_closed_error(exc):
                    raise SurfaceClosedError(str(exc)) from exc
                reason = str(exc) or ITEM_FAILURE_FALLBACK_REASON
            else:
                if verdict is None or not verdict.is_failure:
                    continue
                reason = f"Popup {verdict.kind} detected: {verdict.message}"
            break

        if reason is None:
            self.success_list.append(SuccessRecord.for_item(self.depot, item))
            self._settled.add(index)
            self._succeeded += 1
            log_event(
                logger=self.logger,
                phase="item",
                message="Release order processed",
                release_order_number=item.release_order_number,
            )
            return

        log_event(
            logger=self.logger,
            phase="item",
            status="error",
            message=f"Skipping RO {item.release_order_number} due to action failure",
            release_order_number=item.release_order_number,
            reason=reason,
        )
        self._record_failure(index, item, reason)

    def _record_failure(self, index: int, item: WorkItem, reason: str) -> None:
        self.ledger.append_failed(self.failed_file, FailedRecord.for_item(self.depot, item, reason))
        self._settled.add(index)
        self._failed += 1

    async def _logout(self, page: Page) -> None:
        logout = Click(selector=self.site.logout_selector, delay_ms=LOGOUT_SETTLE_MS)
        await page.wait_for_timeout(LOGOUT_SETTLE_MS)
        try:
            await self.executor.execute(page, logout, {})
            await self.executor.pause(page, logout)
        except ActionError as exc:
            log_event(
                logger=self.logger,
                phase="logout",
                status="warn",
                message="Logout click failed",
                error=str(exc),
            )
        await page.wait_for_timeout(LOGOUT_SETTLE_MS)
        log_event(logger=self.logger, phase="logout", message=f"Logged out of DEPOT {self.depot}")
