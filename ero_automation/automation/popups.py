from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from playwright.async_api import Page

from ero_automation.common.json_logger import JsonLogger, log_event

from .errors import SurfaceClosedError, is_surface_closed_error

__all__ = ["DEFAULT_POPUPS", "PopupClassifier", "PopupSpec", "PopupVerdict", "MESSAGE_PLACEHOLDER"]

MESSAGE_PLACEHOLDER = "N/A"
CLOSE_TIMEOUT_MS = 2_000


@dataclass(frozen=True)
class PopupSpec:
    kind: str
    container: str
    message: str
    close: str


@dataclass(frozen=True)
class PopupVerdict:
    kind: str
    message: str

    @property
    def is_failure(self) -> bool:
        return self.kind in {"error", "warning"}


# Success first: a success popup left over from the previous step must not be
# reported as the error that follows it.
DEFAULT_POPUPS: tuple[PopupSpec, ...] = (
    PopupSpec("success", "#popup-Success", "#spn_SuccessMessage", "#btn_SuccessPopupClose"),
    PopupSpec("error", "#popup-Error", "#p_ErrorPopupMessage", "#btn_ErrorPopupClose"),
    PopupSpec("warning", "#popup-Warn", "#p_WarningPopupMessage", "#btn_WarnPopupClose"),
)

_STATUS_FOR_KIND = {"success": "ok", "error": "error", "warning": "warn"}


class PopupClassifier:
    def __init__(self, logger: JsonLogger, popups: Sequence[PopupSpec] = DEFAULT_POPUPS) -> None:
        self.logger = logger
        self.popups = tuple(popups)

    async def classify(self, page: Page) -> PopupVerdict | None:
        try:
            for popup in self.popups:
                if not await self._is_visible(page, popup):
                    continue
                message = await self._read_message(page, popup)
                log_event(
                    logger=self.logger,
                    phase="popup",
                    status=_STATUS_FOR_KIND.get(popup.kind, "ok"),
                    message=f"{popup.kind.capitalize()} popup: {message}",
                    popup=popup.kind,
                    popup_message=message,
                )
                await self._dismiss(page, popup)
                return PopupVerdict(kind=popup.kind, message=message)
        except SurfaceClosedError:
            raise
        except Exception as exc:
            if is_surface_closed_error(exc):
                raise SurfaceClosedError(str(exc)) from exc
            log_event(
                logger=self.logger,
                phase="popup",
                status="error",
                message="Error checking popup",
                error=str(exc),
            )
        return None

    async def _is_visible(self, page: Page, popup: PopupSpec) -> bool:
        handle = await page.query_selector(popup.container)
        if handle is None:
            return False
        display = await handle.evaluate("el => window.getComputedStyle(el).display")
        return display == "block"

    async def _read_message(self, page: Page, popup: PopupSpec) -> str:
        try:
            text = await page.eval_on_selector(popup.message, "el => el.textContent")
        except Exception as exc:
            if is_surface_closed_error(exc):
                raise SurfaceClosedError(str(exc)) from exc
            return MESSAGE_PLACEHOLDER
        cleaned = (text or "").strip()
        return cleaned or MESSAGE_PLACEHOLDER

    async def _dismiss(self, page: Page, popup: PopupSpec) -> None:
        try:
            await page.click(popup.close, timeout=CLOSE_TIMEOUT_MS)
        except Exception as exc:
            if is_surface_closed_error(exc):
                raise SurfaceClosedError(str(exc)) from exc
