from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Mapping

from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ero_automation.common.json_logger import JsonLogger, log_event

from .actions import ActionSpec, Click, Hover, Input, MatchField, Scroll, Select, Unknown, Wait
from .data_paths import is_absent, resolve_path, resolve_value
from .errors import ActionError, SurfaceClosedError, is_surface_closed_error

__all__ = ["ActionExecutor", "PacingPolicy", "ACTION_TIMEOUT_MS", "SETTLE_TIMEOUT_MS"]

ACTION_TIMEOUT_MS = 10_000
SETTLE_TIMEOUT_MS = 30_000


@dataclass(frozen=True)
class PacingPolicy:
    """Delay inserted after every action.

    An explicit ``delay_ms`` on the action wins; otherwise a random delay in
    ``[min_ms, max_ms)`` is drawn so consecutive actions are not evenly spaced.
    """

    min_ms: int = 1_000
    max_ms: int = 3_000
    enabled: bool = True

    def next_delay_ms(self, spec: ActionSpec, rng: random.Random | None = None) -> int:
        if spec.delay_ms is not None:
            return max(0, spec.delay_ms)
        if not self.enabled:
            return 0
        if self.max_ms <= self.min_ms:
            return self.min_ms
        return (rng or random).randrange(self.min_ms, self.max_ms)


def _as_text(value: Any) -> str:
    if value is None or is_absent(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class ActionExecutor:
    """Run declarative actions against a Playwright page."""

    def __init__(
        self,
        logger: JsonLogger,
        *,
        timeout_ms: int = ACTION_TIMEOUT_MS,
        settle_timeout_ms: int = SETTLE_TIMEOUT_MS,
        pacing: PacingPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.logger = logger
        self.timeout_ms = timeout_ms
        self.settle_timeout_ms = settle_timeout_ms
        self.pacing = pacing or PacingPolicy()
        self.rng = rng

    async def execute(self, page: Page, spec: ActionSpec, data: Mapping[str, Any]) -> bool:
        """Run ``spec``; return ``False`` when its condition skipped it."""

        if spec.condition is not None and not spec.condition.evaluate(data):
            log_event(
                logger=self.logger,
                phase="action",
                message="Condition not met; skipping action",
                kind=spec.kind,
                selector=spec.selector,
                condition=spec.condition_text,
            )
            return False

        log_event(
            logger=self.logger,
            phase="action",
            message="Executing action",
            kind=spec.kind,
            selector=spec.selector,
            first_only=spec.first_only,
        )
        try:
            await self._dispatch(page, spec, data)
        except (ActionError, SurfaceClosedError):
            raise
        except PlaywrightTimeoutError as exc:
            raise ActionError(
                spec.kind, spec.selector, f"element not found within {self.timeout_ms}ms"
            ) from exc
        except Exception as exc:
            if is_surface_closed_error(exc):
                raise SurfaceClosedError(str(exc)) from exc
            raise ActionError(spec.kind, spec.selector, str(exc)) from exc
        return True

    async def pause(self, page: Page, spec: ActionSpec) -> None:
        delay_ms = self.pacing.next_delay_ms(spec, self.rng)
        if delay_ms <= 0:
            return
        try:
            await page.wait_for_timeout(delay_ms)
        except Exception as exc:
            if is_surface_closed_error(exc):
                raise SurfaceClosedError(str(exc)) from exc
            raise

    async def _dispatch(self, page: Page, spec: ActionSpec, data: Mapping[str, Any]) -> None:
        if isinstance(spec, Click):
            target = await self._target(page, spec, data)
            await target.click(timeout=self.timeout_ms)
            await self._settle(page)
            self._report_url(page, spec, "URL after click")
        elif isinstance(spec, Input):
            target = await self._target(page, spec, data)
            await target.fill(_as_text(resolve_value(spec.value, data)), timeout=self.timeout_ms)
            self._report_url(page, spec, "URL after input")
        elif isinstance(spec, Select):
            target = await self._target(page, spec, data)
            await target.select_option(_as_text(resolve_value(spec.value, data)), timeout=self.timeout_ms)
        elif isinstance(spec, Wait):
            await self._target(page, spec, data)
        elif isinstance(spec, Scroll):
            target = await self._target(page, spec, data, state="attached")
            await target.scroll_into_view_if_needed(timeout=self.timeout_ms)
        elif isinstance(spec, Hover):
            target = await self._target(page, spec, data)
            await target.hover(timeout=self.timeout_ms)
        elif isinstance(spec, Unknown):
            log_event(
                logger=self.logger,
                phase="action",
                status="warn",
                message="Unknown action type; skipping",
                kind=spec.raw_kind,
                selector=spec.selector,
            )

    async def _target(
        self,
        page: Page,
        spec: ActionSpec,
        data: Mapping[str, Any],
        *,
        state: str = "visible",
    ) -> Locator:
        matches = page.locator(spec.selector)
        await matches.first.wait_for(state=state, timeout=self.timeout_ms)
        if spec.match_field is None:
            return matches.first
        return await self._match(matches, spec.match_field, data)

    async def _match(self, matches: Locator, match_field: MatchField, data: Mapping[str, Any]) -> Locator:
        expected = resolve_path(data, match_field.field_key)
        if expected is None or is_absent(expected):
            log_event(
                logger=self.logger,
                phase="action",
                status="warn",
                message="Match field missing from data; using first match",
                field_key=match_field.field_key,
            )
            return matches.first

        needle = _as_text(expected)
        count = await matches.count()
        for index in range(count):
            candidate = matches.nth(index)
            if match_field.selector:
                nested = candidate.locator(match_field.selector)
                if await nested.count() == 0:
                    continue
                text = await nested.first.text_content(timeout=self.timeout_ms)
            else:
                text = await candidate.text_content(timeout=self.timeout_ms)
            if needle in (text or ""):
                log_event(
                    logger=self.logger,
                    phase="action",
                    message="Matched element by field text",
                    field_key=match_field.field_key,
                    index=index,
                    candidates=count,
                )
                return candidate

        log_event(
            logger=self.logger,
            phase="action",
            status="warn",
            message="No element matched field text; using first match",
            field_key=match_field.field_key,
            expected=needle,
            candidates=count,
        )
        return matches.first

    async def _settle(self, page: Page) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=self.settle_timeout_ms)
        except Exception as exc:
            if is_surface_closed_error(exc):
                raise SurfaceClosedError(str(exc)) from exc

    def _report_url(self, page: Page, spec: ActionSpec, message: str) -> None:
        if spec.print_url:
            log_event(logger=self.logger, phase="action", message=message, url=page.url)
