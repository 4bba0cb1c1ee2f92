from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
from typing import Optional, Set

from ero_automation.common.json_logger import JsonLogger, log_event

from .cycle import CycleRunner, CycleSummary

__all__ = ["CycleScheduler", "SchedulerState"]


class SchedulerState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class CycleScheduler:
    """Run a cycle now and then on a fixed interval.

    The interval timer fires regardless of how long a cycle takes; a trigger
    that arrives while a cycle is still running is skipped. The countdown task
    only reports the time left until the next trigger.
    """

    def __init__(
        self,
        runner: CycleRunner,
        *,
        interval_minutes: float,
        countdown_seconds: float,
        logger: JsonLogger,
    ) -> None:
        self.runner = runner
        self.interval_seconds = interval_minutes * 60
        self.countdown_seconds = countdown_seconds
        self.logger = logger
        self._state = SchedulerState.IDLE
        self._lock = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        self._countdown_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()
        self._next_run_at: Optional[float] = None
        self.completed_cycles = 0
        self.skipped_triggers = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    def seconds_until_next_run(self) -> Optional[float]:
        if self._next_run_at is None:
            return None
        return max(0.0, self._next_run_at - asyncio.get_running_loop().time())

    async def trigger(self, reason: str = "interval") -> CycleSummary | None:
        if self._state is SchedulerState.STOPPED:
            log_event(logger=self.logger, phase="schedule", message="Scheduler stopped; trigger ignored", reason=reason)
            return None
        if self._lock.locked():
            self.skipped_triggers += 1
            log_event(
                logger=self.logger,
                phase="schedule",
                status="warn",
                message="Cycle already running; skipping trigger",
                reason=reason,
            )
            return None

        async with self._lock:
            self._state = SchedulerState.RUNNING
            log_event(logger=self.logger, phase="schedule", message="Cycle triggered", reason=reason)
            try:
                summary = await self.runner.run_cycle()
            except Exception as exc:
                log_event(
                    logger=self.logger,
                    phase="schedule",
                    status="error",
                    message="Automation cycle failed",
                    error=str(exc),
                )
                return None
            finally:
                if self._state is SchedulerState.RUNNING:
                    self._state = SchedulerState.IDLE
            self.completed_cycles += 1
            return summary

    def start(self) -> None:
        if self._timer_task is not None:
            return
        log_event(
            logger=self.logger,
            phase="schedule",
            message=f"Auto-run every {self.interval_seconds / 60:g} minutes",
            countdown_seconds=self.countdown_seconds,
        )
        self._timer_task = asyncio.create_task(self._timer_loop())
        self._countdown_task = asyncio.create_task(self._countdown_loop())

    def spawn(self, reason: str) -> asyncio.Task:
        task = asyncio.create_task(self.trigger(reason))
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)
        return task

    async def _timer_loop(self) -> None:
        loop = asyncio.get_running_loop()
        # Cancelling the timer must not cancel the first cycle with it.
        await asyncio.wait({self.spawn("startup")})
        while self._state is not SchedulerState.STOPPED:
            self._next_run_at = loop.time() + self.interval_seconds
            await asyncio.sleep(self.interval_seconds)
            log_event(logger=self.logger, phase="schedule", message="Auto-run triggered")
            self.spawn("interval")

    async def _countdown_loop(self) -> None:
        while self._state is not SchedulerState.STOPPED:
            await asyncio.sleep(self.countdown_seconds)
            remaining = self.seconds_until_next_run()
            if remaining is None:
                continue
            minutes, seconds = divmod(int(remaining), 60)
            log_event(
                logger=self.logger,
                phase="schedule",
                message=f"Next cycle countdown: {minutes}m {seconds}s remaining",
                remaining_seconds=int(remaining),
            )

    async def stop(self) -> None:
        """Cancel the timers and ask the runner to start no further depots."""

        if self._state is SchedulerState.STOPPED:
            return
        self._state = SchedulerState.STOPPED
        self.runner.request_stop()
        for task in (self._timer_task, self._countdown_task):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        log_event(logger=self.logger, phase="shutdown", message="Scheduler stopped")

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for an in-flight cycle to wind down."""

        pending = [task for task in self._cycle_tasks if not task.done()]
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            log_event(
                logger=self.logger,
                phase="shutdown",
                status="warn",
                message="In-flight cycle cancelled after drain timeout",
            )
