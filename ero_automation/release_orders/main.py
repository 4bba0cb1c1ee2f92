from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
from typing import Any, Mapping, Sequence

from playwright.async_api import async_playwright

from ero_automation.automation.browser import BrowserManager, launch_browser
from ero_automation.automation.executor import ActionExecutor, PacingPolicy
from ero_automation.automation.popups import PopupClassifier
from ero_automation.common.json_logger import JsonLogger, get_logger, log_event
from ero_automation.config import Config, ConfigError

from .api_client import ReleaseOrderApiClient
from .cycle import CycleRunner
from .ledger import ResultLedger
from .scheduler import CycleScheduler
from .site_config import Account, SiteConfig, SiteConfigError, load_accounts, load_site_config

__all__ = ["main", "run", "MODES", "EXIT_OK", "EXIT_BROWSER_FAILURE", "EXIT_CONFIG_ERROR"]

MODES = ("run", "once")
EXIT_OK = 0
EXIT_BROWSER_FAILURE = 1
EXIT_CONFIG_ERROR = 2
DRAIN_TIMEOUT_SECONDS = 30


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Some environments (e.g. Windows) do not support custom signal handlers.
            pass


def build_runner(
    *,
    config: Config,
    site: SiteConfig,
    accounts: Mapping[str, Account],
    manager: BrowserManager,
    api: ReleaseOrderApiClient,
    logger: JsonLogger,
) -> CycleRunner:
    executor = ActionExecutor(
        logger,
        timeout_ms=config.action_timeout_ms,
        pacing=PacingPolicy(min_ms=config.action_delay_min_ms, max_ms=config.action_delay_max_ms),
    )
    return CycleRunner(
        fetch=api.fetch_work_items,
        site=site,
        accounts=accounts,
        manager=manager,
        executor=executor,
        classifier=PopupClassifier(logger, site.popups),
        ledger=ResultLedger(config.results_dir, logger=logger),
        data_dir=config.data_dir,
        logger=logger,
        max_attempts=config.fetch_max_attempts,
        retry_delay_seconds=config.fetch_retry_delay_seconds,
    )


async def _run_with_playwright(
    playwright: Any,
    *,
    mode: str,
    config: Config,
    site: SiteConfig,
    accounts: Mapping[str, Account],
    logger: JsonLogger,
) -> int:
    try:
        browser = await launch_browser(playwright=playwright, logger=logger, headless=config.headless)
    except Exception as exc:
        log_event(logger=logger, phase="init", status="error", message="Failed to launch browser", error=str(exc))
        return EXIT_BROWSER_FAILURE

    manager = BrowserManager(browser, logger)
    try:
        request_context = await playwright.request.new_context(base_url=config.api_url)
    except Exception:
        await manager.close()
        raise
    api = ReleaseOrderApiClient(
        request_context, logger, req_id=config.api_req_id, app_version=config.api_app_version
    )
    runner = build_runner(
        config=config, site=site, accounts=accounts, manager=manager, api=api, logger=logger
    )
    scheduler = CycleScheduler(
        runner,
        interval_minutes=config.update_interval_minutes,
        countdown_seconds=config.countdown_seconds,
        logger=logger,
    )

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    log_event(logger=logger, phase="init", message="System initialized", mode=mode, site=site.name)

    try:
        if mode == "once":
            cycle = scheduler.spawn("once")
            stop_waiter = asyncio.create_task(stop_event.wait())
            await asyncio.wait({cycle, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            stop_waiter.cancel()
        else:
            scheduler.start()
            await stop_event.wait()
        if stop_event.is_set():
            log_event(logger=logger, phase="shutdown", message="Shutdown signal received")
    finally:
        await scheduler.stop()
        # Closing the browser makes an in-flight depot abort instead of running on.
        await manager.close()
        await scheduler.drain(timeout=DRAIN_TIMEOUT_SECONDS)
        with contextlib.suppress(Exception):
            await request_context.dispose()
        log_event(logger=logger, phase="shutdown", message="System shutdown complete")
    return EXIT_OK


async def main(*, mode: str = "run", run_id: str | None = None, env: Mapping[str, str] | None = None) -> int:
    try:
        config = Config.load_from_env(env)
    except ConfigError as exc:
        bootstrap = get_logger(run_id=run_id)
        log_event(logger=bootstrap, phase="init", status="error", message="Invalid configuration", error=str(exc))
        bootstrap.close()
        return EXIT_CONFIG_ERROR

    logger = get_logger(run_id=run_id, log_file_path=config.json_log_file or None)
    try:
        try:
            site = load_site_config(config.sites_config)
            accounts = load_accounts(config.accounts_config)
        except SiteConfigError as exc:
            log_event(logger=logger, phase="init", status="error", message="Invalid site configuration", error=str(exc))
            return EXIT_CONFIG_ERROR

        log_event(
            logger=logger,
            phase="init",
            message="Configuration loaded",
            site=site.name,
            login_actions=len(site.login_actions),
            item_actions=len(site.item_actions),
            accounts=len(accounts),
        )
        async with async_playwright() as playwright:
            return await _run_with_playwright(
                playwright, mode=mode, config=config, site=site, accounts=accounts, logger=logger
            )
    finally:
        logger.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the release order automation")
    parser.add_argument("mode", nargs="?", choices=MODES, default="run", help="Scheduled loop or a single cycle")
    parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")
    return parser


async def _async_entrypoint(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    return await main(mode=args.mode, run_id=args.run_id)


def run(argv: Sequence[str] | None = None) -> int:
    return asyncio.run(_async_entrypoint(argv))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(run())
