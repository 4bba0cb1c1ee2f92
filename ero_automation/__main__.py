from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Sequence

from ero_automation.release_orders import main as release_orders_main


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ero_automation", description="Release order automation entrypoint")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a cycle now and then every update interval until stopped")
    run_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")

    once_parser = subparsers.add_parser("once", help="Run a single cycle and exit")
    once_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()
    parsed = parser.parse_args(args)

    if parsed.command in release_orders_main.MODES:
        return asyncio.run(release_orders_main.main(mode=parsed.command, run_id=parsed.run_id))

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
