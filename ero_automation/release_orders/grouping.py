from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping

from ero_automation.common.json_logger import JsonLogger, log_event

from .models import DEPOT_KEY, DepotGroup, WorkItem

__all__ = ["group_by_depot", "normalize", "persist_grouped_snapshot", "file_timestamp"]


def file_timestamp(moment: datetime | None = None) -> str:
    """ISO timestamp safe for use in file names."""

    value = (moment or datetime.now(timezone.utc)).isoformat()
    return value.replace(":", "-").replace(".", "-").replace("+", "_")


def _unwrap(value: Any) -> Any:
    if isinstance(value, Mapping) and "v" in value:
        return value["v"]
    return value


def normalize(raw_item: Mapping[str, Any]) -> WorkItem:
    """Unwrap ``{"v": value}`` fields into plain scalars.

    Plain fields pass through untouched, so normalizing twice is harmless.
    """

    return WorkItem({key: _unwrap(value) for key, value in raw_item.items()})


def _has_depot(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def group_by_depot(raw_items: Iterable[Any], *, logger: JsonLogger) -> DepotGroup:
    grouped: DepotGroup = {}
    skipped = 0
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            skipped += 1
            log_event(
                logger=logger,
                phase="group",
                status="warn",
                message="Item is not a record, skipping",
                raw_item=raw,
            )
            continue
        item = normalize(raw)
        if not _has_depot(item.depot):
            skipped += 1
            log_event(
                logger=logger,
                phase="group",
                status="warn",
                message=f"Item missing {DEPOT_KEY} field, skipping",
                raw_item=dict(raw),
            )
            continue
        grouped.setdefault(str(item.depot).strip(), []).append(item)

    log_event(
        logger=logger,
        phase="group",
        message="Grouped data by DEPOT",
        depots=list(grouped.keys()),
        skipped=skipped,
    )
    return grouped


def persist_grouped_snapshot(grouped: DepotGroup, *, data_dir: Path, logger: JsonLogger) -> Path | None:
    summary: Dict[str, int] = {depot: len(items) for depot, items in grouped.items()}
    payload = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": summary,
        "data": {depot: [item.as_dict() for item in items] for depot, items in grouped.items()},
    }
    path = data_dir / f"grouped-{file_timestamp()}.json"
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, default=str, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        log_event(
            logger=logger,
            phase="group",
            status="error",
            message="Failed to save grouped data snapshot",
            path=str(path),
            error=str(exc),
        )
        return None
    log_event(logger=logger, phase="group", message="Grouped data saved", path=str(path), summary=summary)
    return path
