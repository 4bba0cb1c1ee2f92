from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping

__all__ = [
    "DEPOT_KEY",
    "RO_ID_KEY",
    "RO_NUMBER_KEY",
    "DepotGroup",
    "FailedRecord",
    "SuccessRecord",
    "WorkItem",
    "record_key",
    "utc_now_iso",
]

DEPOT_KEY = "DEPOT"
RO_NUMBER_KEY = "releaseOrderNumber"
RO_ID_KEY = "ID"

MISSING_RO_NUMBER = "N/A"
MISSING_RO_ID = "-1"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def record_key(value: Any) -> str:
    """Ledger key for a release order number; JSON may carry it as int or str."""

    return str(value)


@dataclass(frozen=True)
class WorkItem:
    """One normalized release order, read-only once built."""

    fields: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @property
    def depot(self) -> Any:
        return self.fields.get(DEPOT_KEY)

    @property
    def release_order_number(self) -> Any:
        return self.fields.get(RO_NUMBER_KEY) or MISSING_RO_NUMBER

    @property
    def release_order_id(self) -> Any:
        return self.fields.get(RO_ID_KEY) or MISSING_RO_ID

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.fields)


DepotGroup = Dict[str, List[WorkItem]]


@dataclass
class SuccessRecord:
    depot: str
    release_order_id: Any
    release_order_number: Any
    timestamp: str = field(default_factory=utc_now_iso)

    @classmethod
    def for_item(cls, depot: str, item: WorkItem) -> "SuccessRecord":
        return cls(
            depot=depot,
            release_order_id=item.release_order_id,
            release_order_number=item.release_order_number,
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "depot": self.depot,
            "releaseOrderID": self.release_order_id,
            "releaseOrderNumber": self.release_order_number,
            "timestamp": self.timestamp,
        }


@dataclass
class FailedRecord:
    depot: str
    release_order_id: Any
    release_order_number: Any
    reason: str
    timestamp: str = field(default_factory=utc_now_iso)

    @classmethod
    def for_item(cls, depot: str, item: WorkItem, reason: str) -> "FailedRecord":
        return cls(
            depot=depot,
            release_order_id=item.release_order_id,
            release_order_number=item.release_order_number,
            reason=reason,
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "depot": self.depot,
            "releaseOrderID": self.release_order_id,
            "releaseOrderNumber": self.release_order_number,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }
