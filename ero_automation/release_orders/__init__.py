"""Release order cycle: fetch, group by depot, process each depot, record outcomes."""

from ero_automation.release_orders.cycle import CycleRunner, CycleSummary
from ero_automation.release_orders.depot_session import DepotAborted, DepotSession, SessionState
from ero_automation.release_orders.grouping import group_by_depot, normalize
from ero_automation.release_orders.ledger import ResultLedger
from ero_automation.release_orders.models import FailedRecord, SuccessRecord, WorkItem
from ero_automation.release_orders.scheduler import CycleScheduler, SchedulerState

__all__ = [
    "CycleRunner",
    "CycleScheduler",
    "CycleSummary",
    "DepotAborted",
    "DepotSession",
    "FailedRecord",
    "ResultLedger",
    "SchedulerState",
    "SessionState",
    "SuccessRecord",
    "WorkItem",
    "group_by_depot",
    "normalize",
]
