"""定时任务调度."""

from feedhub.scheduler.cycle import CycleScheduler, SchedulerState, report_to_dict
from feedhub.scheduler.tasks import create_scheduler, get_cycle_scheduler, shutdown_scheduler

__all__ = [
    "CycleScheduler",
    "SchedulerState",
    "create_scheduler",
    "get_cycle_scheduler",
    "report_to_dict",
    "shutdown_scheduler",
]
