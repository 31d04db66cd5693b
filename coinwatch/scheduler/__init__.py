"""Alert evaluation and scheduling."""

from coinwatch.scheduler.checker import PriceAlertChecker, evaluate_condition
from coinwatch.scheduler.service import AlertSchedulerService, SchedulerState, next_aligned_tick

__all__ = [
    "AlertSchedulerService",
    "PriceAlertChecker",
    "SchedulerState",
    "evaluate_condition",
    "next_aligned_tick",
]
