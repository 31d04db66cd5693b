"""Data models for coinwatch."""

from coinwatch.models.alert import SYMBOL_PATTERN, Alert, AlertWithOwner, Direction
from coinwatch.models.check import CheckResult, RunSummary
from coinwatch.models.job import Job, JobState, JobType, QueueStats
from coinwatch.models.notification import (
    BulkNotificationResult,
    NotificationPayload,
    PriceAlertNotification,
    PushNotificationRequest,
    PushResult,
)
from coinwatch.models.quote import PriceQuote, PriceRequest, PriceResponse
from coinwatch.models.user import User

__all__ = [
    "SYMBOL_PATTERN",
    "Alert",
    "AlertWithOwner",
    "BulkNotificationResult",
    "CheckResult",
    "Direction",
    "Job",
    "JobState",
    "JobType",
    "NotificationPayload",
    "PriceAlertNotification",
    "PriceQuote",
    "PriceRequest",
    "PriceResponse",
    "PushNotificationRequest",
    "PushResult",
    "QueueStats",
    "RunSummary",
    "User",
]
