"""coinwatch - crypto price alert checking and push notification service."""

__version__ = "0.1.0"
