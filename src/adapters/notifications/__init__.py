"""Notification adapters - Delivery transports and the async submission boundary."""

from .console import ConsoleNotificationSink
from .queue import QueuedNotificationSink

__all__ = ["ConsoleNotificationSink", "QueuedNotificationSink"]
