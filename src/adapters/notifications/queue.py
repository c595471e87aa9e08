"""
Queued notification sink - Asynchronous delivery boundary.

Wraps a delivery transport so the identity core only submits work.
Submission is the success boundary: delivery runs on a worker pool and
any transport failure is logged, never returned to the caller.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from src.domain.models import Notification, OtpChannel
from src.domain.ports import NotificationSink

logger = logging.getLogger(__name__)


class QueuedNotificationSink:
    """
    Implements NotificationSink protocol by submitting to a thread pool.

    Lifecycle (``shutdown``) is owned by the process entry point.
    """

    def __init__(self, transport: NotificationSink, max_workers: int = 4) -> None:
        self._transport = transport
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notifications"
        )

    def deliver(
        self, channel: OtpChannel, destination: str, template: str, data: dict[str, Any]
    ) -> None:
        notification = Notification(channel=channel, destination=destination, template=template, data=dict(data))
        try:
            future = self._executor.submit(self._send, notification)
        except RuntimeError:
            # Executor already shut down
            logger.error("Notification dropped after shutdown: template=%s", template)
            return
        future.add_done_callback(self._log_failure)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _send(self, notification: Notification) -> None:
        self._transport.deliver(
            notification.channel, notification.destination, notification.template, notification.data
        )

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Notification delivery failed: %s", exc, exc_info=exc)
