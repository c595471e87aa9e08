"""
Console notification transport - Delivers by logging.

This module provides a console-based transport for codes, reset links
and welcome messages, logging them for demo and development purposes.
"""

import logging
from typing import Any

from src.domain.models import OtpChannel

logger = logging.getLogger(__name__)


class ConsoleNotificationSink:
    """
    Implements NotificationSink protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints codes and links to stdout.
    """

    def deliver(
        self, channel: OtpChannel, destination: str, template: str, data: dict[str, Any]
    ) -> None:
        """
        Log the notification (simulates email/SMS delivery).

        In production, this would be replaced with an SMTP or SMS adapter.
        Logged at INFO level to be visible in docker-compose logs.

        Args:
            channel: EMAIL or SMS
            destination: Recipient email address or phone number
            template: Message kind (otp, password_reset, welcome)
            data: Template variables
        """
        if template == "otp":
            logger.info(
                "[VERIFICATION] %s: %s Code: %s Purpose: %s",
                channel.value,
                destination,
                data.get("code"),
                data.get("purpose"),
            )
        elif template == "password_reset":
            logger.info("[PASSWORD_RESET] %s: %s Link: %s", channel.value, destination, data.get("reset_link"))
        else:
            logger.info("[%s] %s: %s", template.upper(), channel.value, destination)
