"""Test doubles shared across the unit, adversarial and integration suites."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from src.adapters.tokens import JwtTokenSigner
from src.domain.models import Notification, OtpChannel

STRONG_PASSWORD = "Str0ng!Pass"


class FakeClock:
    """Clock anchored at real time so JWT expiry checks stay consistent."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class RecordingSink:
    """NotificationSink that keeps every submitted notification."""

    sent: list[Notification] = field(default_factory=list)

    def deliver(
        self, channel: OtpChannel, destination: str, template: str, data: dict[str, Any]
    ) -> None:
        self.sent.append(Notification(channel, destination, template, dict(data)))

    def last(self, template: str) -> Notification:
        return [n for n in self.sent if n.template == template][-1]

    def last_code(self) -> str:
        return self.last("otp").data["code"]


def make_signer() -> JwtTokenSigner:
    return JwtTokenSigner(
        access_secret="test-access-secret",
        refresh_secret="test-refresh-secret",
        issuer="identity-tests",
        access_ttl_seconds=45 * 60,
        refresh_ttl_seconds=21 * 24 * 60 * 60,
    )
