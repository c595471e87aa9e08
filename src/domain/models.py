"""
Domain entities - Accounts, verification codes and sessions.

Entities are plain dataclasses owned by the domain. Partial updates are
expressed with explicit ``*Update`` structs: every field defaults to
``UNSET`` so repositories can tell "leave alone" apart from "set to None".
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any


class AccountStatus(str, Enum):
    """
    Account lifecycle states.

    State Transitions:
    - PENDING_VERIFICATION -> ACTIVE (SIGNUP code verified)
    - ACTIVE -> SUSPENDED (external moderation, not handled here)
    """

    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class OtpChannel(str, Enum):
    """Side channel used to deliver a one-time code."""

    EMAIL = "EMAIL"
    SMS = "SMS"


class OtpPurpose(str, Enum):
    """What a verification code proves when consumed."""

    SIGNUP = "SIGNUP"
    LOGIN = "LOGIN"
    PASSWORD_RESET = "PASSWORD_RESET"
    PHONE_VERIFY = "PHONE_VERIFY"


class AuthMethod(str, Enum):
    EMAIL_PASSWORD = "EMAIL_PASSWORD"
    FACE_RECOGNITION = "FACE_RECOGNITION"


class _Unset:
    """Sentinel type for fields absent from a partial update."""

    _instance = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def changed_fields(update: Any) -> dict[str, Any]:
    """Return the fields of an update struct that were explicitly set."""
    return {f.name: getattr(update, f.name) for f in fields(update) if getattr(update, f.name) is not UNSET}


@dataclass
class Account:
    """Registered identity with credentials and verification state."""

    id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    created_at: datetime
    updated_at: datetime
    phone: str | None = None
    country: str | None = None
    otp_channel: OtpChannel = OtpChannel.EMAIL
    status: AccountStatus = AccountStatus.PENDING_VERIFICATION
    email_verified: bool = False
    phone_verified: bool = False
    failed_login_attempts: int = 0
    lockout_until: datetime | None = None
    last_login_at: datetime | None = None
    reset_token: str | None = None
    reset_token_expires_at: datetime | None = None
    face_enabled: bool = False
    face_template_hash: str | None = None

    def is_locked(self, now: datetime) -> bool:
        return self.lockout_until is not None and now < self.lockout_until


@dataclass
class AccountUpdate:
    """Explicit partial update for mutable account attributes."""

    password_hash: str = UNSET
    first_name: str = UNSET
    last_name: str = UNSET
    phone: str | None = UNSET
    status: AccountStatus = UNSET
    email_verified: bool = UNSET
    phone_verified: bool = UNSET
    failed_login_attempts: int = UNSET
    lockout_until: datetime | None = UNSET
    last_login_at: datetime | None = UNSET
    reset_token: str | None = UNSET
    reset_token_expires_at: datetime | None = UNSET
    face_enabled: bool = UNSET
    face_template_hash: str | None = UNSET


@dataclass
class FailedLogin:
    """Result of atomically recording a failed sign-in."""

    failed_login_attempts: int
    lockout_until: datetime | None


@dataclass
class VerificationCode:
    """Single-use numeric code bound to one account."""

    id: str
    account_id: str
    code: str
    channel: OtpChannel
    purpose: OtpPurpose
    destination: str
    expires_at: datetime
    created_at: datetime
    max_attempts: int
    attempts: int = 0
    used: bool = False
    used_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class VerificationCodeUpdate:
    attempts: int = UNSET
    used: bool = UNSET
    used_at: datetime | None = UNSET


@dataclass
class DeviceInfo:
    """Client metadata recorded on each session."""

    device_type: str = "web"
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass
class Session:
    """Server-side record backing an access/refresh credential pair."""

    id: str
    account_id: str
    access_token: str
    refresh_token: str
    auth_method: AuthMethod
    expires_at: datetime
    created_at: datetime
    device: DeviceInfo = field(default_factory=DeviceInfo)
    is_active: bool = True

    def is_valid(self, now: datetime) -> bool:
        return self.is_active and now < self.expires_at


@dataclass
class SessionUpdate:
    is_active: bool = UNSET
    expires_at: datetime = UNSET


@dataclass
class TokenClaims:
    """Verified contents of a signed credential."""

    subject: str
    token_type: str
    issued_at: datetime
    expires_at: datetime


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass
class Notification:
    """Delivery request handed to the notification sink."""

    channel: OtpChannel
    destination: str
    template: str
    data: dict[str, Any] = field(default_factory=dict)
