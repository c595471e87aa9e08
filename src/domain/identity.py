"""
Identity domain service - verification and session lifecycle.

This module contains the core business logic that turns a registration
request into a verified, authenticated, session-bearing account.

Account State Machine
=====================

States:
- PENDING_VERIFICATION: Initial state after signup (no sessions allowed)
- ACTIVE: Reached once a SIGNUP code is verified
- SUSPENDED: Set by external moderation, never by this service

Valid Transitions:
    PENDING_VERIFICATION -> ACTIVE   (SIGNUP code consumed)

Verification codes are single-use: a code that is expired, exhausted or
used can never be consumed again. Counters that guard against guessing
(failed sign-ins, OTP attempts) are incremented atomically by the
repositories so concurrent failures cannot under-count.

Notification delivery is fire-and-forget. Submission failures are logged
and never surface to the caller.
"""

import functools
import hashlib
import json
import logging
import re
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from .exceptions import (
    AccountInactive,
    Conflict,
    Expired,
    Forbidden,
    IdentityError,
    InternalError,
    InvalidInput,
    Locked,
    NotFound,
    RateLimited,
    SessionRevoked,
    Unauthorized,
)
from .models import (
    Account,
    AccountStatus,
    AccountUpdate,
    AuthMethod,
    DeviceInfo,
    OtpChannel,
    OtpPurpose,
    Session,
    SessionUpdate,
    TokenClaims,
    VerificationCode,
)
from .passwords import PasswordHasher, PasswordPolicy
from .ports import (
    AccountRepository,
    NotificationSink,
    RateLimiter,
    SessionRepository,
    TokenSigner,
    VerificationCodeRepository,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger(f"{__name__}.security")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

PASSWORD_RESET_MESSAGE = "If the email exists, a password reset link has been sent"

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    """
    Normalize email address for consistent storage and lookup.

    Applies: strip whitespace + lowercase
    """
    return email.strip().lower()


def face_template_hash(template: Any) -> str:
    """Stable SHA-256 content hash of a client-derived biometric template."""
    canonical = json.dumps(template, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass(frozen=True)
class IdentityPolicy:
    """Tunable limits for verification, lockout and reset flows."""

    otp_ttl: timedelta = timedelta(minutes=5)
    otp_length: int = 6
    otp_max_attempts: int = 4
    lockout_threshold: int = 5
    lockout_duration: timedelta = timedelta(minutes=15)
    reset_token_ttl: timedelta = timedelta(minutes=15)
    reset_link_base_url: str = "http://localhost:3000/reset-password"


@dataclass(frozen=True)
class OtpBypass:
    """
    Fixed sentinel code accepted in place of any real code.

    Only the composition root may construct one, and it never does for a
    production environment.
    """

    code: str

    def matches(self, submitted: str) -> bool:
        return secrets.compare_digest(self.code.encode(), submitted.encode())


@dataclass
class SignupRequest:
    email: str
    password: str
    first_name: str
    last_name: str
    otp_channel: OtpChannel = OtpChannel.EMAIL
    phone: str | None = None
    country: str | None = None


@dataclass
class OtpIssued:
    """Opaque reference to a freshly issued code. Never carries the code itself."""

    otp_id: str
    channel: OtpChannel
    purpose: OtpPurpose
    expires_at: datetime


@dataclass
class SignupResult:
    account_id: str
    status: AccountStatus
    otp: OtpIssued


@dataclass
class OtpVerification:
    account: Account
    purpose: OtpPurpose


@dataclass
class AuthResult:
    """Credential pair minted for a new session."""

    account: Account
    session: Session
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime


@dataclass
class Principal:
    """Account resolved from a verified bearer credential."""

    account: Account
    claims: TokenClaims
    session: Session | None = None


def _guarded(func: Callable) -> Callable:
    """Wrap unexpected store/signing failures into InternalError."""

    @functools.wraps(func)
    def wrapper(self: "IdentityService", *args: Any, **kwargs: Any) -> Any:
        try:
            return func(self, *args, **kwargs)
        except IdentityError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure in %s", func.__name__)
            raise InternalError() from exc

    return wrapper


@dataclass
class IdentityService:
    """
    Domain service for identity, verification and sessions.

    Orchestrates signup, OTP issuance and verification, sign-in with
    lockout, biometric login, password reset, token verification and
    logout. Holds no state beyond its injected collaborators, so any
    number of replicas can share the same stores.
    """

    accounts: AccountRepository
    codes: VerificationCodeRepository
    sessions: SessionRepository
    notifications: NotificationSink
    tokens: TokenSigner
    hasher: PasswordHasher = field(default_factory=PasswordHasher)
    policy: IdentityPolicy = field(default_factory=IdentityPolicy)
    password_policy: PasswordPolicy = field(default_factory=PasswordPolicy)
    signup_limiter: RateLimiter | None = None
    face_login_limiter: RateLimiter | None = None
    otp_bypass: OtpBypass | None = None
    clock: Callable[[], datetime] = _utcnow

    @functools.cached_property
    def _dummy_password_hash(self) -> str:
        # Compared against when the identifier is unknown so response time
        # does not reveal account existence.
        return self.hasher.hash(secrets.token_urlsafe(16))

    # Signup and verification -------------------------------------------

    @_guarded
    def signup(self, request: SignupRequest) -> SignupResult:
        """
        Create a PENDING_VERIFICATION account and issue a SIGNUP code.

        Raises:
            InvalidInput: Malformed email, weak password, missing phone for SMS
            RateLimited: Too many signups for this email within the window
            Conflict: Email already bound to an account
        """
        email = normalize_email(request.email)
        if not _EMAIL_PATTERN.match(email):
            raise InvalidInput("Invalid email address", reason="invalid_email")
        self._check_password(request.password)
        phone = request.phone.strip() if request.phone else None
        if request.otp_channel == OtpChannel.SMS and not phone:
            raise InvalidInput("Phone number is required for SMS verification", reason="phone_required")

        if self.signup_limiter is not None and not self.signup_limiter.allow(f"signup:{email}"):
            raise RateLimited(
                "Too many signup attempts. Please wait before trying again.",
                reason="signup_rate_limited",
            )

        if self.accounts.find_by_identifier(email) is not None:
            raise Conflict("User already exists with this email")

        now = self.clock()
        account = self.accounts.create(
            Account(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=self.hasher.hash(request.password),
                first_name=request.first_name.strip(),
                last_name=request.last_name.strip(),
                phone=phone,
                country=request.country,
                otp_channel=request.otp_channel,
                status=AccountStatus.PENDING_VERIFICATION,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Account created pending verification: %s", account.id)

        issued = self._issue_code(account, request.otp_channel, OtpPurpose.SIGNUP)
        return SignupResult(account_id=account.id, status=account.status, otp=issued)

    @_guarded
    def issue_otp(self, account_id: str, channel: OtpChannel, purpose: OtpPurpose) -> OtpIssued:
        """Issue a brand new code for the account. Old codes are never reused."""
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise NotFound("User not found", reason="account_not_found")
        return self._issue_code(account, channel, purpose)

    @_guarded
    def resend_otp(self, account_id: str) -> OtpIssued:
        """Issue a fresh SIGNUP code over the account's preferred channel."""
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise NotFound("User not found", reason="account_not_found")
        if account.status != AccountStatus.PENDING_VERIFICATION:
            raise InvalidInput("User is already verified", reason="already_verified")
        return self._issue_code(account, account.otp_channel, OtpPurpose.SIGNUP)

    @_guarded
    def verify_otp(self, otp_id: str, submitted_code: str) -> OtpVerification:
        """
        Consume a code and apply its purpose-specific side effect.

        Check order, each a distinct failure reason:
        1. Record exists                      -> NotFound (not_found)
        2. Not already used                   -> Expired (used)
        3. Not expired                        -> Expired (expired)
        4. Attempts remaining                 -> Expired (max_attempts)
        5. Code matches, else attempt counted -> InvalidInput (mismatch)
        """
        record = self.codes.find_by_id(otp_id)
        if record is None:
            raise NotFound("Invalid OTP", reason="not_found")
        if record.used:
            raise Expired("OTP already used", reason="used")
        now = self.clock()
        if record.is_expired(now):
            raise Expired("OTP expired", reason="expired")
        if record.attempts >= record.max_attempts:
            raise Expired("Maximum OTP attempts exceeded", reason="max_attempts")

        if self.otp_bypass is not None and self.otp_bypass.matches(submitted_code):
            logger.warning("OTP bypass code accepted for code record %s", record.id)
        elif not secrets.compare_digest(record.code.encode(), submitted_code.encode()):
            attempts = self.codes.increment_attempts(record.id)
            security_logger.warning(
                "OTP verification failed",
                extra={"account_id": record.account_id, "attempts": attempts, "reason": "mismatch"},
            )
            raise InvalidInput("Invalid OTP code", reason="mismatch")

        if not self.codes.mark_used(record.id, now):
            current = self.codes.find_by_id(record.id)
            if current is not None and not current.used:
                raise Expired("Maximum OTP attempts exceeded", reason="max_attempts")
            raise Expired("OTP already used", reason="used")

        account = self._apply_code_purpose(record)
        return OtpVerification(account=account, purpose=record.purpose)

    # Sign-in ------------------------------------------------------------

    @_guarded
    def sign_in(self, email: str, password: str, device: DeviceInfo | None = None) -> AuthResult:
        """
        Authenticate with email and password, returning a new session.

        Raises:
            Unauthorized: Unknown email or wrong password (indistinguishable)
            Forbidden: Account pending verification or not active
            Locked: Lockout still in effect
        """
        email = normalize_email(email)
        account = self.accounts.find_by_identifier(email)
        if account is None:
            self.hasher.verify(password, self._dummy_password_hash)
            security_logger.info("Login failed", extra={"reason": "unknown_identifier"})
            raise Unauthorized()

        if account.status == AccountStatus.PENDING_VERIFICATION:
            raise Forbidden(
                "Please verify your OTP to activate your account", reason="pending_verification"
            )
        if account.status != AccountStatus.ACTIVE:
            raise AccountInactive()

        now = self.clock()
        if account.is_locked(now):
            raise Locked(reason="lockout")

        if not self.hasher.verify(password, account.password_hash):
            failure = self.accounts.record_failed_login(
                account.id,
                self.policy.lockout_threshold,
                now + self.policy.lockout_duration,
            )
            security_logger.warning(
                "Login failed",
                extra={
                    "account_id": account.id,
                    "reason": "invalid_password",
                    "attempts": failure.failed_login_attempts,
                    "locked": failure.lockout_until is not None and now < failure.lockout_until,
                },
            )
            raise Unauthorized()

        self.accounts.update(
            account.id,
            AccountUpdate(failed_login_attempts=0, lockout_until=None, last_login_at=now),
        )
        security_logger.info(
            "Login succeeded",
            extra={"account_id": account.id, "device_type": (device or DeviceInfo()).device_type},
        )
        return self._open_session(account, AuthMethod.EMAIL_PASSWORD, device or DeviceInfo())

    @_guarded
    def enable_face_login(self, account_id: str, template: Any) -> Account:
        """Enrol the content hash of a biometric template for an active account."""
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise NotFound("User not found", reason="account_not_found")
        if account.status != AccountStatus.ACTIVE:
            raise AccountInactive()
        updated = self.accounts.update(
            account.id,
            AccountUpdate(face_enabled=True, face_template_hash=face_template_hash(template)),
        )
        logger.info("Face login enabled for account %s", account.id)
        return updated or account

    @_guarded
    def face_login(self, template: Any, device: DeviceInfo | None = None) -> AuthResult:
        """
        Authenticate by biometric template hash.

        A failed match cannot be attributed to an account, so attempts are
        throttled per client address. Matched accounts still honour the
        account status and lockout rules of password sign-in.
        """
        device = device or DeviceInfo(device_type="mobile")
        client_key = device.ip_address or "unknown"
        if self.face_login_limiter is not None and not self.face_login_limiter.allow(f"face:{client_key}"):
            raise RateLimited(reason="face_login_rate_limited")

        account = self.accounts.find_by_face_hash(face_template_hash(template))
        if account is None or not account.face_enabled:
            security_logger.info("Face login failed", extra={"reason": "no_match"})
            raise Unauthorized("Face recognition failed", reason="face_mismatch")
        if account.status != AccountStatus.ACTIVE:
            raise AccountInactive()
        now = self.clock()
        if account.is_locked(now):
            raise Locked(reason="lockout")

        self.accounts.update(account.id, AccountUpdate(last_login_at=now))
        return self._open_session(account, AuthMethod.FACE_RECOGNITION, device)

    # Password reset -----------------------------------------------------

    @_guarded
    def request_password_reset(self, email: str) -> str:
        """
        Start a password reset.

        Returns the same message whether or not the email exists.
        """
        email = normalize_email(email)
        token = secrets.token_hex(32)
        expires_at = self.clock() + self.policy.reset_token_ttl
        account = self.accounts.find_by_identifier(email)
        if account is None:
            security_logger.info("Password reset requested", extra={"reason": "unknown_identifier"})
            return PASSWORD_RESET_MESSAGE

        self.accounts.update(
            account.id, AccountUpdate(reset_token=token, reset_token_expires_at=expires_at)
        )
        security_logger.info("Password reset requested", extra={"account_id": account.id})
        self._notify(
            OtpChannel.EMAIL,
            account.email,
            "password_reset",
            {
                "token": token,
                "reset_link": f"{self.policy.reset_link_base_url}?token={token}",
                "expires_in_minutes": int(self.policy.reset_token_ttl.total_seconds() // 60),
            },
        )
        return PASSWORD_RESET_MESSAGE

    @_guarded
    def complete_password_reset(self, token: str, new_password: str) -> None:
        """
        Replace the password using an unexpired reset token.

        The token is cleared in the same write, so it can be used once.
        """
        self._check_password(new_password)
        consumed = self.accounts.clear_reset_token(
            token, self.hasher.hash(new_password), self.clock()
        )
        if not consumed:
            raise Expired("Invalid or expired reset token", reason="reset_token")
        security_logger.info("Password reset completed")

    # Sessions -----------------------------------------------------------

    @_guarded
    def logout(self, access_token: str) -> int:
        """Deactivate every session bound to this access token."""
        count = self.sessions.update_many_by_access_token(access_token, SessionUpdate(is_active=False))
        logger.info("Deactivated %d session(s) on logout", count)
        return count

    @_guarded
    def verify_token(self, token: str, require_session: bool = True) -> Principal:
        """
        Resolve a bearer credential into an active account (and session).

        Raises:
            TokenMalformed: Signature or structure invalid
            TokenExpired: Credential past its expiry
            NotFound: Subject no longer exists
            AccountInactive: Account is not ACTIVE
            SessionRevoked: No matching active, unexpired session
        """
        claims = self.tokens.verify(token, ACCESS_TOKEN)
        account = self.accounts.find_by_id(claims.subject)
        if account is None:
            raise NotFound("User not found", reason="account_not_found")
        if account.status != AccountStatus.ACTIVE:
            raise AccountInactive()

        session = None
        if require_session:
            session = self.sessions.find_by_access_token(token)
            if session is None or session.account_id != account.id or not session.is_valid(self.clock()):
                raise SessionRevoked()
        return Principal(account=account, claims=claims, session=session)

    @_guarded
    def get_account(self, account_id: str) -> Account:
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise NotFound("User not found", reason="account_not_found")
        return account

    # Internals ----------------------------------------------------------

    def _check_password(self, password: str) -> None:
        violations = self.password_policy.violations(password)
        if violations:
            raise InvalidInput(
                "Password must contain " + ", ".join(violations), reason="weak_password"
            )

    def _generate_code(self) -> str:
        """
        Generate a cryptographically secure fixed-width numeric code.

        Returns string to preserve leading zeros.
        """
        return "".join(secrets.choice("0123456789") for _ in range(self.policy.otp_length))

    def _issue_code(self, account: Account, channel: OtpChannel, purpose: OtpPurpose) -> OtpIssued:
        if channel == OtpChannel.SMS:
            if not account.phone:
                raise InvalidInput("No phone number on file for SMS delivery", reason="phone_required")
            destination = account.phone
        else:
            destination = account.email

        now = self.clock()
        record = self.codes.create(
            VerificationCode(
                id=str(uuid.uuid4()),
                account_id=account.id,
                code=self._generate_code(),
                channel=channel,
                purpose=purpose,
                destination=destination,
                expires_at=now + self.policy.otp_ttl,
                created_at=now,
                max_attempts=self.policy.otp_max_attempts,
            )
        )
        logger.info(
            "Issued %s code %s for account %s via %s", purpose.value, record.id, account.id, channel.value
        )
        self._notify(
            channel,
            destination,
            "otp",
            {
                "code": record.code,
                "purpose": purpose.value,
                "expires_in_minutes": int(self.policy.otp_ttl.total_seconds() // 60),
            },
        )
        return OtpIssued(otp_id=record.id, channel=channel, purpose=purpose, expires_at=record.expires_at)

    def _apply_code_purpose(self, record: VerificationCode) -> Account:
        account = self.accounts.find_by_id(record.account_id)
        if account is None:
            raise NotFound("User not found", reason="account_not_found")

        if record.purpose == OtpPurpose.SIGNUP:
            changes = AccountUpdate()
            if account.status == AccountStatus.PENDING_VERIFICATION:
                changes.status = AccountStatus.ACTIVE
            if record.channel == OtpChannel.SMS:
                changes.phone_verified = True
            else:
                changes.email_verified = True
            account = self.accounts.update(account.id, changes) or account
            logger.info("Account %s verified and activated", account.id)
            self._notify(OtpChannel.EMAIL, account.email, "welcome", {"first_name": account.first_name})
        elif record.purpose == OtpPurpose.PHONE_VERIFY:
            account = self.accounts.update(account.id, AccountUpdate(phone_verified=True)) or account
        return account

    def _open_session(self, account: Account, method: AuthMethod, device: DeviceInfo) -> AuthResult:
        now = self.clock()
        access = self.tokens.issue(account.id, ACCESS_TOKEN, now)
        refresh = self.tokens.issue(account.id, REFRESH_TOKEN, now)
        session = self.sessions.create(
            Session(
                id=str(uuid.uuid4()),
                account_id=account.id,
                access_token=access.token,
                refresh_token=refresh.token,
                auth_method=method,
                device=device,
                expires_at=refresh.expires_at,
                created_at=now,
            )
        )
        return AuthResult(
            account=account,
            session=session,
            access_token=access.token,
            access_expires_at=access.expires_at,
            refresh_token=refresh.token,
            refresh_expires_at=refresh.expires_at,
        )

    def _notify(self, channel: OtpChannel, destination: str, template: str, data: dict[str, Any]) -> None:
        # Submission is the success boundary; failures are logged only.
        try:
            self.notifications.deliver(channel, destination, template, data)
        except Exception:
            logger.exception("Notification submission failed: template=%s channel=%s", template, channel.value)
