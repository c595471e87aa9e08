"""
Ports the identity service depends on.

Stores, notification delivery, token signing and rate limiting are all
Protocols; adapters satisfy them structurally without inheriting.
"""

from datetime import datetime
from typing import Any, Protocol

from .models import (
    Account,
    AccountUpdate,
    FailedLogin,
    IssuedToken,
    OtpChannel,
    Session,
    SessionUpdate,
    TokenClaims,
    VerificationCode,
    VerificationCodeUpdate,
)


class AccountRepository(Protocol):
    """Port interface for account persistence."""

    def create(self, account: Account) -> Account:
        """
        Persist a new account.

        Raises:
            Conflict: If the normalized email is already bound to an account
        """
        ...

    def find_by_identifier(self, email: str) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def find_by_face_hash(self, template_hash: str) -> Account | None:
        """Return the face-enabled account enrolled with this template hash."""
        ...

    def update(self, account_id: str, changes: AccountUpdate) -> Account | None: ...

    def record_failed_login(
        self, account_id: str, threshold: int, lockout_until: datetime
    ) -> FailedLogin:
        """
        Atomically increment the failed sign-in counter.

        When the incremented counter reaches ``threshold`` the lockout is set
        to ``lockout_until`` in the same write, so concurrent failures can
        never under-count.
        """
        ...

    def clear_reset_token(self, token: str, password_hash: str, now: datetime) -> bool:
        """
        Consume a reset token and replace the password hash atomically.

        Returns:
            True if an unexpired token was consumed, False otherwise
        """
        ...

    def delete(self, account_id: str) -> bool: ...


class VerificationCodeRepository(Protocol):
    """Port interface for one-time code persistence."""

    def create(self, code: VerificationCode) -> VerificationCode: ...

    def find_by_id(self, code_id: str) -> VerificationCode | None: ...

    def update(self, code_id: str, changes: VerificationCodeUpdate) -> VerificationCode | None: ...

    def increment_attempts(self, code_id: str) -> int:
        """Atomically increment the attempt counter and return the new value."""
        ...

    def mark_used(self, code_id: str, used_at: datetime) -> bool:
        """
        Flip the used flag if the code is still unused.

        Returns:
            True for exactly one caller per code, False if already used
        """
        ...


class SessionRepository(Protocol):
    """Port interface for session persistence."""

    def create(self, session: Session) -> Session: ...

    def find_by_access_token(self, access_token: str) -> Session | None: ...

    def update_many_by_access_token(self, access_token: str, changes: SessionUpdate) -> int:
        """Apply ``changes`` to every session with this access token, returning the count."""
        ...


class NotificationSink(Protocol):
    """
    Port interface for outbound code/link delivery.

    Fire-and-forget: implementations return once the request is accepted
    and must not let delivery failures propagate to the caller.
    """

    def deliver(
        self, channel: OtpChannel, destination: str, template: str, data: dict[str, Any]
    ) -> None: ...


class TokenSigner(Protocol):
    """Port interface for signed access/refresh credentials."""

    def issue(self, subject: str, token_type: str, issued_at: datetime) -> IssuedToken:
        """Sign a credential of ``token_type`` whose expiry is derived from ``issued_at``."""
        ...

    def verify(self, token: str, token_type: str) -> TokenClaims:
        """
        Verify signature, issuer and expiry.

        Raises:
            TokenMalformed: Signature, issuer or structure invalid
            TokenExpired: Credential past its ``exp`` claim
        """
        ...


class RateLimiter(Protocol):
    """Port interface for sliding window throttles."""

    def allow(self, key: str) -> bool:
        """Return True when the request for ``key`` is within the limit."""
        ...
