"""
Domain exceptions - Semantic error types for identity flows.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each error carries a stable ``kind`` for machine consumers, a
caller-safe ``message`` and an optional finer-grained ``reason``.
"""


class IdentityError(Exception):
    """Base class for identity domain errors."""

    kind = "internal"
    default_message = "Identity operation failed"

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        self.message = message or self.default_message
        self.reason = reason
        super().__init__(self.message)


class InvalidInput(IdentityError):
    """Caller-fixable validation or policy failure."""

    kind = "invalid_input"
    default_message = "Invalid input"


class Conflict(IdentityError):
    """Identifier is already bound to an account."""

    kind = "conflict"
    default_message = "Account already exists"


class Unauthorized(IdentityError):
    """Bad credential. Intentionally generic."""

    kind = "unauthorized"
    default_message = "Invalid credentials"


class Forbidden(IdentityError):
    """Valid identity in a state that does not allow the operation."""

    kind = "forbidden"
    default_message = "Operation not permitted"


class Locked(IdentityError):
    """Temporary lockout after repeated failures."""

    kind = "locked"
    default_message = "Account is temporarily locked"


class NotFound(IdentityError):
    kind = "not_found"
    default_message = "Not found"


class RateLimited(IdentityError):
    kind = "rate_limited"
    default_message = "Too many requests, please try again later"


class Expired(IdentityError):
    """OTP, reset token or credential no longer usable."""

    kind = "expired"
    default_message = "Expired"


class InternalError(IdentityError):
    """Unexpected store or signing failure. Detail stays in logs."""

    kind = "internal"
    default_message = "Internal error"


class TokenMalformed(Unauthorized):
    default_message = "Invalid token"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, reason="malformed")


class TokenExpired(Expired):
    default_message = "Token expired"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, reason="token_expired")


class AccountInactive(Forbidden):
    default_message = "Account not active"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, reason="account_inactive")


class SessionRevoked(Unauthorized):
    default_message = "Invalid or expired session"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, reason="session_revoked")
