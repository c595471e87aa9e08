"""
Domain layer - Pure business logic with zero framework imports.

This package contains the identity, verification and session lifecycle
logic. It defines its own port interfaces for infrastructure abstraction,
ensuring true hexagonal architecture decoupling.
"""

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
    TokenExpired,
    TokenMalformed,
    Unauthorized,
)
from .identity import IdentityPolicy, IdentityService, OtpBypass, SignupRequest
from .models import AccountStatus, AuthMethod, DeviceInfo, OtpChannel, OtpPurpose
from .ports import (
    AccountRepository,
    NotificationSink,
    RateLimiter,
    SessionRepository,
    TokenSigner,
    VerificationCodeRepository,
)

__all__ = [
    "AccountInactive",
    "AccountRepository",
    "AccountStatus",
    "AuthMethod",
    "Conflict",
    "DeviceInfo",
    "Expired",
    "Forbidden",
    "IdentityError",
    "IdentityPolicy",
    "IdentityService",
    "InternalError",
    "InvalidInput",
    "Locked",
    "NotFound",
    "NotificationSink",
    "OtpBypass",
    "OtpChannel",
    "OtpPurpose",
    "RateLimited",
    "RateLimiter",
    "SessionRepository",
    "SessionRevoked",
    "SignupRequest",
    "TokenExpired",
    "TokenMalformed",
    "TokenSigner",
    "Unauthorized",
    "VerificationCodeRepository",
]
