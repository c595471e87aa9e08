"""
FastAPI dependencies - Composition root and dependency injection factories.

This module wires infrastructure adapters into the identity domain
service and exposes Depends() factories for routes. Store handles are
created once per process by the application lifespan and injected into
the service; the service itself owns no lifecycle.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

import redis
from fastapi import Request
from psycopg_pool import ConnectionPool

from src.adapters.notifications import ConsoleNotificationSink, QueuedNotificationSink
from src.adapters.ratelimit import RedisSlidingWindowRateLimiter, SlidingWindowRateLimiter
from src.adapters.repository import (
    InMemoryAccountRepository,
    InMemorySessionRepository,
    InMemoryVerificationCodeRepository,
    PostgresAccountRepository,
    PostgresSessionRepository,
    PostgresVerificationCodeRepository,
)
from src.adapters.tokens import JwtTokenSigner
from src.config.settings import Settings
from src.domain.identity import IdentityPolicy, IdentityService, OtpBypass
from src.domain.models import DeviceInfo
from src.domain.passwords import PasswordHasher
from src.domain.ports import (
    AccountRepository,
    NotificationSink,
    RateLimiter,
    SessionRepository,
    VerificationCodeRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    """The three shared stores the identity service depends on."""

    accounts: AccountRepository
    codes: VerificationCodeRepository
    sessions: SessionRepository


def build_stores(settings: Settings, pool: ConnectionPool | None = None) -> Stores:
    """Create repositories for the configured storage backend."""
    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage backend")
        return Stores(
            accounts=InMemoryAccountRepository(),
            codes=InMemoryVerificationCodeRepository(),
            sessions=InMemorySessionRepository(),
        )
    if pool is None:
        raise ValueError("PostgreSQL storage backend requires a connection pool")
    return Stores(
        accounts=PostgresAccountRepository(pool),
        codes=PostgresVerificationCodeRepository(pool),
        sessions=PostgresSessionRepository(pool),
    )


def build_rate_limiter(settings: Settings, max_requests: int, window_seconds: int) -> RateLimiter:
    """Instantiate the configured limiter backend."""
    if settings.rate_limit_backend == "redis":
        if not settings.redis_url:
            raise ValueError("rate_limit_backend=redis requires redis_url")
        client = redis.Redis.from_url(settings.redis_url)
        return RedisSlidingWindowRateLimiter(
            client, max_requests=max_requests, window_seconds=window_seconds
        )
    return SlidingWindowRateLimiter(max_requests=max_requests, window_seconds=window_seconds)


def build_otp_bypass(settings: Settings) -> OtpBypass | None:
    """
    Construct the development OTP bypass, never for production.

    Settings validation already rejects a bypass code in production; this
    check keeps the bypass object from existing there at all.
    """
    if settings.is_production or not settings.otp_bypass_code:
        return None
    logger.warning("OTP bypass enabled for %s environment", settings.environment)
    return OtpBypass(settings.otp_bypass_code)


def build_identity_service(
    settings: Settings,
    stores: Stores,
    notifications: NotificationSink,
) -> IdentityService:
    """Wire stores, signer, limiters and policy into the identity service."""
    signer = JwtTokenSigner(
        access_secret=settings.jwt_access_secret,
        refresh_secret=settings.jwt_refresh_secret,
        issuer=settings.jwt_issuer,
        access_ttl_seconds=settings.access_token_ttl_seconds,
        refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
    )
    policy = IdentityPolicy(
        otp_ttl=timedelta(seconds=settings.otp_ttl_seconds),
        otp_length=settings.otp_length,
        otp_max_attempts=settings.otp_max_attempts,
        lockout_threshold=settings.lockout_threshold,
        lockout_duration=timedelta(seconds=settings.lockout_duration_seconds),
        reset_token_ttl=timedelta(seconds=settings.reset_token_ttl_seconds),
        reset_link_base_url=settings.reset_link_base_url,
    )
    return IdentityService(
        accounts=stores.accounts,
        codes=stores.codes,
        sessions=stores.sessions,
        notifications=notifications,
        tokens=signer,
        hasher=PasswordHasher(rounds=settings.bcrypt_cost),
        policy=policy,
        signup_limiter=build_rate_limiter(
            settings, settings.signup_rate_limit, settings.signup_rate_window_seconds
        ),
        face_login_limiter=build_rate_limiter(
            settings, settings.face_login_rate_limit, settings.face_login_rate_window_seconds
        ),
        otp_bypass=build_otp_bypass(settings),
    )


def build_notification_sink(settings: Settings) -> QueuedNotificationSink:
    """Console transport behind the asynchronous submission boundary."""
    return QueuedNotificationSink(ConsoleNotificationSink(), max_workers=settings.notification_workers)


def get_identity_service(request: Request) -> IdentityService:
    """Resolve the IdentityService stored on the FastAPI application state."""
    service: IdentityService = request.app.state.identity_service
    return service


def get_device_info(request: Request) -> DeviceInfo:
    """Derive session device metadata from the request headers."""
    user_agent = request.headers.get("user-agent")
    device_type = "mobile" if user_agent and "Mobile" in user_agent else "web"
    ip_address = request.client.host if request.client else None
    return DeviceInfo(device_type=device_type, user_agent=user_agent, ip_address=ip_address)
