"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for expiry and lockout windows
- In-memory stores and a fully wired IdentityService
- A recording notification sink
- Skipping integration tests when PostgreSQL is unreachable
"""

from collections.abc import Callable

import psycopg
import pytest

from src.adapters.repository import (
    InMemoryAccountRepository,
    InMemorySessionRepository,
    InMemoryVerificationCodeRepository,
)
from src.config.settings import get_settings
from src.domain.identity import IdentityPolicy, IdentityService, SignupRequest
from src.domain.passwords import PasswordHasher
from tests.support import STRONG_PASSWORD, FakeClock, RecordingSink, make_signer


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def accounts(clock: FakeClock) -> InMemoryAccountRepository:
    return InMemoryAccountRepository(clock=clock)


@pytest.fixture
def codes() -> InMemoryVerificationCodeRepository:
    return InMemoryVerificationCodeRepository()


@pytest.fixture
def sessions() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def service(
    accounts: InMemoryAccountRepository,
    codes: InMemoryVerificationCodeRepository,
    sessions: InMemorySessionRepository,
    sink: RecordingSink,
    clock: FakeClock,
) -> IdentityService:
    """IdentityService over in-memory stores, without rate limiters."""
    return IdentityService(
        accounts=accounts,
        codes=codes,
        sessions=sessions,
        notifications=sink,
        tokens=make_signer(),
        hasher=PasswordHasher(rounds=10),
        policy=IdentityPolicy(),
        clock=clock,
    )


@pytest.fixture
def register_active(service: IdentityService, sink: RecordingSink) -> Callable[..., str]:
    """Create and verify an account, returning its id."""

    def _register(email: str = "a@x.com", password: str = STRONG_PASSWORD) -> str:
        result = service.signup(
            SignupRequest(email=email, password=password, first_name="Ada", last_name="Lovelace")
        )
        service.verify_otp(result.otp.otp_id, sink.last_code())
        return result.account_id

    return _register


def _postgres_available() -> bool:
    try:
        with psycopg.connect(get_settings().database_url, connect_timeout=2):
            return True
    except psycopg.Error:
        return False


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    integration = [item for item in items if "integration" in item.keywords]
    if not integration or _postgres_available():
        return
    skip = pytest.mark.skip(reason="PostgreSQL is not reachable")
    for item in integration:
        item.add_marker(skip)
