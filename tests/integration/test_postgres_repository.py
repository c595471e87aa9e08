"""
Integration tests for the PostgreSQL repository adapters.

Tests repository operations and their atomic counters against a real
PostgreSQL database.
"""

import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import (
    PostgresAccountRepository,
    PostgresSessionRepository,
    PostgresVerificationCodeRepository,
)
from src.domain.exceptions import Conflict
from src.domain.models import (
    Account,
    AccountStatus,
    AccountUpdate,
    AuthMethod,
    DeviceInfo,
    OtpChannel,
    OtpPurpose,
    Session,
    SessionUpdate,
    VerificationCode,
)

pytestmark = pytest.mark.integration

NOW = datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def accounts(pool: ConnectionPool) -> PostgresAccountRepository:
    return PostgresAccountRepository(pool)


@pytest.fixture
def codes(pool: ConnectionPool) -> PostgresVerificationCodeRepository:
    return PostgresVerificationCodeRepository(pool)


@pytest.fixture
def sessions(pool: ConnectionPool) -> PostgresSessionRepository:
    return PostgresSessionRepository(pool)


def new_account(email: str = "a@x.com") -> Account:
    return Account(
        id=str(uuid.uuid4()),
        email=email,
        password_hash="$2b$10$hashedpasswordvalue",
        first_name="Ada",
        last_name="Lovelace",
        created_at=NOW,
        updated_at=NOW,
    )


def new_code(account_id: str, max_attempts: int = 4) -> VerificationCode:
    return VerificationCode(
        id=str(uuid.uuid4()),
        account_id=account_id,
        code="042917",
        channel=OtpChannel.EMAIL,
        purpose=OtpPurpose.SIGNUP,
        destination="a@x.com",
        expires_at=NOW + timedelta(minutes=5),
        created_at=NOW,
        max_attempts=max_attempts,
    )


class TestPostgresAccountRepository:
    def test_create_and_find(self, accounts: PostgresAccountRepository) -> None:
        created = accounts.create(new_account())

        found = accounts.find_by_identifier("a@x.com")

        assert found.id == created.id
        assert found.status == AccountStatus.PENDING_VERIFICATION
        assert found.otp_channel == OtpChannel.EMAIL
        assert accounts.find_by_id(created.id).email == "a@x.com"

    def test_duplicate_email_conflicts(self, accounts: PostgresAccountRepository) -> None:
        accounts.create(new_account())
        with pytest.raises(Conflict):
            accounts.create(new_account())

    def test_concurrent_create_exactly_one(self, accounts: PostgresAccountRepository) -> None:
        def attempt(_: int) -> bool:
            try:
                accounts.create(new_account("race@x.com"))
                return True
            except Conflict:
                return False

        with ThreadPoolExecutor(max_workers=5) as executor:
            results = list(executor.map(attempt, range(5)))

        assert results.count(True) == 1

    def test_partial_update(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())

        updated = accounts.update(
            account.id, AccountUpdate(status=AccountStatus.ACTIVE, email_verified=True)
        )

        assert updated.status == AccountStatus.ACTIVE
        assert updated.email_verified is True
        assert updated.first_name == "Ada"

    def test_update_to_null(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())
        accounts.update(account.id, AccountUpdate(lockout_until=NOW + timedelta(minutes=15)))

        updated = accounts.update(account.id, AccountUpdate(lockout_until=None))

        assert updated.lockout_until is None

    def test_update_missing(self, accounts: PostgresAccountRepository) -> None:
        assert accounts.update("missing", AccountUpdate(email_verified=True)) is None

    def test_record_failed_login_locks_at_threshold(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())
        until = NOW + timedelta(minutes=15)

        results = [accounts.record_failed_login(account.id, 3, until) for _ in range(3)]

        assert [r.failed_login_attempts for r in results] == [1, 2, 3]
        assert results[1].lockout_until is None
        assert results[2].lockout_until == until

    def test_concurrent_failed_logins_all_counted(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())
        until = NOW + timedelta(minutes=15)

        with ThreadPoolExecutor(max_workers=10) as executor:
            list(executor.map(lambda _: accounts.record_failed_login(account.id, 5, until), range(10)))

        stored = accounts.find_by_id(account.id)
        assert stored.failed_login_attempts == 10
        assert stored.lockout_until == until

    def test_face_hash_lookup(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())
        accounts.update(account.id, AccountUpdate(face_template_hash="abc"))
        assert accounts.find_by_face_hash("abc") is None

        accounts.update(account.id, AccountUpdate(face_enabled=True))
        assert accounts.find_by_face_hash("abc").id == account.id

    def test_clear_reset_token_once(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())
        accounts.update(
            account.id,
            AccountUpdate(reset_token="tok", reset_token_expires_at=NOW + timedelta(minutes=15)),
        )

        assert accounts.clear_reset_token("tok", "$2b$10$new", NOW) is True
        assert accounts.clear_reset_token("tok", "$2b$10$new", NOW) is False
        assert accounts.find_by_id(account.id).password_hash == "$2b$10$new"

    def test_clear_reset_token_expired(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())
        accounts.update(account.id, AccountUpdate(reset_token="tok", reset_token_expires_at=NOW))

        assert accounts.clear_reset_token("tok", "$2b$10$new", NOW) is False

    def test_delete(self, accounts: PostgresAccountRepository) -> None:
        account = accounts.create(new_account())
        assert accounts.delete(account.id) is True
        assert accounts.find_by_id(account.id) is None


class TestPostgresVerificationCodeRepository:
    def test_create_and_find(
        self, accounts: PostgresAccountRepository, codes: PostgresVerificationCodeRepository
    ) -> None:
        account = accounts.create(new_account())
        code = codes.create(new_code(account.id))

        found = codes.find_by_id(code.id)

        assert found.code == "042917"
        assert found.purpose == OtpPurpose.SIGNUP
        assert found.attempts == 0
        assert found.used is False

    def test_concurrent_increments(
        self, accounts: PostgresAccountRepository, codes: PostgresVerificationCodeRepository
    ) -> None:
        account = accounts.create(new_account())
        code = codes.create(new_code(account.id))

        with ThreadPoolExecutor(max_workers=8) as executor:
            counts = list(executor.map(lambda _: codes.increment_attempts(code.id), range(8)))

        assert sorted(counts) == list(range(1, 9))

    def test_mark_used_exactly_once(
        self, accounts: PostgresAccountRepository, codes: PostgresVerificationCodeRepository
    ) -> None:
        account = accounts.create(new_account())
        code = codes.create(new_code(account.id))

        with ThreadPoolExecutor(max_workers=5) as executor:
            results = list(executor.map(lambda _: codes.mark_used(code.id, NOW), range(5)))

        assert results.count(True) == 1
        assert codes.find_by_id(code.id).used is True

    def test_mark_used_refused_when_exhausted(
        self, accounts: PostgresAccountRepository, codes: PostgresVerificationCodeRepository
    ) -> None:
        account = accounts.create(new_account())
        code = codes.create(new_code(account.id, max_attempts=1))
        codes.increment_attempts(code.id)

        assert codes.mark_used(code.id, NOW) is False


class TestPostgresSessionRepository:
    def test_create_find_and_deactivate(
        self, accounts: PostgresAccountRepository, sessions: PostgresSessionRepository
    ) -> None:
        account = accounts.create(new_account())
        device = DeviceInfo(device_type="mobile", user_agent="Mobile Safari", ip_address="10.0.0.1")
        for _ in range(2):
            sessions.create(
                Session(
                    id=str(uuid.uuid4()),
                    account_id=account.id,
                    access_token="shared-token",
                    refresh_token=f"refresh-{uuid.uuid4()}",
                    auth_method=AuthMethod.EMAIL_PASSWORD,
                    expires_at=NOW + timedelta(days=21),
                    created_at=NOW,
                    device=device,
                )
            )

        found = sessions.find_by_access_token("shared-token")
        assert found.device == device
        assert found.is_active is True

        assert sessions.update_many_by_access_token("shared-token", SessionUpdate(is_active=False)) == 2
        assert sessions.find_by_access_token("shared-token").is_active is False

    def test_find_missing(self, sessions: PostgresSessionRepository) -> None:
        assert sessions.find_by_access_token("nope") is None
