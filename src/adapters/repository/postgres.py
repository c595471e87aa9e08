"""
PostgreSQL repository adapters - Implement the domain repository protocols.

Account, verification code and session stores backed by psycopg3 and
parameterised SQL.

Concurrency Design - Atomic Counters:
-------------------------------------
Guessing defenses depend on counters that must never under-count when
requests race. Instead of read-modify-write in Python, every counter
change is a single UPDATE evaluated by the database:

1. **record_failed_login**: increments ``failed_login_attempts`` and sets
   ``lockout_until`` in the same statement once the threshold is reached.

2. **increment_attempts**: ``attempts = attempts + 1 ... RETURNING attempts``.

3. **mark_used**: ``WHERE used = FALSE AND attempts < max_attempts`` so
   exactly one caller consumes a code.

4. **clear_reset_token**: the token lookup, password replacement and token
   clearing are one UPDATE, so a reset token completes at most once.
"""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.domain.exceptions import Conflict
from src.domain.models import (
    Account,
    AccountStatus,
    AccountUpdate,
    AuthMethod,
    DeviceInfo,
    FailedLogin,
    OtpChannel,
    OtpPurpose,
    Session,
    SessionUpdate,
    VerificationCode,
    VerificationCodeUpdate,
    changed_fields,
)

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = """
    id, email, password_hash, first_name, last_name, phone, country, otp_channel,
    status, email_verified, phone_verified, failed_login_attempts, lockout_until,
    last_login_at, reset_token, reset_token_expires_at, face_enabled,
    face_template_hash, created_at, updated_at
"""

_CODE_COLUMNS = """
    id, account_id, code, channel, purpose, destination, expires_at, created_at,
    max_attempts, attempts, used, used_at
"""

_SESSION_COLUMNS = """
    id, account_id, access_token, refresh_token, auth_method, device_type,
    user_agent, ip_address, is_active, expires_at, created_at
"""


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _set_clause(values: dict[str, Any]) -> tuple[str, list[Any]]:
    # Column names come from update dataclass fields, never from callers.
    assignments = ", ".join(f"{column} = %s" for column in values)
    return assignments, [_db_value(v) for v in values.values()]


def _to_account(row: dict[str, Any]) -> Account:
    return Account(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone=row["phone"],
        country=row["country"],
        otp_channel=OtpChannel(row["otp_channel"]),
        status=AccountStatus(row["status"]),
        email_verified=row["email_verified"],
        phone_verified=row["phone_verified"],
        failed_login_attempts=row["failed_login_attempts"],
        lockout_until=row["lockout_until"],
        last_login_at=row["last_login_at"],
        reset_token=row["reset_token"],
        reset_token_expires_at=row["reset_token_expires_at"],
        face_enabled=row["face_enabled"],
        face_template_hash=row["face_template_hash"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _to_code(row: dict[str, Any]) -> VerificationCode:
    return VerificationCode(
        id=row["id"],
        account_id=row["account_id"],
        code=row["code"],
        channel=OtpChannel(row["channel"]),
        purpose=OtpPurpose(row["purpose"]),
        destination=row["destination"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        max_attempts=row["max_attempts"],
        attempts=row["attempts"],
        used=row["used"],
        used_at=row["used_at"],
    )


def _to_session(row: dict[str, Any]) -> Session:
    return Session(
        id=row["id"],
        account_id=row["account_id"],
        access_token=row["access_token"],
        refresh_token=row["refresh_token"],
        auth_method=AuthMethod(row["auth_method"]),
        device=DeviceInfo(
            device_type=row["device_type"],
            user_agent=row["user_agent"],
            ip_address=row["ip_address"],
        ),
        is_active=row["is_active"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


class PostgresAccountRepository:
    """
    Implements AccountRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def create(self, account: Account) -> Account:
        """
        Insert a new account.

        The UNIQUE constraint on email makes concurrent signups for one
        address race-free: exactly one INSERT wins.

        Raises:
            Conflict: If the email is already registered
        """
        sql = f"""
            INSERT INTO accounts ({_ACCOUNT_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (email) DO NOTHING
            RETURNING {_ACCOUNT_COLUMNS}
        """
        params = (
            account.id,
            account.email,
            account.password_hash,
            account.first_name,
            account.last_name,
            account.phone,
            account.country,
            account.otp_channel.value,
            account.status.value,
            account.email_verified,
            account.phone_verified,
            account.failed_login_attempts,
            account.lockout_until,
            account.last_login_at,
            account.reset_token,
            account.reset_token_expires_at,
            account.face_enabled,
            account.face_template_hash,
            account.created_at,
            account.updated_at,
        )
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
            conn.commit()
        if row is None:
            raise Conflict("User already exists with this email")
        return _to_account(row)

    def find_by_identifier(self, email: str) -> Account | None:
        return self._find_one(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE email = %s", (email,))

    def find_by_id(self, account_id: str) -> Account | None:
        return self._find_one(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = %s", (account_id,))

    def find_by_face_hash(self, template_hash: str) -> Account | None:
        return self._find_one(
            f"""
            SELECT {_ACCOUNT_COLUMNS} FROM accounts
            WHERE face_enabled = TRUE AND face_template_hash = %s
            LIMIT 1
            """,
            (template_hash,),
        )

    def update(self, account_id: str, changes: AccountUpdate) -> Account | None:
        values = changed_fields(changes)
        if not values:
            return self.find_by_id(account_id)
        assignments, params = _set_clause(values)
        sql = f"""
            UPDATE accounts
            SET {assignments}, updated_at = NOW()
            WHERE id = %s
            RETURNING {_ACCOUNT_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (*params, account_id))
            row = cursor.fetchone()
            conn.commit()
        return _to_account(row) if row else None

    def record_failed_login(self, account_id: str, threshold: int, lockout_until: datetime) -> FailedLogin:
        """
        Increment the failed sign-in counter and lock at the threshold.

        SET expressions see the pre-update row, so ``failed_login_attempts + 1``
        is the value being written.
        """
        sql = """
            UPDATE accounts
            SET failed_login_attempts = failed_login_attempts + 1,
                lockout_until = CASE
                    WHEN failed_login_attempts + 1 >= %s THEN %s
                    ELSE lockout_until
                END,
                updated_at = NOW()
            WHERE id = %s
            RETURNING failed_login_attempts, lockout_until
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (threshold, lockout_until, account_id))
            row = cursor.fetchone()
            conn.commit()
        return FailedLogin(row["failed_login_attempts"], row["lockout_until"])

    def clear_reset_token(self, token: str, password_hash: str, now: datetime) -> bool:
        sql = """
            UPDATE accounts
            SET password_hash = %s,
                reset_token = NULL,
                reset_token_expires_at = NULL,
                updated_at = NOW()
            WHERE reset_token = %s AND reset_token_expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (password_hash, token, now))
            conn.commit()
            return cursor.rowcount == 1

    def delete(self, account_id: str) -> bool:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("DELETE FROM accounts WHERE id = %s", (account_id,))
            conn.commit()
            return cursor.rowcount == 1

    def _find_one(self, sql: str, params: tuple) -> Account | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return _to_account(row) if row else None


class PostgresVerificationCodeRepository:
    """Implements VerificationCodeRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, code: VerificationCode) -> VerificationCode:
        sql = f"""
            INSERT INTO verification_codes ({_CODE_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_CODE_COLUMNS}
        """
        params = (
            code.id,
            code.account_id,
            code.code,
            code.channel.value,
            code.purpose.value,
            code.destination,
            code.expires_at,
            code.created_at,
            code.max_attempts,
            code.attempts,
            code.used,
            code.used_at,
        )
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
            conn.commit()
        return _to_code(row)

    def find_by_id(self, code_id: str) -> VerificationCode | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(f"SELECT {_CODE_COLUMNS} FROM verification_codes WHERE id = %s", (code_id,))
            row = cursor.fetchone()
        return _to_code(row) if row else None

    def update(self, code_id: str, changes: VerificationCodeUpdate) -> VerificationCode | None:
        values = changed_fields(changes)
        if not values:
            return self.find_by_id(code_id)
        assignments, params = _set_clause(values)
        sql = f"""
            UPDATE verification_codes SET {assignments}
            WHERE id = %s
            RETURNING {_CODE_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (*params, code_id))
            row = cursor.fetchone()
            conn.commit()
        return _to_code(row) if row else None

    def increment_attempts(self, code_id: str) -> int:
        sql = """
            UPDATE verification_codes
            SET attempts = attempts + 1
            WHERE id = %s
            RETURNING attempts
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (code_id,))
            row = cursor.fetchone()
            conn.commit()
        return row[0]

    def mark_used(self, code_id: str, used_at: datetime) -> bool:
        sql = """
            UPDATE verification_codes
            SET used = TRUE, used_at = %s
            WHERE id = %s AND used = FALSE AND attempts < max_attempts
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (used_at, code_id))
            conn.commit()
            return cursor.rowcount == 1


class PostgresSessionRepository:
    """Implements SessionRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, session: Session) -> Session:
        sql = f"""
            INSERT INTO sessions ({_SESSION_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_SESSION_COLUMNS}
        """
        params = (
            session.id,
            session.account_id,
            session.access_token,
            session.refresh_token,
            session.auth_method.value,
            session.device.device_type,
            session.device.user_agent,
            session.device.ip_address,
            session.is_active,
            session.expires_at,
            session.created_at,
        )
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
            conn.commit()
        return _to_session(row)

    def find_by_access_token(self, access_token: str) -> Session | None:
        sql = f"""
            SELECT {_SESSION_COLUMNS} FROM sessions
            WHERE access_token = %s
            ORDER BY is_active DESC, created_at DESC
            LIMIT 1
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (access_token,))
            row = cursor.fetchone()
        return _to_session(row) if row else None

    def update_many_by_access_token(self, access_token: str, changes: SessionUpdate) -> int:
        values = changed_fields(changes)
        if not values:
            return 0
        assignments, params = _set_clause(values)
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                f"UPDATE sessions SET {assignments} WHERE access_token = %s",
                (*params, access_token),
            )
            conn.commit()
            return cursor.rowcount


def run_migrations(pool: ConnectionPool) -> None:
    """
    Apply the identity schema from the repository-level migrations folder.

    Files run in filename order on every startup, so each one must be safe to
    re-apply. A failing file aborts startup with RuntimeError.

    Args:
        pool: Pool used for the DDL statements
    """
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("Migrations directory is empty: %s", migrations_dir)
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
