"""
In-memory repository adapters - Implement the domain repository protocols.

Thread-safe process-local stores used for tests and single-process
development. Every read and write hands out copies so callers can never
mutate stored state without going through the repository, and every
read-modify-write runs under one lock, mirroring the atomic SQL of the
PostgreSQL adapter.
"""

import copy
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from src.domain.exceptions import Conflict
from src.domain.models import (
    Account,
    AccountUpdate,
    FailedLogin,
    Session,
    SessionUpdate,
    VerificationCode,
    VerificationCodeUpdate,
    changed_fields,
)


class InMemoryAccountRepository:
    """
    Implements AccountRepository protocol with a dict keyed by account id.

    Uses structural subtyping - no explicit inheritance from Protocol.
    ``clock`` stamps ``updated_at`` on partial updates, the role NOW() plays
    in the PostgreSQL adapter.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._accounts: dict[str, Account] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def create(self, account: Account) -> Account:
        with self._lock:
            if any(a.email == account.email for a in self._accounts.values()):
                raise Conflict("User already exists with this email")
            self._accounts[account.id] = copy.deepcopy(account)
            return copy.deepcopy(account)

    def find_by_identifier(self, email: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.email == email:
                    return copy.deepcopy(account)
        return None

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return copy.deepcopy(account) if account else None

    def find_by_face_hash(self, template_hash: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.face_enabled and account.face_template_hash == template_hash:
                    return copy.deepcopy(account)
        return None

    def update(self, account_id: str, changes: AccountUpdate) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            values = changed_fields(changes)
            if values:
                values["updated_at"] = self._clock()
            updated = replace(account, **values)
            self._accounts[account_id] = updated
            return copy.deepcopy(updated)

    def record_failed_login(
        self, account_id: str, threshold: int, lockout_until: datetime
    ) -> FailedLogin:
        with self._lock:
            account = self._accounts[account_id]
            account.failed_login_attempts += 1
            if account.failed_login_attempts >= threshold:
                account.lockout_until = lockout_until
            return FailedLogin(account.failed_login_attempts, account.lockout_until)

    def clear_reset_token(self, token: str, password_hash: str, now: datetime) -> bool:
        with self._lock:
            for account in self._accounts.values():
                if (
                    account.reset_token is not None
                    and account.reset_token == token
                    and account.reset_token_expires_at is not None
                    and account.reset_token_expires_at > now
                ):
                    account.password_hash = password_hash
                    account.reset_token = None
                    account.reset_token_expires_at = None
                    account.updated_at = now
                    return True
        return False

    def delete(self, account_id: str) -> bool:
        with self._lock:
            return self._accounts.pop(account_id, None) is not None


class InMemoryVerificationCodeRepository:
    """Implements VerificationCodeRepository protocol."""

    def __init__(self) -> None:
        self._codes: dict[str, VerificationCode] = {}
        self._lock = threading.Lock()

    def create(self, code: VerificationCode) -> VerificationCode:
        with self._lock:
            self._codes[code.id] = copy.deepcopy(code)
            return copy.deepcopy(code)

    def find_by_id(self, code_id: str) -> VerificationCode | None:
        with self._lock:
            code = self._codes.get(code_id)
            return copy.deepcopy(code) if code else None

    def update(self, code_id: str, changes: VerificationCodeUpdate) -> VerificationCode | None:
        with self._lock:
            code = self._codes.get(code_id)
            if code is None:
                return None
            updated = replace(code, **changed_fields(changes))
            self._codes[code_id] = updated
            return copy.deepcopy(updated)

    def increment_attempts(self, code_id: str) -> int:
        with self._lock:
            code = self._codes[code_id]
            code.attempts += 1
            return code.attempts

    def mark_used(self, code_id: str, used_at: datetime) -> bool:
        with self._lock:
            code = self._codes.get(code_id)
            if code is None or code.used or code.attempts >= code.max_attempts:
                return False
            code.used = True
            code.used_at = used_at
            return True


class InMemorySessionRepository:
    """Implements SessionRepository protocol."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, session: Session) -> Session:
        with self._lock:
            self._sessions[session.id] = copy.deepcopy(session)
            return copy.deepcopy(session)

    def find_by_access_token(self, access_token: str) -> Session | None:
        with self._lock:
            for session in self._sessions.values():
                if session.access_token == access_token:
                    return copy.deepcopy(session)
        return None

    def update_many_by_access_token(self, access_token: str, changes: SessionUpdate) -> int:
        values = changed_fields(changes)
        count = 0
        with self._lock:
            for session_id, session in self._sessions.items():
                if session.access_token == access_token:
                    self._sessions[session_id] = replace(session, **values)
                    count += 1
        return count

    def list_for_account(self, account_id: str) -> list[Session]:
        with self._lock:
            return [copy.deepcopy(s) for s in self._sessions.values() if s.account_id == account_id]
