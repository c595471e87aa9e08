"""
Password policy and hashing.

Strength rules: minimum length, upper/lower/digit/symbol classes and an
exact-match (case-insensitive) deny-list of common passwords. Substring
matching against the deny-list is deliberately not performed.

bcrypt reads at most 72 bytes, so longer passwords are refused rather
than silently truncated.
"""

import re
from dataclasses import dataclass, field

import bcrypt

BCRYPT_MAX_BYTES = 72

COMMON_PASSWORDS = frozenset(
    {
        "password",
        "123456",
        "qwerty",
        "admin",
        "letmein",
        "welcome",
        "monkey",
        "test",
        "user",
    }
)

_SYMBOLS = re.compile(r"[!@#$%^&*(),.?\":{}|<>\-_=+\[\];'/\\`~]")


@dataclass(frozen=True)
class PasswordPolicy:
    """Strength policy applied to every new or replaced password."""

    min_length: int = 10
    max_bytes: int = BCRYPT_MAX_BYTES
    deny_list: frozenset[str] = field(default=COMMON_PASSWORDS)

    def violations(self, password: str) -> list[str]:
        """Return the list of unmet rules (empty when the password is acceptable)."""
        problems = []
        if len(password) < self.min_length:
            problems.append(f"at least {self.min_length} characters")
        if len(password.encode()) > self.max_bytes:
            problems.append(f"at most {self.max_bytes} bytes")
        if not re.search(r"[A-Z]", password):
            problems.append("an uppercase letter")
        if not re.search(r"[a-z]", password):
            problems.append("a lowercase letter")
        if not re.search(r"\d", password):
            problems.append("a number")
        if not _SYMBOLS.search(password):
            problems.append("a special character")
        if password.lower() in self.deny_list:
            problems.append("not a common password")
        return problems

    def is_strong(self, password: str) -> bool:
        return not self.violations(password)


@dataclass(frozen=True)
class PasswordHasher:
    """bcrypt hashing with a configurable work factor (>= 10)."""

    rounds: int = 12

    def __post_init__(self) -> None:
        if self.rounds < 10:
            raise ValueError("bcrypt work factor must be at least 10")

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.rounds)).decode()

    def verify(self, password: str, password_hash: str) -> bool:
        # bcrypt comparison is constant-time
        secret = password.encode()
        if len(secret) > BCRYPT_MAX_BYTES:
            # no stored hash can match; still pay for one comparison
            bcrypt.checkpw(secret[:BCRYPT_MAX_BYTES], password_hash.encode())
            return False
        return bcrypt.checkpw(secret, password_hash.encode())
