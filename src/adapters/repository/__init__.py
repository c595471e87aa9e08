"""Repository adapters - Database and in-memory implementations."""

from .memory import (
    InMemoryAccountRepository,
    InMemorySessionRepository,
    InMemoryVerificationCodeRepository,
)
from .postgres import (
    PostgresAccountRepository,
    PostgresSessionRepository,
    PostgresVerificationCodeRepository,
    run_migrations,
)

__all__ = [
    "InMemoryAccountRepository",
    "InMemorySessionRepository",
    "InMemoryVerificationCodeRepository",
    "PostgresAccountRepository",
    "PostgresSessionRepository",
    "PostgresVerificationCodeRepository",
    "run_migrations",
]
