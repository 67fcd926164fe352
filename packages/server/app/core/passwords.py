"""
Password hashing and password policy.

Hashes are bcrypt (``$2b$<cost>$...``); the cost is carried in the hash, so
raising ``rounds`` later does not invalidate stored hashes.
"""

from __future__ import annotations

import base64
import hashlib
import re
from dataclasses import dataclass, field

import bcrypt

DEFAULT_ROUNDS = 12

MIN_LENGTH = 8
MAX_LENGTH = 128

# bcrypt only looks at the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72

COMMON_PASSWORDS = frozenset({
    "password",
    "123456",
    "12345678",
    "qwerty",
    "abc123",
    "admin",
    "letmein",
    "welcome",
    "monkey",
    "welcome123",
    "qwerty123",
    "admin123",
    "letmein123",
    "monkey123",
})


class PasswordHashError(Exception):
    """The stored hash could not be used (malformed or unsupported)."""


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def _prepare(password: str) -> bytes:
    raw = password.encode()
    if len(raw) > _BCRYPT_MAX_BYTES:
        raw = base64.b64encode(hashlib.sha256(raw).digest())
    return raw


class PasswordHasher:
    """bcrypt hasher with a fixed cost factor."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = rounds
        # Built up front so the first decoy check costs the same as every other
        self._dummy_hash = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=rounds))

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(_prepare(password), bcrypt.gensalt(rounds=self.rounds)).decode()

    def verify(self, password: str, hashed: str) -> bool:
        """Check a password against a stored hash.

        Raises PasswordHashError if ``hashed`` is not a usable bcrypt hash.
        """
        try:
            return bcrypt.checkpw(_prepare(password), hashed.encode())
        except (ValueError, TypeError) as exc:
            raise PasswordHashError(str(exc)) from exc

    def verify_dummy(self, password: str) -> bool:
        """Spend the same time as a real verify against a throwaway hash.

        Used when there is no stored hash to compare with, so that the
        response time does not reveal whether an account exists.
        """
        bcrypt.checkpw(_prepare(password), self._dummy_hash)
        return False


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass
class StrengthResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_password_strength(password: str) -> StrengthResult:
    """Check every rule and report all that fail."""
    errors = []
    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters")
    if len(password) > MAX_LENGTH:
        errors.append(f"Password must be at most {MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    return StrengthResult(valid=not errors, errors=errors)


def is_common_password(password: str) -> bool:
    return password.lower() in COMMON_PASSWORDS
