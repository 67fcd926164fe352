"""Small helpers shared between server and client tooling."""

from __future__ import annotations

import re

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(email: str) -> bool:
    """Shape check only: something@something.tld, no whitespace."""
    return bool(_EMAIL_RE.match(email))


def normalize_email(email: str) -> str:
    return email.strip().lower()
