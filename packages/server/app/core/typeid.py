"""
Type-prefixed, time-sortable identifiers.

An id looks like ``user_01h2xcejqtf2nbrexx3vqjhp41``: a short prefix naming
the entity kind, an underscore, and a 26-character suffix. The suffix is a
UUIDv7 written in lowercase Crockford base32, so ids created later sort
after earlier ones.
"""

from __future__ import annotations

import re
import secrets
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

ALPHABET = "0123456789abcdefghjkmnpqrstvwxyz"
SUFFIX_LENGTH = 26

_ID_RE = re.compile(r"^([a-z]+)_([0-7][0-9a-hjkmnp-tv-z]{25})$")
_DECODE = {ch: i for i, ch in enumerate(ALPHABET)}


class IdKind(str, Enum):
    USER = "user"
    ITEM = "item"
    SESSION = "session"
    OAUTH_ACCOUNT = "oauth_account"


PREFIXES: dict[IdKind, str] = {
    IdKind.USER: "user",
    IdKind.ITEM: "item",
    IdKind.SESSION: "sess",
    IdKind.OAUTH_ACCOUNT: "oauth",
}


# ---------------------------------------------------------------------------
# UUIDv7 suffix
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_last_ms = 0
_seq = 0


def _next_uuid7() -> int:
    """48-bit ms timestamp, 12-bit in-millisecond sequence, 62 random bits."""
    global _last_ms, _seq
    with _lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms > _last_ms:
            _last_ms = now_ms
            _seq = secrets.randbits(11)
        else:
            _seq += 1
            if _seq > 0xFFF:
                _last_ms += 1
                _seq = 0
        ms, seq = _last_ms, _seq

    rand_b = secrets.randbits(62)
    return (ms << 80) | (0x7 << 76) | (seq << 64) | (0b10 << 62) | rand_b


def _encode(value: int) -> str:
    chars = []
    for _ in range(SUFFIX_LENGTH):
        chars.append(ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def _decode(suffix: str) -> int:
    value = 0
    for ch in suffix:
        value = (value << 5) | _DECODE[ch]
    return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_prefix(kind: Union[IdKind, str]) -> str:
    return PREFIXES[IdKind(kind)]


def generate(kind: Union[IdKind, str]) -> str:
    """Generate a new id for the given entity kind."""
    return f"{get_prefix(kind)}_{_encode(_next_uuid7())}"


def split(value: str) -> Optional[tuple[str, str]]:
    """Split an id into (prefix, suffix), or None if it is not shaped like one."""
    if not isinstance(value, str):
        return None
    match = _ID_RE.fullmatch(value)
    if match is None:
        return None
    return match.group(1), match.group(2)


def is_valid(kind: Union[IdKind, str], value: object) -> bool:
    """True if ``value`` is a well-formed id of ``kind``. Never raises."""
    try:
        expected = get_prefix(kind)
    except (KeyError, ValueError):
        return False
    parts = split(value)  # type: ignore[arg-type]
    return parts is not None and parts[0] == expected


def get_suffix(value: str) -> str:
    parts = split(value)
    if parts is None:
        raise ValueError(f"Malformed id: {value!r}")
    return parts[1]


def get_timestamp(value: str) -> datetime:
    """Creation time encoded in an id's suffix."""
    ms = _decode(get_suffix(value)) >> 80
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Typed ids
# ---------------------------------------------------------------------------

class TypeId(str):
    """A string id whose prefix is checked when the value is constructed."""

    kind: IdKind

    def __new__(cls, value: str):
        if not is_valid(cls.kind, value):
            raise ValueError(f"Invalid {cls.__name__}: {value!r}")
        return super().__new__(cls, value)

    @classmethod
    def generate(cls):
        return cls(generate(cls.kind))

    @classmethod
    def is_valid(cls, value: object) -> bool:
        return is_valid(cls.kind, value)


class UserId(TypeId):
    kind = IdKind.USER


class ItemId(TypeId):
    kind = IdKind.ITEM


class SessionId(TypeId):
    kind = IdKind.SESSION


class OAuthAccountId(TypeId):
    kind = IdKind.OAUTH_ACCOUNT
