"""Content digests for extracted spans."""

from __future__ import annotations

import base64
import hashlib
import re
from typing import Literal

HashEncoding = Literal["base64", "hex"]

COMPACT_HASH_LENGTH = 8
FULL_HASH_LENGTH = 64

HASH_LENGTH_BY_ENCODING: dict[HashEncoding, int] = {
    "base64": COMPACT_HASH_LENGTH,
    "hex": FULL_HASH_LENGTH,
}

HASH_CHARSETS: dict[HashEncoding, re.Pattern[str]] = {
    "base64": re.compile(r"^[A-Za-z0-9_-]+$"),
    "hex": re.compile(r"^[0-9a-f]+$"),
}


def compact_digest(data: bytes) -> str:
    """Eight base64url characters of SHA-256, for display and quick selection."""
    raw = hashlib.sha256(data).digest()
    return base64.urlsafe_b64encode(raw).decode("ascii")[:COMPACT_HASH_LENGTH]


def full_digest(data: bytes) -> str:
    """Full hex SHA-256, for collision-resistant guards."""
    return hashlib.sha256(data).hexdigest()


def create_digest(data: bytes | str, encoding: HashEncoding = "base64") -> str:
    payload = data.encode("utf-8") if isinstance(data, str) else data
    if encoding == "hex":
        return full_digest(payload)
    return compact_digest(payload)


def is_valid_hash(value: str) -> bool:
    """True when ``value`` has the shape of a compact or full digest."""
    if not value:
        return False
    for encoding, length in HASH_LENGTH_BY_ENCODING.items():
        if len(value) == length and HASH_CHARSETS[encoding].match(value):
            return True
    return False


def hashes_match(expected: str, compact: str, full: str) -> bool:
    """Compare a caller-supplied hash against either digest length."""
    candidate = expected.strip()
    if candidate.startswith("hash:"):
        candidate = candidate[len("hash:") :]
    return candidate in (compact, full)


__all__ = [
    "COMPACT_HASH_LENGTH",
    "FULL_HASH_LENGTH",
    "HASH_CHARSETS",
    "HASH_LENGTH_BY_ENCODING",
    "HashEncoding",
    "compact_digest",
    "create_digest",
    "full_digest",
    "hashes_match",
    "is_valid_hash",
]
