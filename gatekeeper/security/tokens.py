"""
Secret generation and comparison primitives.

Every secret comparison in the pipeline (CSRF double-submit tokens,
CAPTCHA answer hashes) goes through constant_time_equals so response
latency never reveals how many leading bytes matched.
"""

import hmac
import secrets
from typing import Optional, Union

# 32 bytes = 256 bits of entropy, hex encoded (64 chars).
TOKEN_BYTES = 32

_Secret = Union[str, bytes]


def generate_token(nbytes: int = TOKEN_BYTES) -> str:
    """Return a new cryptographically random hex token."""
    return secrets.token_hex(nbytes)


def _as_bytes(value: _Secret) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode('utf-8')


def constant_time_equals(a: Optional[_Secret], b: Optional[_Secret]) -> bool:
    """
    Compare two secrets without an early exit.

    Absent or empty values never compare equal, even to each other.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(_as_bytes(a), _as_bytes(b))


def keyed_digest(key: _Secret, value: str) -> str:
    """HMAC-SHA256 of ``value`` under ``key``, hex encoded."""
    return hmac.new(_as_bytes(key), _as_bytes(value), 'sha256').hexdigest()
