"""
Utility functions for kpiattest.

Provides time sources and byte encoding helpers.
"""

import base64
import binascii
import time
from typing import Callable

# A clock returns wall-clock time in milliseconds since the Unix epoch.
Clock = Callable[[], int]


def now_ms() -> int:
    """Get current Unix time in milliseconds."""
    return time.time_ns() // 1_000_000


def system_clock() -> Clock:
    """The process wall clock."""
    return now_ms


def fixed_clock(timestamp_ms: int) -> Clock:
    """A clock frozen at timestamp_ms, for reproducible attestations."""
    def _clock() -> int:
        return timestamp_ms
    return _clock


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes."""
    return base64.b64decode(s.encode('ascii'))


def hex_decode(s: str, expected_length: int = None) -> bytes:
    """
    Decode a hex string, optionally checking the decoded length.

    Raises:
        ValueError: on invalid hex or wrong length
    """
    value = s.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    try:
        data = binascii.unhexlify(value)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid hex string: {e}") from e
    if expected_length is not None and len(data) != expected_length:
        raise ValueError(f"Expected {expected_length} bytes, got {len(data)}")
    return data
