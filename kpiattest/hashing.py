"""
KPI Attest Commitment Hashing

The computation hash is SHA-256 over the exact bytes of the input batch as
received. No canonicalization is applied to raw input: any byte change,
whitespace included, changes the commitment, so verifiers must hash the
identical byte stream.

Already decoded batches have no "as received" bytes; they are committed
through canonical JSON (sorted keys, compact separators, UTF-8).
"""

import hashlib
import hmac
import json
from typing import Any, Union

DIGEST_SIZE = 32


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    - Lexicographically sorted keys
    - No whitespace
    - UTF-8 encoded
    """
    s = json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return s.encode('utf-8')


def _as_bytes(data: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(data, str):
        return data.encode('utf-8')
    return bytes(data)


def computation_hash(raw: Union[bytes, bytearray, str]) -> bytes:
    """
    Compute the 32-byte commitment over raw input.

    str input is hashed as its UTF-8 encoding.
    """
    return hashlib.sha256(_as_bytes(raw)).digest()


def batch_commitment_bytes(documents: Any) -> bytes:
    """The byte stream a batch is committed over."""
    if isinstance(documents, (bytes, bytearray, str)):
        return _as_bytes(documents)
    return canonicalize(list(documents))


def sha256_hash(data: Union[bytes, bytearray, str]) -> str:
    """
    Compute SHA-256 in display form.

    Returns:
        Hash string in format "sha256:abcdef..."
    """
    return f"sha256:{hashlib.sha256(_as_bytes(data)).hexdigest()}"


def verify_computation_hash(raw: Union[bytes, bytearray, str], expected: bytes) -> bool:
    """Check raw input against a declared commitment in constant time."""
    if len(expected) != DIGEST_SIZE:
        return False
    return hmac.compare_digest(computation_hash(raw), bytes(expected))
