"""
KPI Attest Signing

Uses Ed25519 (RFC 8032) via PyNaCl.

The attestation builder only sees the Signer interface: sign(bytes) and
public_key(). Private key material stays inside the signer, so a
hardware-backed or enclave-sealed implementation can be substituted without
touching the builder.
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Optional

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from .documents import KPIAttestError
from .util import b64d

PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64
SEED_SIZE = 32


class SigningKeyError(KPIAttestError):
    """Raised when the provisioned signing key cannot be loaded."""


class Signer(ABC):
    """Abstract signing capability held by the trusted environment."""

    @abstractmethod
    def sign(self, message: bytes) -> bytes:
        """
        Sign a message.

        Returns:
            64-byte detached signature
        """
        pass

    @abstractmethod
    def public_key(self) -> bytes:
        """Return the 32-byte public key matching sign()."""
        pass

    @property
    def kid(self) -> Optional[str]:
        """Key identifier, if the key carries one."""
        return None


class Ed25519Signer(Signer):
    """
    In-process Ed25519 signer.

    Read-only after construction and safe to share between threads.
    """

    def __init__(self, signing_key: SigningKey, kid: Optional[str] = None):
        self._sk = signing_key
        self._vk_bytes = bytes(signing_key.verify_key)
        self._kid = kid

    @classmethod
    def from_seed(cls, seed: bytes, kid: Optional[str] = None) -> "Ed25519Signer":
        """Build a signer from a 32-byte Ed25519 seed."""
        if len(seed) != SEED_SIZE:
            raise ValueError(f"Ed25519 seed must be {SEED_SIZE} bytes, got {len(seed)}")
        return cls(SigningKey(bytes(seed)), kid=kid)

    @classmethod
    def from_key_file(cls, path: str) -> "Ed25519Signer":
        """
        Load a provisioned key from a JSON key file.

        Expected format: {"kid": "...", "private_key_b64": "<base64 seed>"}

        Raises:
            SigningKeyError: file missing, unreadable or malformed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return cls.from_seed(b64d(raw["private_key_b64"]), kid=raw.get("kid"))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise SigningKeyError(f"Cannot load signing key from {path}: {e}") from e

    def sign(self, message: bytes) -> bytes:
        return self._sk.sign(message).signature

    def public_key(self) -> bytes:
        return self._vk_bytes

    @property
    def kid(self) -> Optional[str]:
        return self._kid


class LazyFileSigner(Signer):
    """
    Signer that reads its key file on first use.

    Lets services start before the key is provisioned.
    """

    def __init__(self, signing_key_path: str):
        self._signing_key_path = signing_key_path
        self._lock = threading.Lock()
        self._signer: Optional[Ed25519Signer] = None

    def _load(self) -> Ed25519Signer:
        with self._lock:
            if self._signer is None:
                self._signer = Ed25519Signer.from_key_file(self._signing_key_path)
            return self._signer

    def sign(self, message: bytes) -> bytes:
        return self._load().sign(message)

    def public_key(self) -> bytes:
        return self._load().public_key()

    @property
    def kid(self) -> Optional[str]:
        return self._load().kid


def verify_signature(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """Verify an Ed25519 signature; malformed keys or signatures verify False."""
    if len(signature) != SIGNATURE_SIZE or len(public_key) != PUBLIC_KEY_SIZE:
        return False
    try:
        VerifyKey(bytes(public_key)).verify(bytes(message), bytes(signature))
        return True
    except (BadSignatureError, CryptoError, ValueError):
        return False
