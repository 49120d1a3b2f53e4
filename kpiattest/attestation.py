"""
KPI Attest Attestation Builder

Binds a computed KPI to the input it was computed from and the time of
computation, signed by the trusted environment's Ed25519 key.

Signing message (48 bytes):
    kpi_value (u64 LE) || computation_hash (32) || timestamp (u64 LE)

Wire format (144 bytes, little-endian, fixed offsets):
    0   8   kpi_value         u64, KPI x 1000 rounded half-up
    8   32  computation_hash  SHA-256 of the raw input batch
    40  8   timestamp         u64, ms since Unix epoch
    48  32  tee_public_key    Ed25519 public key
    80  64  signature         Ed25519 signature over the signing message

The layout is the interoperability contract with the ledger verifier; field
order, width and endianness must not change.
"""

import logging
import math
import struct
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from . import config
from .aggregator import KPIResult, aggregate_documents
from .documents import KPIAttestError, ParseError, parse_batch
from .hashing import DIGEST_SIZE, batch_commitment_bytes, computation_hash
from .logging_config import audit_log
from .signing import PUBLIC_KEY_SIZE, SIGNATURE_SIZE, Signer, verify_signature
from .util import Clock, hex_decode, now_ms

logger = logging.getLogger(__name__)

ATTESTATION_SIZE = 144
MESSAGE_SIZE = 48
KPI_SCALE = 1000
U64_MAX = 2 ** 64 - 1

_MESSAGE_LAYOUT = struct.Struct("<Q32sQ")
_ATTESTATION_LAYOUT = struct.Struct("<Q32sQ32s64s")


class KPIRangeError(KPIAttestError, ValueError):
    """Raised when a KPI cannot be quantized into an unsigned 64-bit value."""


class NegativeKPIError(KPIRangeError):
    """Raised when a negative KPI is quantized under the reject policy."""

    def __init__(self, kpi: float):
        self.kpi = kpi
        super().__init__(
            f"KPI {kpi!r} is negative and cannot be attested as an unsigned value"
        )


class NegativeKPIPolicy(str, Enum):
    """How quantization treats a negative cumulative KPI."""
    REJECT = "reject"
    CLAMP = "clamp"


class InvalidPolicyError(KPIAttestError, ValueError):
    """Raised for a negative KPI policy name that is not recognised."""


def _resolve_policy(policy: Union[NegativeKPIPolicy, str, None]) -> NegativeKPIPolicy:
    if policy is None:
        policy = config.negative_kpi_policy()
    try:
        return NegativeKPIPolicy(policy)
    except ValueError:
        raise InvalidPolicyError(
            f"Unknown negative KPI policy {policy!r}; expected one of "
            f"{[p.value for p in NegativeKPIPolicy]}"
        ) from None


def quantize_kpi(
    kpi: float,
    negative_policy: Union[NegativeKPIPolicy, str, None] = None
) -> int:
    """
    Quantize a KPI to an integer with three decimal digits preserved.

    kpi_value = round_half_up(kpi * 1000), computed in decimal on the
    float's shortest representation so 1234.5675 -> 1234568.

    Raises:
        NegativeKPIError: negative result under the reject policy
        KPIRangeError: non-finite KPI or result above 2**64 - 1
    """
    policy = _resolve_policy(negative_policy)

    if not math.isfinite(kpi):
        raise KPIRangeError(f"KPI must be finite, got {kpi!r}")

    scaled = (Decimal(repr(float(kpi))) * KPI_SCALE).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    value = int(scaled)

    if value < 0:
        if policy == NegativeKPIPolicy.CLAMP:
            logger.warning("Negative KPI %r clamped to 0 for attestation", kpi)
            return 0
        raise NegativeKPIError(kpi)

    if value > U64_MAX:
        raise KPIRangeError(f"KPI {kpi!r} exceeds the attestable range")

    return value


def dequantize_kpi(kpi_value: int) -> float:
    """Inverse of quantize_kpi, up to rounding."""
    return kpi_value / KPI_SCALE


def signing_message(kpi_value: int, computation_hash: bytes, timestamp: int) -> bytes:
    """Build the canonical 48-byte signing message."""
    return _MESSAGE_LAYOUT.pack(kpi_value, bytes(computation_hash), timestamp)


def _check_u64(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < 0 or value > U64_MAX:
        raise ValueError(f"{name} out of u64 range: {value}")


def _check_width(name: str, value: Any, size: int) -> None:
    if not isinstance(value, (bytes, bytearray)):
        raise ValueError(f"{name} must be bytes")
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(value)}")


@dataclass(frozen=True)
class TEEAttestation:
    """
    Signed claim that a trusted environment computed kpi_value from the input
    committed by computation_hash at timestamp.
    """
    kpi_value: int
    computation_hash: bytes
    timestamp: int
    tee_public_key: bytes
    signature: bytes

    def __post_init__(self):
        _check_u64("kpi_value", self.kpi_value)
        _check_u64("timestamp", self.timestamp)
        _check_width("computation_hash", self.computation_hash, DIGEST_SIZE)
        _check_width("tee_public_key", self.tee_public_key, PUBLIC_KEY_SIZE)
        _check_width("signature", self.signature, SIGNATURE_SIZE)
        # freeze bytearray input
        for name in ("computation_hash", "tee_public_key", "signature"):
            object.__setattr__(self, name, bytes(getattr(self, name)))

    def message(self) -> bytes:
        """The signing message reconstructed from this attestation's fields."""
        return signing_message(self.kpi_value, self.computation_hash, self.timestamp)

    def verify_signature(self) -> bool:
        """True if signature verifies under tee_public_key."""
        return verify_signature(self.message(), self.signature, self.tee_public_key)

    def to_bytes(self) -> bytes:
        """Encode to the 144-byte wire format."""
        data = _ATTESTATION_LAYOUT.pack(
            self.kpi_value,
            bytes(self.computation_hash),
            self.timestamp,
            bytes(self.tee_public_key),
            bytes(self.signature),
        )
        if len(data) != ATTESTATION_SIZE:
            raise AssertionError(
                f"Attestation must be exactly {ATTESTATION_SIZE} bytes, got {len(data)}"
            )
        return data

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray]) -> "TEEAttestation":
        """
        Decode the 144-byte wire format.

        Raises:
            ValueError: if data is not exactly 144 bytes
        """
        if len(data) != ATTESTATION_SIZE:
            raise ValueError(
                f"Attestation must be exactly {ATTESTATION_SIZE} bytes, got {len(data)}"
            )
        kpi_value, digest, timestamp, public_key, signature = _ATTESTATION_LAYOUT.unpack(bytes(data))
        return cls(
            kpi_value=kpi_value,
            computation_hash=digest,
            timestamp=timestamp,
            tee_public_key=public_key,
            signature=signature,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON form; byte fields as lowercase hex."""
        return {
            "kpi_value": self.kpi_value,
            "computation_hash": self.computation_hash.hex(),
            "timestamp": self.timestamp,
            "tee_public_key": self.tee_public_key.hex(),
            "signature": self.signature.hex(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TEEAttestation":
        try:
            return cls(
                kpi_value=d["kpi_value"],
                computation_hash=hex_decode(d["computation_hash"], DIGEST_SIZE),
                timestamp=d["timestamp"],
                tee_public_key=hex_decode(d["tee_public_key"], PUBLIC_KEY_SIZE),
                signature=hex_decode(d["signature"], SIGNATURE_SIZE),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed attestation: {e}") from e


@dataclass(frozen=True)
class KPIResultWithAttestation:
    """Transport bundle of a KPI result, its attestation and the wire bytes."""
    kpi_result: KPIResult
    attestation: TEEAttestation
    attestation_bytes: bytes

    def __post_init__(self):
        if self.attestation_bytes != self.attestation.to_bytes():
            raise ValueError("attestation_bytes does not encode attestation")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kpi_result": self.kpi_result.to_dict(),
            "attestation": self.attestation.to_dict(),
            "attestation_bytes": list(self.attestation_bytes),
        }


def build_attestation(
    kpi: float,
    commitment: bytes,
    signer: Signer,
    clock: Optional[Clock] = None,
    negative_policy: Union[NegativeKPIPolicy, str, None] = None
) -> TEEAttestation:
    """
    Quantize, timestamp and sign a KPI.

    Args:
        kpi: Cumulative KPI
        commitment: 32-byte computation hash of the input
        signer: Trusted environment signing capability
        clock: Millisecond time source (default: wall clock)
        negative_policy: Negative KPI handling (default: configured policy)
    """
    kpi_value = quantize_kpi(kpi, _resolve_policy(negative_policy))
    timestamp = (clock or now_ms)()

    message = signing_message(kpi_value, commitment, timestamp)
    if len(message) != MESSAGE_SIZE:
        raise AssertionError(f"Signing message must be {MESSAGE_SIZE} bytes")

    return TEEAttestation(
        kpi_value=kpi_value,
        computation_hash=bytes(commitment),
        timestamp=timestamp,
        tee_public_key=signer.public_key(),
        signature=signer.sign(message),
    )


def compute_kpi_with_attestation(
    documents: Union[str, bytes, List[Any]],
    signer: Signer,
    clock: Optional[Clock] = None,
    negative_policy: Union[NegativeKPIPolicy, str, None] = None
) -> KPIResultWithAttestation:
    """
    Compute the cumulative KPI of a batch and attest it.

    Args:
        documents: Raw JSON array text (committed byte-for-byte) or a decoded list
        signer: Trusted environment signing capability
        clock: Millisecond time source (default: wall clock)
        negative_policy: Negative KPI handling (default: configured policy)

    Raises:
        ParseError: raw input is not a JSON array; nothing is computed
        NegativeKPIError / KPIRangeError: KPI cannot be attested
    """
    try:
        batch = parse_batch(documents)
    except ParseError as e:
        audit_log.parse_failure(str(e))
        raise

    kpi_result = aggregate_documents(batch)
    commitment = computation_hash(batch_commitment_bytes(documents))
    attestation = build_attestation(
        kpi_result.kpi, commitment, signer, clock=clock, negative_policy=negative_policy
    )
    attestation_bytes = attestation.to_bytes()

    audit_log.attestation_issued(
        kpi_value=attestation.kpi_value,
        computation_hash=attestation.computation_hash.hex(),
        timestamp=attestation.timestamp,
        tee_public_key=attestation.tee_public_key.hex(),
        document_count=len(batch),
        file_type=kpi_result.file_type,
    )

    return KPIResultWithAttestation(
        kpi_result=kpi_result,
        attestation=attestation,
        attestation_bytes=attestation_bytes,
    )
