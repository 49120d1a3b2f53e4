"""
KPI Attest Verification

Lets a third party (for example the ledger) confirm an attestation after the
fact without re-running the computation in the trusted environment.

Verification steps:
1. Decode the 144-byte wire format
2. Check the signing key against the trusted key set (if one is given)
3. Verify the Ed25519 signature over the rebuilt 48-byte message
4. Check the timestamp is within max_age_ms of the clock (optional)
5. Recompute the commitment over the supplied input bytes (optional)
6. Compare the attested KPI with an expected KPI (optional)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

from .attestation import ATTESTATION_SIZE, TEEAttestation, quantize_kpi
from .documents import KPIAttestError
from .hashing import batch_commitment_bytes, computation_hash, verify_computation_hash
from .logging_config import audit_log
from .util import Clock, now_ms

# One hour; used by the CLI when -m is given without a value
DEFAULT_MAX_AGE_MS = 60 * 60 * 1000


class VerificationOutcome(str, Enum):
    """
    VALID: attestation is authentic and matches every supplied input
    INVALID: attestation failed a check; reason provided
    """
    VALID = "VALID"
    INVALID = "INVALID"


@dataclass
class VerificationResult:
    """Result of verifying an attestation."""
    outcome: VerificationOutcome
    attestation: Optional[TEEAttestation] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return self.outcome == VerificationOutcome.VALID

    @classmethod
    def valid(cls, attestation: TEEAttestation) -> 'VerificationResult':
        return cls(outcome=VerificationOutcome.VALID, attestation=attestation)

    @classmethod
    def invalid(
        cls,
        reason: str,
        details: Dict[str, Any] = None,
        attestation: Optional[TEEAttestation] = None
    ) -> 'VerificationResult':
        return cls(
            outcome=VerificationOutcome.INVALID,
            attestation=attestation,
            reason=reason,
            details=details
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"outcome": self.outcome.value}
        if self.reason:
            d["reason"] = self.reason
        if self.details:
            d["details"] = self.details
        if self.attestation is not None:
            d["attestation"] = self.attestation.to_dict()
        return d


class AttestationVerifier:
    """
    Offline attestation verifier.

    Args:
        trusted_keys: Accepted TEE public keys (32 bytes each). When empty,
            any key is accepted and only the signature is checked.
        max_age_ms: Largest accepted distance between the attested timestamp
            and the clock, in either direction. None disables the check.
        clock: Millisecond time source for the freshness check
    """

    def __init__(
        self,
        trusted_keys: Optional[Iterable[bytes]] = None,
        max_age_ms: Optional[int] = None,
        clock: Optional[Clock] = None
    ):
        if max_age_ms is not None and max_age_ms < 0:
            raise ValueError(f"max_age_ms must be non-negative, got {max_age_ms}")
        self.trusted_keys = {bytes(k) for k in (trusted_keys or [])}
        self.max_age_ms = max_age_ms
        self.clock = clock or now_ms

    def verify(
        self,
        attestation: Union[TEEAttestation, bytes, bytearray],
        documents: Any = None,
        expected_kpi: Optional[float] = None
    ) -> VerificationResult:
        """
        Verify an attestation. Never raises for bad input.

        Args:
            attestation: Decoded attestation or its 144-byte encoding
            documents: The exact input batch (raw text or decoded list)
            expected_kpi: KPI the caller expects to have been attested
        """
        result = self._verify(attestation, documents, expected_kpi)
        audit_log.verification_result(
            result.outcome.value,
            reason=result.reason,
            tee_public_key=result.attestation.tee_public_key.hex() if result.attestation else None
        )
        return result

    def _verify(self, attestation, documents, expected_kpi) -> VerificationResult:
        # Step 1: Decode
        if not isinstance(attestation, TEEAttestation):
            try:
                attestation = TEEAttestation.from_bytes(attestation)
            except (TypeError, ValueError):
                return VerificationResult.invalid(
                    "Malformed attestation encoding",
                    {"expected_length": ATTESTATION_SIZE, "length": _safe_len(attestation)}
                )

        # Step 2: Trusted key
        if self.trusted_keys and attestation.tee_public_key not in self.trusted_keys:
            return VerificationResult.invalid(
                "Untrusted TEE public key",
                {"tee_public_key": attestation.tee_public_key.hex()},
                attestation
            )

        # Step 3: Signature
        if not attestation.verify_signature():
            return VerificationResult.invalid("Invalid signature", attestation=attestation)

        # Step 4: Freshness
        if self.max_age_ms is not None:
            now = self.clock()
            age = now - attestation.timestamp
            if abs(age) > self.max_age_ms:
                return VerificationResult.invalid(
                    "Timestamp too old" if age > 0 else "Timestamp in the future",
                    {"timestamp": attestation.timestamp, "now": now, "max_age_ms": self.max_age_ms},
                    attestation
                )

        # Step 5: Commitment
        if documents is not None:
            try:
                committed = batch_commitment_bytes(documents)
            except (TypeError, ValueError) as e:
                return VerificationResult.invalid(
                    f"Cannot commit to supplied documents: {e}", attestation=attestation
                )
            if not verify_computation_hash(committed, attestation.computation_hash):
                return VerificationResult.invalid(
                    "Computation hash mismatch",
                    {
                        "computed": computation_hash(committed).hex(),
                        "declared": attestation.computation_hash.hex()
                    },
                    attestation
                )

        # Step 6: KPI
        if expected_kpi is not None:
            try:
                expected_value = quantize_kpi(expected_kpi)
            except (KPIAttestError, TypeError) as e:
                return VerificationResult.invalid(str(e), attestation=attestation)
            if expected_value != attestation.kpi_value:
                return VerificationResult.invalid(
                    "KPI mismatch",
                    {"expected": expected_value, "declared": attestation.kpi_value},
                    attestation
                )

        return VerificationResult.valid(attestation)


def _safe_len(value: Any) -> Optional[int]:
    try:
        return len(value)
    except TypeError:
        return None


def verify_attestation(
    attestation: Union[TEEAttestation, bytes, bytearray],
    documents: Any = None,
    trusted_keys: Optional[Iterable[bytes]] = None,
    expected_kpi: Optional[float] = None,
    max_age_ms: Optional[int] = None,
    clock: Optional[Clock] = None
) -> VerificationResult:
    """Convenience function to verify an attestation."""
    verifier = AttestationVerifier(trusted_keys, max_age_ms=max_age_ms, clock=clock)
    return verifier.verify(attestation, documents=documents, expected_kpi=expected_kpi)
