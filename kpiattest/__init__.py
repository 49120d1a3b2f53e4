"""
kpiattest: TEE-attested financial KPI computation

Computes a single KPI from a batch of heterogeneous accounting documents and
produces a signed attestation binding the value, a commitment to the input
bytes and a timestamp. A ledger verifies the Ed25519 signature instead of
re-running the computation.

Pipeline:
    classify -> per-type delta -> cumulative KPI -> input commitment
    -> signing message -> Ed25519 signature -> 144-byte encoding

Usage:
    from kpiattest import Ed25519Signer, compute_kpi_with_attestation

    signer = Ed25519Signer.from_key_file("secrets/tee_signing_key.json")
    result = compute_kpi_with_attestation(raw_batch_json, signer)

    result.kpi_result.kpi          # 30000.0
    result.attestation.kpi_value   # 30000000
    result.attestation_bytes       # 144 bytes for ledger submission
"""

__version__ = "1.0.0"

# Documents
from .documents import (
    DocumentType,
    KPIAttestError,
    ParseError,
    classify_document,
    get_list,
    get_number,
    get_string,
    parse_batch,
    parse_document,
)

# Delta engine
from .deltas import (
    compute_change,
    fixed_assets_change,
    journal_entry_change,
    monthly_depreciation,
    overhead_change,
    payroll_change,
)

# Aggregation
from .aggregator import (
    KPIResult,
    aggregate_documents,
    calculate_kpi,
    compute_kpi,
)

# Commitment hashing
from .hashing import (
    canonicalize,
    computation_hash,
    sha256_hash,
    verify_computation_hash,
)

# Signing
from .signing import (
    Ed25519Signer,
    LazyFileSigner,
    Signer,
    SigningKeyError,
    verify_signature,
)

# Attestation
from .attestation import (
    ATTESTATION_SIZE,
    InvalidPolicyError,
    KPIRangeError,
    KPIResultWithAttestation,
    NegativeKPIError,
    NegativeKPIPolicy,
    TEEAttestation,
    build_attestation,
    compute_kpi_with_attestation,
    dequantize_kpi,
    quantize_kpi,
    signing_message,
)

# Verification
from .verifier import (
    DEFAULT_MAX_AGE_MS,
    AttestationVerifier,
    VerificationOutcome,
    VerificationResult,
    verify_attestation,
)

# Clocks
from .util import Clock, fixed_clock, system_clock


__all__ = [
    # Version
    "__version__",

    # Documents
    "DocumentType",
    "KPIAttestError",
    "ParseError",
    "classify_document",
    "get_list",
    "get_number",
    "get_string",
    "parse_batch",
    "parse_document",

    # Delta engine
    "compute_change",
    "fixed_assets_change",
    "journal_entry_change",
    "monthly_depreciation",
    "overhead_change",
    "payroll_change",

    # Aggregation
    "KPIResult",
    "aggregate_documents",
    "calculate_kpi",
    "compute_kpi",

    # Hashing
    "canonicalize",
    "computation_hash",
    "sha256_hash",
    "verify_computation_hash",

    # Signing
    "Ed25519Signer",
    "LazyFileSigner",
    "Signer",
    "SigningKeyError",
    "verify_signature",

    # Attestation
    "ATTESTATION_SIZE",
    "InvalidPolicyError",
    "KPIRangeError",
    "KPIResultWithAttestation",
    "NegativeKPIError",
    "NegativeKPIPolicy",
    "TEEAttestation",
    "build_attestation",
    "compute_kpi_with_attestation",
    "dequantize_kpi",
    "quantize_kpi",
    "signing_message",

    # Verification
    "DEFAULT_MAX_AGE_MS",
    "AttestationVerifier",
    "VerificationOutcome",
    "VerificationResult",
    "verify_attestation",

    # Clocks
    "Clock",
    "fixed_clock",
    "system_clock",
]
