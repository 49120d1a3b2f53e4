#!/usr/bin/env python3
"""
Attest a two-document batch and verify the result the way a ledger would.

Run:
    python examples/attest_batch_example.py
"""

import json

from kpiattest import (
    Ed25519Signer,
    compute_kpi_with_attestation,
    verify_attestation,
)
from kpiattest.logging_config import configure_logging

# Demo key only; real deployments load a provisioned key file
DEMO_SEED = bytes(range(32))

BATCH = json.dumps([
    {
        "journalEntryId": "JE-2024-001",
        "date": "2024-01-31",
        "credits": [{"account": "Sales Revenue", "amount": 50000.0}],
    },
    {
        "employeeDetails": {"id": "E-7", "name": "A. Analyst"},
        "grossPay": 20000.0,
    },
])


def main():
    configure_logging(level="WARNING", json_format=False)

    signer = Ed25519Signer.from_seed(DEMO_SEED, kid="demo-tee")
    result = compute_kpi_with_attestation(BATCH, signer)

    print("KPI:              ", result.kpi_result.kpi)
    print("Last file type:   ", result.kpi_result.file_type)
    print("kpi_value:        ", result.attestation.kpi_value)
    print("computation_hash: ", result.attestation.computation_hash.hex())
    print("timestamp (ms):   ", result.attestation.timestamp)
    print("attestation:      ", result.attestation_bytes.hex())

    check = verify_attestation(
        result.attestation_bytes,
        documents=BATCH,
        trusted_keys=[signer.public_key()],
        expected_kpi=result.kpi_result.kpi,
    )
    print("verification:     ", check.outcome.value)

    tampered = bytearray(result.attestation_bytes)
    tampered[0] ^= 0x01
    print("tampered:         ", verify_attestation(bytes(tampered)).reason)


if __name__ == "__main__":
    main()
