"""
Quantization, signing message, 144-byte encoding and the attested pipeline.
"""

import hashlib
import json
import os
import struct
import unittest
from unittest import mock

from kpiattest import (
    ATTESTATION_SIZE,
    Ed25519Signer,
    InvalidPolicyError,
    KPIAttestError,
    KPIRangeError,
    KPIResultWithAttestation,
    NegativeKPIError,
    NegativeKPIPolicy,
    ParseError,
    TEEAttestation,
    build_attestation,
    canonicalize,
    computation_hash,
    compute_kpi_with_attestation,
    dequantize_kpi,
    fixed_clock,
    quantize_kpi,
    signing_message,
    verify_signature,
)

SEED = bytes(range(32))
TIMESTAMP = 1_700_000_000_000

BATCH_JSON = json.dumps([
    {
        "journalEntryId": "JE-2024-001",
        "credits": [{"account": "Sales Revenue", "amount": 50000.0}],
    },
    {"employeeDetails": {"id": "E-7"}, "grossPay": 20000.0},
])


class TestQuantization(unittest.TestCase):

    def test_whole_value(self):
        self.assertEqual(quantize_kpi(30000.0), 30000000)

    def test_half_up(self):
        self.assertEqual(quantize_kpi(1234.5675), 1234568)
        self.assertEqual(quantize_kpi(0.0005), 1)
        self.assertEqual(quantize_kpi(0.0004), 0)

    def test_zero(self):
        self.assertEqual(quantize_kpi(0.0), 0)

    def test_negative_rejected(self):
        with self.assertRaises(NegativeKPIError) as ctx:
            quantize_kpi(-20000.0, NegativeKPIPolicy.REJECT)
        self.assertEqual(ctx.exception.kpi, -20000.0)

    def test_negative_clamped(self):
        self.assertEqual(quantize_kpi(-20000.0, "clamp"), 0)

    def test_policy_from_environment(self):
        with mock.patch.dict(os.environ, {"KPIATTEST_NEGATIVE_KPI_POLICY": "clamp"}):
            self.assertEqual(quantize_kpi(-1.0), 0)
        with mock.patch.dict(os.environ, {"KPIATTEST_NEGATIVE_KPI_POLICY": "reject"}):
            with self.assertRaises(NegativeKPIError):
                quantize_kpi(-1.0)

    def test_non_finite(self):
        for value in (float("nan"), float("inf"), float("-inf")):
            with self.subTest(value=value):
                with self.assertRaises(KPIRangeError):
                    quantize_kpi(value)

    def test_above_u64(self):
        with self.assertRaises(KPIRangeError):
            quantize_kpi(1e20)

    def test_unknown_policy(self):
        with self.assertRaises(InvalidPolicyError) as ctx:
            quantize_kpi(1.0, "wrap")
        self.assertIsInstance(ctx.exception, KPIAttestError)

    def test_unknown_policy_from_environment(self):
        with mock.patch.dict(os.environ, {"KPIATTEST_NEGATIVE_KPI_POLICY": "rejct"}):
            with self.assertRaises(InvalidPolicyError):
                quantize_kpi(1.0)

    def test_errors_are_value_errors(self):
        with self.assertRaises(ValueError):
            quantize_kpi(-5.0, "reject")

    def test_dequantize(self):
        self.assertEqual(dequantize_kpi(30000000), 30000.0)


class TestSigningMessage(unittest.TestCase):

    def test_layout(self):
        digest = bytes(range(32))
        message = signing_message(30000000, digest, TIMESTAMP)
        self.assertEqual(len(message), 48)
        self.assertEqual(message[0:8], struct.pack("<Q", 30000000))
        self.assertEqual(message[8:40], digest)
        self.assertEqual(message[40:48], struct.pack("<Q", TIMESTAMP))


class TestTEEAttestation(unittest.TestCase):

    def setUp(self):
        self.signer = Ed25519Signer.from_seed(SEED)
        self.digest = hashlib.sha256(b"batch").digest()
        self.attestation = build_attestation(
            30000.0, self.digest, self.signer, clock=fixed_clock(TIMESTAMP)
        )

    def test_fields(self):
        self.assertEqual(self.attestation.kpi_value, 30000000)
        self.assertEqual(self.attestation.computation_hash, self.digest)
        self.assertEqual(self.attestation.timestamp, TIMESTAMP)
        self.assertEqual(self.attestation.tee_public_key, self.signer.public_key())

    def test_signature_covers_message(self):
        self.assertTrue(self.attestation.verify_signature())
        message = signing_message(30000000, self.digest, TIMESTAMP)
        self.assertTrue(verify_signature(message, self.attestation.signature, self.signer.public_key()))

    def test_wire_layout(self):
        data = self.attestation.to_bytes()
        self.assertEqual(len(data), ATTESTATION_SIZE)
        self.assertEqual(data[0:8], struct.pack("<Q", 30000000))
        self.assertEqual(data[8:40], self.digest)
        self.assertEqual(data[40:48], struct.pack("<Q", TIMESTAMP))
        self.assertEqual(data[48:80], self.signer.public_key())
        self.assertEqual(data[80:144], self.attestation.signature)

    def test_decode(self):
        decoded = TEEAttestation.from_bytes(self.attestation.to_bytes())
        self.assertEqual(decoded, self.attestation)
        self.assertTrue(decoded.verify_signature())

    def test_decode_wrong_length(self):
        data = self.attestation.to_bytes()
        for bad in (data[:143], data + b"\x00", b""):
            with self.subTest(length=len(bad)):
                with self.assertRaises(ValueError):
                    TEEAttestation.from_bytes(bad)

    def test_dict_form(self):
        d = self.attestation.to_dict()
        self.assertEqual(d["computation_hash"], self.digest.hex())
        self.assertEqual(TEEAttestation.from_dict(d), self.attestation)

    def test_from_dict_missing_field(self):
        d = self.attestation.to_dict()
        del d["signature"]
        with self.assertRaises(ValueError):
            TEEAttestation.from_dict(d)

    def test_field_widths_enforced(self):
        with self.assertRaises(ValueError):
            TEEAttestation(1, b"\x00" * 31, 0, b"\x00" * 32, b"\x00" * 64)
        with self.assertRaises(ValueError):
            TEEAttestation(-1, b"\x00" * 32, 0, b"\x00" * 32, b"\x00" * 64)
        with self.assertRaises(ValueError):
            TEEAttestation(1, b"\x00" * 32, 2 ** 64, b"\x00" * 32, b"\x00" * 64)

    def test_bytearray_fields_frozen(self):
        attestation = TEEAttestation(1, bytearray(32), 0, bytearray(32), bytearray(64))
        self.assertIsInstance(attestation.computation_hash, bytes)
        self.assertIsInstance(attestation.signature, bytes)

    def test_tampered_field_fails_verification(self):
        data = bytearray(self.attestation.to_bytes())
        data[0] ^= 0x01
        self.assertFalse(TEEAttestation.from_bytes(bytes(data)).verify_signature())

    def test_negative_kpi_not_signed(self):
        signer = mock.Mock(wraps=self.signer)
        with self.assertRaises(NegativeKPIError):
            build_attestation(-1.0, self.digest, signer, negative_policy="reject")
        signer.sign.assert_not_called()


class TestComputeKPIWithAttestation(unittest.TestCase):

    def setUp(self):
        self.signer = Ed25519Signer.from_seed(SEED)
        self.clock = fixed_clock(TIMESTAMP)

    def test_two_document_batch(self):
        result = compute_kpi_with_attestation(BATCH_JSON, self.signer, clock=self.clock)

        self.assertEqual(result.kpi_result.kpi, 30000.0)
        self.assertEqual(result.kpi_result.file_type, "PayrollExpense")
        self.assertEqual(result.attestation.kpi_value, 30000000)
        self.assertEqual(result.attestation.timestamp, TIMESTAMP)
        self.assertEqual(len(result.attestation_bytes), 144)
        self.assertEqual(result.attestation_bytes, result.attestation.to_bytes())
        self.assertTrue(result.attestation.verify_signature())

    def test_commitment_is_hash_of_raw_bytes(self):
        result = compute_kpi_with_attestation(BATCH_JSON, self.signer, clock=self.clock)
        expected = hashlib.sha256(BATCH_JSON.encode("utf-8")).digest()
        self.assertEqual(result.attestation.computation_hash, expected)

    def test_whitespace_changes_commitment_not_kpi(self):
        a = compute_kpi_with_attestation(BATCH_JSON, self.signer, clock=self.clock)
        b = compute_kpi_with_attestation(BATCH_JSON + "\n", self.signer, clock=self.clock)
        self.assertEqual(a.attestation.kpi_value, b.attestation.kpi_value)
        self.assertNotEqual(a.attestation.computation_hash, b.attestation.computation_hash)

    def test_deterministic_under_fixed_clock(self):
        a = compute_kpi_with_attestation(BATCH_JSON, self.signer, clock=self.clock)
        b = compute_kpi_with_attestation(BATCH_JSON.encode("utf-8"), self.signer, clock=self.clock)
        self.assertEqual(a.attestation_bytes, b.attestation_bytes)

    def test_decoded_batch_committed_canonically(self):
        batch = json.loads(BATCH_JSON)
        result = compute_kpi_with_attestation(batch, self.signer, clock=self.clock)
        self.assertEqual(result.attestation.computation_hash, computation_hash(canonicalize(batch)))

    def test_non_array_input(self):
        with self.assertRaises(ParseError):
            compute_kpi_with_attestation('{"journalEntryId": "JE-1"}', self.signer)

    def test_invalid_json(self):
        with self.assertRaises(ParseError):
            compute_kpi_with_attestation("[{", self.signer)

    def test_negative_batch_rejected(self):
        batch = json.dumps([{"employeeDetails": {}, "grossPay": 100.0}])
        with self.assertRaises(NegativeKPIError):
            compute_kpi_with_attestation(batch, self.signer, negative_policy="reject")

    def test_negative_batch_clamped(self):
        batch = json.dumps([{"employeeDetails": {}, "grossPay": 100.0}])
        result = compute_kpi_with_attestation(
            batch, self.signer, clock=self.clock, negative_policy=NegativeKPIPolicy.CLAMP
        )
        self.assertEqual(result.kpi_result.kpi, -100.0)
        self.assertEqual(result.attestation.kpi_value, 0)
        self.assertTrue(result.attestation.verify_signature())

    def test_integer_beyond_float_range_not_attested(self):
        batch = [{"journalEntryId": "JE-1", "credits": [{"account": "Sales Revenue", "amount": 10 ** 400}]}]
        with self.assertRaises(KPIRangeError):
            compute_kpi_with_attestation(batch, self.signer, clock=self.clock)

    def test_bundle_bytes_must_match(self):
        result = compute_kpi_with_attestation(BATCH_JSON, self.signer, clock=self.clock)
        with self.assertRaises(ValueError):
            KPIResultWithAttestation(
                kpi_result=result.kpi_result,
                attestation=result.attestation,
                attestation_bytes=bytes(144),
            )

    def test_bundle_dict(self):
        d = compute_kpi_with_attestation(BATCH_JSON, self.signer, clock=self.clock).to_dict()
        self.assertEqual(d["kpi_result"]["kpi"], 30000.0)
        self.assertEqual(d["attestation"]["kpi_value"], 30000000)
        self.assertEqual(len(d["attestation_bytes"]), 144)
        self.assertTrue(all(0 <= b <= 255 for b in d["attestation_bytes"]))

    def test_audit_event(self):
        with self.assertLogs("kpiattest.audit", level="INFO") as cm:
            compute_kpi_with_attestation(BATCH_JSON, self.signer, clock=self.clock)
        fields = cm.records[-1].extra_fields
        self.assertEqual(fields["event_type"], "ATTESTATION_ISSUED")
        self.assertEqual(fields["kpi_value"], 30000000)
        self.assertEqual(fields["document_count"], 2)


if __name__ == "__main__":
    unittest.main()
