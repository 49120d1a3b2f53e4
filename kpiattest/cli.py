#!/usr/bin/env python3
"""
kpiattest Command Line Interface

Usage:
    kpiattest compute --file <doc.json> [--running-kpi <float>]
    kpiattest attest --file <batch.json> --signing-key <key.json> [--output <file>]
    kpiattest verify --attestation <file|hex> [--file <batch.json>] [--trusted-key <hex>] [--max-age-ms [<ms>]]
    kpiattest hash --file <batch.json>
    kpiattest serve [--host <host>] [--port <port>]
"""

import argparse
import json
import sys
from pathlib import Path

from . import config
from .documents import KPIAttestError
from .logging_config import configure_logging
from .verifier import DEFAULT_MAX_AGE_MS

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_INPUT_ERROR = 2


def read_bytes(path: str) -> bytes:
    """Read a file exactly as stored."""
    with open(path, 'rb') as f:
        return f.read()


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def cmd_compute(args) -> int:
    """Compute the KPI change of a single document."""
    from .aggregator import compute_kpi

    result = compute_kpi(read_bytes(args.file), args.running_kpi)
    print(json.dumps(result.to_dict(), indent=2))
    return EXIT_OK


def cmd_attest(args) -> int:
    """Compute and attest the cumulative KPI of a batch."""
    from .attestation import compute_kpi_with_attestation
    from .signing import Ed25519Signer

    signer = Ed25519Signer.from_key_file(args.signing_key)
    bundle = compute_kpi_with_attestation(
        read_bytes(args.file),
        signer,
        negative_policy=args.negative_policy
    )

    output = bundle.to_dict()
    output["attestation_hex"] = bundle.attestation_bytes.hex()

    if args.output:
        save_json(output, args.output)
        print(f"Attestation saved to: {args.output}", file=sys.stderr)
    else:
        print(json.dumps(output, indent=2))
    return EXIT_OK


def _load_attestation_bytes(value: str) -> bytes:
    """Accept a bundle JSON file, a raw 144-byte file or a hex string."""
    from .util import hex_decode

    path = Path(value)
    try:
        is_file = path.is_file()
    except OSError:
        # a 288-char hex string is longer than NAME_MAX
        is_file = False
    if is_file:
        data = path.read_bytes()
        try:
            doc = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return data
        if isinstance(doc, dict) and "attestation_hex" in doc:
            return hex_decode(doc["attestation_hex"])
        if isinstance(doc, dict) and "attestation_bytes" in doc:
            return bytes(doc["attestation_bytes"])
        raise ValueError(f"No attestation found in {value}")
    return hex_decode(value)


def cmd_verify(args) -> int:
    """Verify an attestation."""
    from .util import hex_decode
    from .verifier import verify_attestation

    encoded = _load_attestation_bytes(args.attestation)
    documents = read_bytes(args.file) if args.file else None
    trusted = [hex_decode(k, 32) for k in args.trusted_key or []]

    result = verify_attestation(
        encoded,
        documents=documents,
        trusted_keys=trusted,
        max_age_ms=args.max_age_ms
    )

    if result.is_valid():
        print(f"✓ {result.outcome.value}")
        print(json.dumps(result.attestation.to_dict(), indent=2))
        return EXIT_OK

    print(f"✗ INVALID: {result.reason}")
    if result.details:
        print(json.dumps(result.details, indent=2))
    return EXIT_INVALID


def cmd_hash(args) -> int:
    """Print the commitment hash of a file's raw bytes."""
    from .hashing import sha256_hash

    print(sha256_hash(read_bytes(args.file)))
    return EXIT_OK


def cmd_serve(args) -> int:
    """Run the HTTP compute service."""
    import uvicorn

    uvicorn.run("kpiattest.api:app", host=args.host, port=args.port, log_config=None)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kpiattest",
        description="TEE-attested financial KPI computation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kpiattest compute -f journal_entry.json -k 1500.0
  kpiattest attest -f batch.json -s secrets/tee_signing_key.json -o attestation.json
  kpiattest verify -a attestation.json -f batch.json
  kpiattest hash -f batch.json
        """
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # compute
    compute_parser = subparsers.add_parser("compute", help="KPI change of one document")
    compute_parser.add_argument("-f", "--file", required=True, help="Document JSON file")
    compute_parser.add_argument("-k", "--running-kpi", type=float, default=0.0, help="KPI before this document")

    # attest
    attest_parser = subparsers.add_parser("attest", help="Attest the KPI of a document batch")
    attest_parser.add_argument("-f", "--file", required=True, help="JSON array of documents")
    attest_parser.add_argument("-s", "--signing-key", default=config.SIGNING_KEY_PATH, help="Signing key JSON file")
    attest_parser.add_argument("-n", "--negative-policy", choices=["reject", "clamp"], help="Negative KPI handling")
    attest_parser.add_argument("-o", "--output", help="Output file for the attestation bundle")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify an attestation")
    verify_parser.add_argument("-a", "--attestation", required=True, help="Bundle JSON, raw 144-byte file or hex")
    verify_parser.add_argument("-f", "--file", help="The attested document batch")
    verify_parser.add_argument("-t", "--trusted-key", action="append", help="Trusted TEE public key (hex)")
    verify_parser.add_argument(
        "-m", "--max-age-ms", type=int, nargs="?", const=DEFAULT_MAX_AGE_MS,
        help="Reject timestamps further than this from now (default window: 1 hour)"
    )

    # hash
    hash_parser = subparsers.add_parser("hash", help="Commitment hash of a file")
    hash_parser.add_argument("-f", "--file", required=True, help="File to hash")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


COMMANDS = {
    "compute": cmd_compute,
    "attest": cmd_attest,
    "verify": cmd_verify,
    "hash": cmd_hash,
    "serve": cmd_serve,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return EXIT_INPUT_ERROR

    level = "DEBUG" if config.is_debug() else args.log_level
    configure_logging(level=level, json_format=config.LOG_JSON)

    try:
        return command(args)
    except (KPIAttestError, ValueError, KeyError, TypeError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR


if __name__ == "__main__":
    sys.exit(main())
