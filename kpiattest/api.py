"""
HTTP compute service for kpiattest.

POST /api/v1/tee/compute   KPI over a document batch, optionally attested
POST /api/v1/tee/verify    offline verification of an attestation
GET  /api/v1/health        liveness

Decoded request documents are committed through canonical JSON; callers that
need a byte-exact commitment use the library or CLI with the raw file.
"""

import logging
import math
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__, config
from .aggregator import calculate_kpi
from .attestation import InvalidPolicyError, compute_kpi_with_attestation
from .documents import KPIAttestError
from .logging_config import audit_log, set_request_id
from .models import ComputeKPIRequest, Operation, VerifyRequest
from .signing import LazyFileSigner, Signer, SigningKeyError
from .util import hex_decode
from .verifier import verify_attestation

logger = logging.getLogger(__name__)

app = FastAPI(
    title="kpiattest",
    version=__version__,
    docs_url=None if config.is_production() else "/docs",
)

SIGNER: Optional[Signer] = None


def get_signer() -> Signer:
    """Signer dependency; the key file is read on first signature."""
    global SIGNER
    if SIGNER is None:
        SIGNER = LazyFileSigner(config.SIGNING_KEY_PATH)
    return SIGNER


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/api/v1/health")
def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "env": config.ENV,
        "version": __version__,
        "checks": config.validate_config(),
    }


@app.post("/api/v1/tee/compute")
def compute(req: ComputeKPIRequest, signer: Signer = Depends(get_signer)):
    if not isinstance(req.documents, list):
        return _error(400, "Invalid request: documents must be an array")
    if not req.documents:
        return _error(400, "Invalid request: documents array is empty")

    if req.operation == Operation.SIMPLE:
        result = calculate_kpi(req.documents, req.initial_kpi)
        if not (math.isfinite(result.kpi) and math.isfinite(result.change)):
            return _error(400, "KPI is not a finite number")
        audit_log.kpi_computed(result.kpi, result.file_type, len(req.documents))
        return {
            "success": True,
            "data": {"kpi_result": result.to_dict()},
            "message": "KPI calculated successfully (simple mode)",
        }

    try:
        bundle = compute_kpi_with_attestation(req.documents, signer)
    except SigningKeyError as e:
        logger.error("Signing key unavailable: %s", e)
        return _error(503, "Signing key unavailable")
    except InvalidPolicyError as e:
        logger.error("Server misconfigured: %s", e)
        return _error(500, f"Server misconfigured: {e}")
    except KPIAttestError as e:
        return _error(400, str(e))

    return {
        "success": True,
        "data": bundle.to_dict(),
        "message": "KPI calculated with TEE attestation",
    }


@app.post("/api/v1/tee/verify")
def verify(req: VerifyRequest):
    try:
        encoded = hex_decode(req.attestation_hex)
        trusted = [hex_decode(k, 32) for k in req.trusted_keys]
    except ValueError as e:
        return _error(400, str(e))

    result = verify_attestation(
        encoded,
        documents=req.documents,
        trusted_keys=trusted,
        expected_kpi=req.expected_kpi,
        max_age_ms=req.max_age_ms,
    )
    return {"success": result.is_valid(), "data": result.to_dict()}
