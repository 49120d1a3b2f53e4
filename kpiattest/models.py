from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class Operation(str, Enum):
    SIMPLE = "simple"
    WITH_ATTESTATION = "with_attestation"


class ComputeKPIRequest(BaseModel):
    # Shape checked by the endpoint so a bad batch is a 400, not a 422
    documents: Optional[Any] = None
    operation: Operation = Operation.WITH_ATTESTATION
    initial_kpi: float = 0.0


class VerifyRequest(BaseModel):
    attestation_hex: str
    documents: Optional[List[Any]] = None
    trusted_keys: List[str] = Field(default_factory=list)
    expected_kpi: Optional[float] = None
    max_age_ms: Optional[int] = Field(default=None, ge=0)
