"""
Logging setup and audit trail for kpiattest.

Records go out as one JSON object per line. Audit events carry their payload
in record.extra_fields, which the formatter merges into the top level.
Private key material is never logged; hashes and public keys appear as hex.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

# Set per HTTP request by the service middleware
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

PLAIN_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.strftime('%Y-%m-%dT%H:%M:%S.%fZ'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        current_request = request_id_var.get()
        if current_request:
            payload["request_id"] = current_request

        payload.update(getattr(record, 'extra_fields', {}))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class AuditLogger:
    """
    Domain events of the attestation pipeline.

    KPI_COMPUTED         unattested computation (simple mode)
    ATTESTATION_ISSUED   signed attestation produced
    PARSE_FAILURE        input rejected before any computation
    VERIFICATION_RESULT  outcome of an offline verification
    """

    def __init__(self, name: str = "kpiattest.audit"):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, event_type: str, summary: str, **fields) -> None:
        fields["event_type"] = event_type
        fields["request_id"] = request_id_var.get()
        self._logger.log(level, "%s: %s", event_type, summary, extra={"extra_fields": fields})

    def kpi_computed(self, kpi: float, file_type: str, document_count: int) -> None:
        self._emit(
            logging.INFO, "KPI_COMPUTED",
            f"KPI computed over {document_count} document(s)",
            kpi=kpi, file_type=file_type, document_count=document_count
        )

    def attestation_issued(
        self,
        kpi_value: int,
        computation_hash: str,
        timestamp: int,
        tee_public_key: str,
        document_count: int,
        file_type: Optional[str] = None
    ) -> None:
        self._emit(
            logging.INFO, "ATTESTATION_ISSUED",
            f"Attestation issued for kpi_value {kpi_value}",
            kpi_value=kpi_value,
            computation_hash=computation_hash,
            timestamp=timestamp,
            tee_public_key=tee_public_key,
            document_count=document_count,
            file_type=file_type
        )

    def parse_failure(self, reason: str) -> None:
        self._emit(logging.WARNING, "PARSE_FAILURE", f"Input rejected: {reason}", reason=reason)

    def verification_result(
        self,
        outcome: str,
        reason: Optional[str] = None,
        tee_public_key: Optional[str] = None
    ) -> None:
        """INFO when the attestation verified, WARNING otherwise."""
        summary = f"Verification {outcome}"
        if reason:
            summary += f": {reason}"
        self._emit(
            logging.INFO if outcome == "VALID" else logging.WARNING,
            "VERIFICATION_RESULT",
            summary,
            outcome=outcome, reason=reason, tee_public_key=tee_public_key
        )


def _build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return StructuredFormatter()
    return logging.Formatter(PLAIN_FORMAT)


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> None:
    """
    Install kpiattest's handlers on the root logger, replacing existing ones.

    Console output goes to stderr (or stream) so CLI stdout stays parseable.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for existing in list(root.handlers):
        root.removeHandler(existing)

    formatter = _build_formatter(json_format)
    handlers = [logging.StreamHandler(stream or sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id to the current context, generating one if absent."""
    bound = request_id or uuid.uuid4().hex
    request_id_var.set(bound)
    return bound


def get_request_id() -> str:
    return request_id_var.get()


audit_log = AuditLogger()
