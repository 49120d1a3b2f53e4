"""
KPI Attest Aggregator

Folds the delta engine over documents.

Two modes:
- single document with a caller supplied running total (compute_kpi)
- ordered batch, cumulative (aggregate_documents / calculate_kpi)

The numeric KPI of a batch is a plain sum and therefore order independent;
file_type reports the classification of the last document processed and is
order dependent.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Union

from .deltas import compute_change
from .documents import DocumentType, classify_document, parse_document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KPIResult:
    """Outcome of a KPI computation."""
    kpi: float
    change: float
    file_type: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_kpi(
    document: Union[str, bytes, Dict[str, Any]],
    running_kpi: float = 0.0
) -> KPIResult:
    """
    Apply a single document to a running KPI.

    Args:
        document: Decoded document, or raw JSON text
        running_kpi: KPI before this document

    Returns:
        KPIResult with kpi = running_kpi + change

    Raises:
        ParseError: only when document is raw text that is not valid JSON
    """
    data = parse_document(document)
    file_type = classify_document(data)
    change = compute_change(data, file_type)

    logger.debug("Document classified as %s, change %r", file_type.value, change)

    return KPIResult(
        kpi=running_kpi + change,
        change=change,
        file_type=file_type.value
    )


def calculate_kpi(documents: Iterable[Any], initial_kpi: float = 0.0) -> KPIResult:
    """
    Cumulative KPI over an ordered batch starting from initial_kpi.

    change is the effect of the whole batch (kpi - initial_kpi).
    """
    cumulative_kpi = initial_kpi
    last_file_type = DocumentType.UNKNOWN
    count = 0

    for document in documents:
        file_type = classify_document(document)
        cumulative_kpi += compute_change(document, file_type)
        last_file_type = file_type
        count += 1

    logger.debug(
        "Aggregated %d documents: kpi=%r last_file_type=%s",
        count, cumulative_kpi, last_file_type.value
    )

    return KPIResult(
        kpi=cumulative_kpi,
        change=cumulative_kpi - initial_kpi,
        file_type=last_file_type.value
    )


def aggregate_documents(documents: Iterable[Any]) -> KPIResult:
    """
    Cumulative KPI over an ordered batch starting from zero.

    In cumulative mode change equals the final KPI.
    """
    return calculate_kpi(documents, 0.0)
