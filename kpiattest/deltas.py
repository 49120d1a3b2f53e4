"""
KPI Attest Delta Engine

Computes the signed contribution of one document to the KPI, using
type-specific financial rules:

- JournalEntry:         + first "Sales Revenue" credit amount
- FixedAssetsRegister:  - total straight-line monthly depreciation
- PayrollExpense:       - gross pay
- OverheadReport:       - 10% allocation of total overhead cost
- Unknown:              0

All field access is lenient; missing or mistyped values take the documented
default instead of failing.
"""

from typing import Any, Callable, Dict, Optional

from .documents import (
    DocumentType,
    classify_document,
    get_list,
    get_number,
    get_string,
)


SALES_REVENUE_ACCOUNT = "Sales Revenue"
OVERHEAD_ALLOCATION_RATE = 0.1
MONTHS_PER_YEAR = 12
DEFAULT_USEFUL_LIFE_YEARS = 1.0


def journal_entry_change(document: Any) -> float:
    """Amount of the first credit booked to Sales Revenue, or 0.0."""
    for credit in get_list(document, "credits"):
        if get_string(credit, "account") == SALES_REVENUE_ACCOUNT:
            return get_number(credit, "amount", 0.0)
    return 0.0


def monthly_depreciation(asset: Any) -> float:
    """Straight-line monthly depreciation of a single asset."""
    cost = get_number(asset, "originalCost", 0.0)
    residual = get_number(asset, "residualValue", 0.0)
    life_years = get_number(asset, "usefulLife_years", DEFAULT_USEFUL_LIFE_YEARS)
    if life_years == 0:
        life_years = DEFAULT_USEFUL_LIFE_YEARS
    return (cost - residual) / (life_years * MONTHS_PER_YEAR)


def fixed_assets_change(document: Any) -> float:
    """Negated sum of monthly depreciation across the asset list."""
    total = 0.0
    for asset in get_list(document, "assetList"):
        if not isinstance(asset, dict):
            continue
        total += monthly_depreciation(asset)
    return -total


def payroll_change(document: Any) -> float:
    return -get_number(document, "grossPay", 0.0)


def overhead_change(document: Any) -> float:
    return -(get_number(document, "totalOverheadCost", 0.0) * OVERHEAD_ALLOCATION_RATE)


def _no_change(document: Any) -> float:
    return 0.0


DELTA_RULES: Dict[DocumentType, Callable[[Any], float]] = {
    DocumentType.JOURNAL_ENTRY: journal_entry_change,
    DocumentType.FIXED_ASSETS_REGISTER: fixed_assets_change,
    DocumentType.PAYROLL_EXPENSE: payroll_change,
    DocumentType.OVERHEAD_REPORT: overhead_change,
    DocumentType.UNKNOWN: _no_change,
}


def compute_change(document: Any, document_type: Optional[DocumentType] = None) -> float:
    """
    Compute the KPI change contributed by a document.

    Args:
        document: Parsed document
        document_type: Classification, computed when not supplied

    Returns:
        Signed change; never raises for missing or mistyped fields
    """
    if document_type is None:
        document_type = classify_document(document)
    rule = DELTA_RULES.get(document_type, _no_change)
    return rule(document)
