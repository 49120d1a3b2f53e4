"""
KPI Attest Document Classification

Identifies the kind of accounting document from the fields it carries.
Classification is presence-based and evaluated in a fixed precedence order;
the first matching rule wins.

Also provides the lenient field accessors used by the delta engine and the
JSON parsing entry point for raw input.
"""

import json
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class KPIAttestError(Exception):
    """Base class for all kpiattest errors."""


class ParseError(KPIAttestError, ValueError):
    """Raised when raw input is not valid structured data."""

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        super().__init__(message)


class DocumentType(str, Enum):
    """Document type tags, in classification precedence order."""
    JOURNAL_ENTRY = "JournalEntry"
    FIXED_ASSETS_REGISTER = "FixedAssetsRegister"
    PAYROLL_EXPENSE = "PayrollExpense"
    OVERHEAD_REPORT = "OverheadReport"
    UNKNOWN = "Unknown"


OVERHEAD_REPORT_TITLE = "Corporate Overhead Report"


# ============================================================
# Lenient field access
# ============================================================

def get_field(obj: Any, key: str) -> Optional[Any]:
    """Return obj[key] when obj is an object holding key, else None."""
    if isinstance(obj, dict):
        return obj.get(key)
    return None


def has_field(obj: Any, key: str) -> bool:
    """True if obj is an object with key present (a null value counts)."""
    return isinstance(obj, dict) and key in obj


def get_number(obj: Any, key: str, default: float = 0.0) -> float:
    """
    Read a numeric field as float.

    Missing fields, nulls, strings and booleans all yield the default.
    Integers beyond float range read as signed infinity, like float
    literals of the same size do after JSON decoding.
    """
    value = get_field(obj, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf


def get_string(obj: Any, key: str, default: Optional[str] = None) -> Optional[str]:
    """Read a string field, or the default when absent or not a string."""
    value = get_field(obj, key)
    if isinstance(value, str):
        return value
    return default


def get_list(obj: Any, key: str) -> List[Any]:
    """Read an array field; anything that is not an array reads as empty."""
    value = get_field(obj, key)
    if isinstance(value, list):
        return value
    return []


# ============================================================
# Classification
# ============================================================

def classify_document(document: Any) -> DocumentType:
    """
    Classify a parsed document.

    Rules, first match wins:
    1. has journalEntryId                               -> JournalEntry
    2. assetList is non-empty and its first entry
       has assetID                                      -> FixedAssetsRegister
    3. has employeeDetails                              -> PayrollExpense
    4. reportTitle == "Corporate Overhead Report"       -> OverheadReport
    5. anything else                                    -> Unknown

    Never raises.
    """
    if has_field(document, "journalEntryId"):
        return DocumentType.JOURNAL_ENTRY

    asset_list = get_list(document, "assetList")
    if asset_list and has_field(asset_list[0], "assetID"):
        return DocumentType.FIXED_ASSETS_REGISTER

    if has_field(document, "employeeDetails"):
        return DocumentType.PAYROLL_EXPENSE

    if get_string(document, "reportTitle") == OVERHEAD_REPORT_TITLE:
        return DocumentType.OVERHEAD_REPORT

    return DocumentType.UNKNOWN


# ============================================================
# Parsing
# ============================================================

def parse_json(raw: Union[str, bytes]) -> Any:
    """
    Decode raw JSON text.

    Raises:
        ParseError: if raw is not valid JSON
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e.msg}", position=e.pos) from e
    except UnicodeDecodeError as e:
        raise ParseError(f"Invalid JSON encoding: {e.reason}") from e
    except ValueError as e:
        # integer digit limit
        raise ParseError(f"Invalid JSON: {e}") from e
    except RecursionError as e:
        raise ParseError("Invalid JSON: nesting too deep") from e


def parse_document(document: Union[str, bytes, Dict[str, Any]]) -> Any:
    """Return a decoded document, parsing it first if it arrived as raw text."""
    if isinstance(document, (str, bytes, bytearray)):
        return parse_json(document)
    return document


def parse_batch(documents: Union[str, bytes, List[Any]]) -> List[Any]:
    """
    Return a decoded document batch.

    Raw text must decode to a JSON array. Already decoded batches are
    accepted as any list or tuple.
    """
    if isinstance(documents, (str, bytes, bytearray)):
        decoded = parse_json(documents)
    else:
        decoded = documents

    if isinstance(decoded, tuple):
        decoded = list(decoded)
    if not isinstance(decoded, list):
        raise ParseError(
            f"Document batch must be a JSON array, got {type(decoded).__name__}"
        )
    return decoded
