"""
Error taxonomy for the order sheet engine.

ValidationError and StructuralError are raised; a classification gap or a
possible duplicate send are ordinary results, not exceptions.
"""
from typing import Dict, List, Optional


class OrderSheetError(Exception):
    """Base class for every error raised by ordersheet."""
    pass


class ValidationError(OrderSheetError):
    """
    A configuration or request is invalid: missing/duplicate field binding,
    malformed template syntax, send without email or reason.

    `issues` follows the same shape as the blueprint validator output:
    a list of {"issue", "detail", "fix"} dicts.
    """

    def __init__(self, message: str, issues: Optional[List[Dict[str, str]]] = None, report=None):
        super().__init__(message)
        self.issues = issues or []
        self.report = report


class StructuralError(OrderSheetError):
    """The spreadsheet itself is unusable (empty sheet, no header row, missing template)."""
    pass


class TransportError(OrderSheetError):
    """Mail transport failed; the batch stays retryable."""
    pass
