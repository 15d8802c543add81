"""
Domain errors for the billing engine.

Every per-customer outcome of a billing run falls into exactly one
OutcomeKind. Validation, not-found, duplicate-invoice and store problems
are raised; missing business data is returned inside a Result; having
nothing to bill is raised as NoBillableDataError and treated as a skip.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class OutcomeKind(Enum):
    """Classification of one customer's billing outcome."""
    SUCCESS = "success"
    NO_BILLABLE_DATA = "no_billable_data"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    MISSING_DATA = "missing_data"
    DUPLICATE_INVOICE = "duplicate_invoice"
    UNKNOWN = "unknown"


@dataclass
class MissingField:
    """
    One piece of business data an operator must provide.

    Attributes:
        table: Store table holding the field
        field: Field (or business rule) that is missing or ambiguous
        why_needed: Human-readable justification
        example_values: Example remediation values
        record_ids: Records that need the decision
    """

    table: str
    field: str
    why_needed: str
    example_values: List[str] = field(default_factory=list)
    record_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the operator-facing dictionary shape."""
        return {
            "table": self.table,
            "field": self.field,
            "why_needed": self.why_needed,
            "example_values": list(self.example_values),
            "record_ids": list(self.record_ids),
        }


class DomainError(Exception):
    """Base class for billing domain errors."""

    code = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary format.

        Returns:
            Dictionary with code, message and details
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Malformed input such as a period that is not YYYY-MM."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field})
        self.field = field


class CustomerNotFoundError(DomainError):
    """The customer record does not exist in the store."""

    code = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        super().__init__(
            f"Customer not found: {customer_id}",
            details={"customer_id": customer_id}
        )
        self.customer_id = customer_id


class MissingFieldsError(DomainError):
    """Business data is missing or ambiguous; an operator must decide."""

    code = "MISSING_FIELDS"

    def __init__(self, missing_fields: List[MissingField]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            "Required business data is missing",
            details={"MISSING_FIELDS": [f.to_dict() for f in self.missing_fields]}
        )

    def to_dict(self) -> Dict[str, Any]:
        """Render the remediation report."""
        return {"MISSING_FIELDS": [f.to_dict() for f in self.missing_fields]}


class DuplicateInvoiceError(DomainError):
    """More than one invoice exists for the same customer and period."""

    code = "DUPLICATE_INVOICE_RECORDS"

    def __init__(self, customer_id: str, period: str, record_ids: List[str]):
        super().__init__(
            f"Multiple invoices found for customer {customer_id} "
            f"and period {period}: {', '.join(record_ids)}",
            details={
                "customer_id": customer_id,
                "period": period,
                "record_ids": list(record_ids),
                "count": len(record_ids),
            }
        )
        self.customer_id = customer_id
        self.period = period
        self.record_ids = list(record_ids)


class NoBillableDataError(DomainError):
    """Nothing to bill for this customer and period. A skip, not a failure."""

    code = "NO_BILLABLE_DATA"

    def __init__(self, customer_id: str, period: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"No billable data for customer {customer_id} in period {period}",
            details={"customer_id": customer_id, "period": period, **(details or {})}
        )
        self.customer_id = customer_id
        self.period = period


class StoreError(DomainError):
    """The record store rejected or failed a request."""

    code = "STORE_ERROR"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        payload: Optional[Any] = None,
        request_sent: bool = True
    ):
        super().__init__(message, details={"status": status, "payload": payload})
        self.status = status
        self.payload = payload
        self.request_sent = request_sent

    @property
    def is_retryable(self) -> bool:
        """Rate limits, server errors and transport errors can be retried."""
        if self.status is None:
            return True
        return self.status == 429 or self.status >= 500


_OUTCOME_BY_ERROR = (
    (NoBillableDataError, OutcomeKind.NO_BILLABLE_DATA),
    (ValidationError, OutcomeKind.VALIDATION),
    (CustomerNotFoundError, OutcomeKind.NOT_FOUND),
    (MissingFieldsError, OutcomeKind.MISSING_DATA),
    (DuplicateInvoiceError, OutcomeKind.DUPLICATE_INVOICE),
)


def classify_outcome(error: Optional[BaseException]) -> OutcomeKind:
    """
    Classify an error into exactly one OutcomeKind.

    Args:
        error: Error raised or returned for a customer, or None on success

    Returns:
        OutcomeKind for the error
    """
    if error is None:
        return OutcomeKind.SUCCESS

    for error_type, kind in _OUTCOME_BY_ERROR:
        if isinstance(error, error_type):
            return kind

    return OutcomeKind.UNKNOWN
