"""
Invoice data models.

This module provides data structures for billing results, including the
per-customer billing result and the batch report.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
from enum import Enum

from ..billing.errors import DomainError, OutcomeKind


class InvoiceStatus(Enum):
    """Invoice lifecycle status."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    PAID = "paid"


@dataclass
class BillingResult:
    """
    Result of billing one customer for one period.

    Attributes:
        invoice_id: Created or updated invoice id (None on a dry-run create)
        customer_id: Billed customer
        period: Billing period (YYYY-MM)
        sessions_total: Session sub-total
        sessions_count: Number of billed sessions
        cancellations_total: Cancellation sub-total
        cancellations_count: Number of charged cancellations
        pending_cancellations_count: Late cancellations awaiting approval
        subscriptions_total: Subscription sub-total
        subscriptions_count: Number of active subscriptions
        total: Grand total (no tax)
        status: Resolved invoice status
        created: True if the invoice was created by this run
        dry_run: True if nothing was written

    Examples:
        >>> result = engine.build_customer_month("rec123", "2024-03").unwrap()
        >>> if result.created:
        ...     print(f"Created invoice {result.invoice_id}: {result.total}")
    """

    invoice_id: Optional[str]
    customer_id: str
    period: str
    sessions_total: float
    sessions_count: int
    cancellations_total: float
    cancellations_count: int
    pending_cancellations_count: int
    subscriptions_total: float
    subscriptions_count: int
    total: float
    status: InvoiceStatus
    created: bool
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary format.

        Returns:
            Dictionary representation of the result
        """
        return {
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "period": self.period,
            "sessions_total": self.sessions_total,
            "sessions_count": self.sessions_count,
            "cancellations_total": self.cancellations_total,
            "cancellations_count": self.cancellations_count,
            "pending_cancellations_count": self.pending_cancellations_count,
            "subscriptions_total": self.subscriptions_total,
            "subscriptions_count": self.subscriptions_count,
            "total": self.total,
            "status": self.status.value,
            "created": self.created,
            "dry_run": self.dry_run,
        }


@dataclass
class CustomerOutcome:
    """
    Classified outcome of one customer in a batch run.

    Attributes:
        customer_id: Customer processed
        kind: Outcome classification
        result: Billing result on success
        error: Domain error for skips and failures
    """

    customer_id: str
    kind: OutcomeKind
    result: Optional[BillingResult] = None
    error: Optional[DomainError] = None

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def is_skipped(self) -> bool:
        return self.kind == OutcomeKind.NO_BILLABLE_DATA

    @property
    def is_error(self) -> bool:
        return not (self.is_success or self.is_skipped)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        data: Dict[str, Any] = {
            "customer_id": self.customer_id,
            "kind": self.kind.value,
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class BatchCounts:
    """
    Counters of a batch run.

    Attributes:
        customers_fetched: Active customers loaded
        sessions_fetched: Sessions loaded for the period
        cancellations_fetched: Cancellations loaded for the period
        subscriptions_fetched: Subscriptions loaded
        invoices_fetched: Existing invoices loaded for the period
        created: Invoices created
        updated: Invoices updated
        skipped: Customers with no billable data
        errored: Customers that failed
        not_processed: Customers never scheduled (batch cancelled)
    """

    customers_fetched: int = 0
    sessions_fetched: int = 0
    cancellations_fetched: int = 0
    subscriptions_fetched: int = 0
    invoices_fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    not_processed: int = 0

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary format."""
        return {
            "customers_fetched": self.customers_fetched,
            "sessions_fetched": self.sessions_fetched,
            "cancellations_fetched": self.cancellations_fetched,
            "subscriptions_fetched": self.subscriptions_fetched,
            "invoices_fetched": self.invoices_fetched,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errored": self.errored,
            "not_processed": self.not_processed,
        }


@dataclass
class BatchReport:
    """
    Report of a batch billing run.

    Attributes:
        period: Billing period (YYYY-MM)
        run_id: Identifier used in log lines of this run
        execution_time: Start timestamp (ISO 8601)
        dry_run: Whether writes were suppressed
        counts: Fetch and outcome counters
        succeeded: Successful customer outcomes
        skipped: Customers with no billable data
        errored: Failed customer outcomes
    """

    period: str
    run_id: str
    execution_time: str
    dry_run: bool = False
    counts: BatchCounts = field(default_factory=BatchCounts)
    succeeded: List[CustomerOutcome] = field(default_factory=list)
    skipped: List[CustomerOutcome] = field(default_factory=list)
    errored: List[CustomerOutcome] = field(default_factory=list)

    def add(self, outcome: CustomerOutcome):
        """File an outcome into its bucket and update the counters."""
        if outcome.is_success:
            self.succeeded.append(outcome)
            if outcome.result.created:
                self.counts.created += 1
            else:
                self.counts.updated += 1
        elif outcome.is_skipped:
            self.skipped.append(outcome)
            self.counts.skipped += 1
        else:
            self.errored.append(outcome)
            self.counts.errored += 1

    @property
    def results(self) -> List[BillingResult]:
        return [outcome.result for outcome in self.succeeded]

    @property
    def total_billed(self) -> float:
        return sum(result.total for result in self.results)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary format.

        Returns:
            Dictionary representation of the report
        """
        return {
            "period": self.period,
            "run_id": self.run_id,
            "execution_time": self.execution_time,
            "dry_run": self.dry_run,
            "summary": self.counts.to_dict(),
            "succeeded": [o.to_dict() for o in self.succeeded],
            "skipped": [o.to_dict() for o in self.skipped],
            "errored": [o.to_dict() for o in self.errored],
        }
