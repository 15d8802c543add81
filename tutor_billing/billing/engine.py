"""
Billing engine.

Builds (creates or updates) the monthly invoice of one customer:

1. Validate the period
2. Load the customer and its activity (or take a pre-fetched slice)
3. Run the session, cancellation and subscription calculators
4. Return missing business data instead of writing a wrong invoice
5. Skip customers with no activity at all
6. Create the invoice, or update the single existing one; stop on
   duplicates without writing anything
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models.invoice import BillingResult, InvoiceStatus
from ..models.records import (
    Cancellation,
    Customer,
    InvoiceDraft,
    InvoiceRecord,
    Session,
    Subscription,
)
from ..models.result import Result
from ..store.interfaces import RecordStore
from .errors import CustomerNotFoundError, DuplicateInvoiceError, NoBillableDataError, ValidationError
from .periods import DEFAULT_TIMEZONE, Period
from .rules import (
    SOLO_UNIT_PRICE,
    SessionLookup,
    active_subscriptions_for,
    calculate_cancellations_contribution,
    calculate_sessions_contribution,
    calculate_subscriptions_contribution,
    calculate_total,
    resolve_status,
)


logger = logging.getLogger(__name__)


def generate_invoice_key(customer_id: str, period: str) -> str:
    """
    Natural key of an invoice.

    Examples:
        >>> generate_invoice_key("rec123", "2024-03")
        'rec123_2024-03'
    """
    return f"{customer_id}_{period}"


def build_session_lookup(sessions: List[Session]) -> SessionLookup:
    """Build a session id -> Session lookup scoped to one request or run."""
    by_id: Dict[str, Session] = {session.id: session for session in sessions}
    return by_id.get


@dataclass
class CustomerActivity:
    """
    Everything the engine needs to bill one customer for one period.

    Batch runs pass a pre-fetched slice; single-customer builds let the
    engine fetch it. Records of other customers are ignored.
    """

    customer: Customer
    sessions: List[Session] = field(default_factory=list)
    cancellations: List[Cancellation] = field(default_factory=list)
    subscriptions: List[Subscription] = field(default_factory=list)
    invoices: List[InvoiceRecord] = field(default_factory=list)
    session_lookup: Optional[SessionLookup] = None


class BillingEngine:
    """
    Orchestrates the billing of one customer for one period.

    Examples:
        >>> engine = BillingEngine(store)
        >>> result = engine.build_customer_month("rec123", "2024-03")
        >>> if result.is_missing_data:
        ...     print(result.error.to_dict())
        >>> elif result.is_success:
        ...     print(result.value.total)
    """

    def __init__(
        self,
        store: RecordStore,
        unit_price: float = SOLO_UNIT_PRICE,
        timezone: str = DEFAULT_TIMEZONE,
        dry_run: bool = False
    ):
        """
        Initialize BillingEngine.

        Args:
            store: Record store
            unit_price: Price of a solo session without an explicit amount
            timezone: Billing time zone for month boundaries
            dry_run: Compute everything but skip the invoice write
        """
        self.store = store
        self.unit_price = unit_price
        self.timezone = timezone
        self.dry_run = dry_run

    def fetch_activity(self, customer_id: str, period: Period) -> CustomerActivity:
        """
        Load a customer and its activity for a period.

        Raises:
            CustomerNotFoundError: If the customer does not exist
            StoreError: If the store fails
        """
        customer = self.store.get_customer(customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)

        return CustomerActivity(
            customer=customer,
            sessions=self.store.list_sessions(period.key, customer_id),
            cancellations=self.store.list_cancellations(period.key, customer_id),
            subscriptions=self.store.list_subscriptions(customer_id),
            invoices=self.store.list_invoices(period.key, customer_id),
        )

    def build_customer_month(
        self,
        customer_id: str,
        period: str,
        activity: Optional[CustomerActivity] = None,
        run_id: Optional[str] = None
    ) -> Result[BillingResult]:
        """
        Create or update the invoice of a customer for a period.

        Args:
            customer_id: Customer record id
            period: Billing period (YYYY-MM)
            activity: Pre-fetched activity (fetched from the store if None)
            run_id: Batch run id used in log lines

        Returns:
            Result with BillingResult, or a missing-data Result listing
            every piece of business data that blocks billing

        Raises:
            ValidationError: If the period or customer id is malformed
            CustomerNotFoundError: If the customer does not exist
            NoBillableDataError: If there is nothing to bill (skip)
            DuplicateInvoiceError: If several invoices already exist
            StoreError: If the store fails
        """
        target = Period.parse(period)
        if not customer_id or not customer_id.strip():
            raise ValidationError("Customer id is required", field="customer_id")

        prefix = f"[{run_id}] " if run_id else ""

        if activity is None:
            activity = self.fetch_activity(customer_id, target)

        session_lookup = activity.session_lookup or build_session_lookup(activity.sessions)

        subscriptions = [s for s in activity.subscriptions if customer_id in s.customer_ids]
        cancellations = [c for c in activity.cancellations if customer_id in c.customer_ids]
        active = active_subscriptions_for(subscriptions, target)

        sessions_result = calculate_sessions_contribution(
            activity.sessions,
            target,
            customer_id,
            unit_price=self.unit_price,
            active_subscriptions=active,
            timezone=self.timezone
        )
        cancellations_result = calculate_cancellations_contribution(
            cancellations,
            target,
            session_lookup=session_lookup,
            unit_price=self.unit_price,
            active_subscriptions=active
        )
        subscriptions_result = calculate_subscriptions_contribution(subscriptions, target)

        missing = []
        for partial in (sessions_result, cancellations_result, subscriptions_result):
            for entry in partial.missing_fields:
                if entry not in missing:
                    missing.append(entry)

        if missing:
            logger.warning(
                f"{prefix}Customer {customer_id} {target}: "
                f"{len(missing)} missing data item(s)"
            )
            return Result.missing(missing)

        sessions = sessions_result.unwrap()
        cancellations_part = cancellations_result.unwrap()
        subscriptions_part = subscriptions_result.unwrap()

        if sessions.uncovered_count:
            logger.info(
                f"{prefix}Customer {customer_id} {target}: {sessions.uncovered_count} "
                f"duo/group session(s) without an active subscription"
            )

        has_activity = (
            sessions.count > 0
            or cancellations_part.count + cancellations_part.pending_count > 0
            or subscriptions_part.active_count > 0
        )
        if not has_activity:
            raise NoBillableDataError(customer_id, target.key, details={
                "sessions_count": sessions.count,
                "cancellations_count": cancellations_part.count,
                "pending_cancellations_count": cancellations_part.pending_count,
                "subscriptions_count": subscriptions_part.active_count,
            })

        existing = [
            invoice for invoice in activity.invoices
            if customer_id in invoice.customer_ids and invoice.period == target.key
        ]
        if len(existing) > 1:
            raise DuplicateInvoiceError(customer_id, target.key, [i.id for i in existing])

        current = existing[0] if existing else None
        is_paid = current.paid if current else False

        status = resolve_status(cancellations_part.pending_count, is_paid)
        total = calculate_total(
            sessions.total,
            cancellations_part.total,
            subscriptions_part.total
        )

        draft = InvoiceDraft(
            customer_id=customer_id,
            period=target.key,
            paid=is_paid,
            approved=status in (InvoiceStatus.APPROVED, InvoiceStatus.PAID),
            sessions_total=sessions.total,
            sessions_count=sessions.count,
            cancellations_total=cancellations_part.total,
            subscriptions_total=subscriptions_part.total,
            total=total,
            adjustment=current.adjustment if current else None,
        )

        key = generate_invoice_key(customer_id, target.key)
        if self.dry_run:
            invoice_id = current.id if current else None
            logger.info(f"{prefix}[dry run] {key}: total={total} status={status.value}")
        elif current is None:
            invoice_id = self.store.create_invoice(draft).id
            logger.info(f"{prefix}{key}: created invoice {invoice_id} total={total}")
        else:
            invoice_id = self.store.update_invoice(current.id, draft).id
            logger.info(f"{prefix}{key}: updated invoice {invoice_id} total={total}")

        return Result.success(BillingResult(
            invoice_id=invoice_id,
            customer_id=customer_id,
            period=target.key,
            sessions_total=sessions.total,
            sessions_count=sessions.count,
            cancellations_total=cancellations_part.total,
            cancellations_count=cancellations_part.count,
            pending_cancellations_count=cancellations_part.pending_count,
            subscriptions_total=subscriptions_part.total,
            subscriptions_count=subscriptions_part.active_count,
            total=total,
            status=status,
            created=current is None,
            dry_run=self.dry_run,
        ))
