"""
Normalized record types.

These dataclasses are what the calculators and the engine work with.
The store boundary builds them from raw table rows; linked-record fields
are always a tuple of customer ids here, whatever shape the store
returned.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple, Union


CustomerIds = Tuple[str, ...]


@dataclass(frozen=True)
class Customer:
    """
    A billed customer (student).

    Attributes:
        id: Store record id
        name: Display name
        is_active: Whether the customer is billed in batch runs
    """

    id: str
    name: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class Session:
    """
    A single lesson occurrence.

    Attributes:
        id: Store record id
        customer_ids: Linked customers (more than one for duo/group)
        category: Raw category text (see classification.classify_category)
        state: Raw lifecycle state text (see classification.classify_state)
        start: Start timestamp
        period: Assigned period tag (YYYY-MM) if the store has one
        amount_override: Explicit per-session amount
    """

    id: str
    customer_ids: CustomerIds = ()
    category: Optional[str] = None
    state: Optional[str] = None
    start: Optional[datetime] = None
    period: Optional[str] = None
    amount_override: Optional[float] = None


@dataclass(frozen=True)
class Cancellation:
    """
    A cancelled session carrying its own charge eligibility.

    Attributes:
        id: Store record id
        customer_ids: Linked customers
        session_id: Linked session id
        period: Period tag (YYYY-MM)
        is_lt_24h: Cancelled less than 24 hours before the start
        is_charged: Charge approved by an operator
        charge: Explicit charge amount
    """

    id: str
    customer_ids: CustomerIds = ()
    session_id: Optional[str] = None
    period: Optional[str] = None
    is_lt_24h: bool = False
    is_charged: bool = False
    charge: Optional[float] = None


@dataclass(frozen=True)
class Subscription:
    """
    A standing monthly charge.

    Attributes:
        id: Store record id
        customer_ids: Linked customers
        start_date: First day covered
        end_date: Last day covered (open-ended if None)
        paused: Paused subscriptions are never active
        monthly_amount: Number or currency-formatted string
        subscription_type: Covered activity, e.g. "pair" or "group"
    """

    id: str
    customer_ids: CustomerIds = ()
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    paused: bool = False
    monthly_amount: Union[str, float, int, None] = None
    subscription_type: Optional[str] = None


@dataclass(frozen=True)
class ManualAdjustment:
    """
    Operator-owned adjustment fields of an invoice.

    Values are kept exactly as read from the store so they can be written
    back unchanged.
    """

    amount: Any = None
    reason: Any = None
    date: Any = None

    @property
    def is_empty(self) -> bool:
        return self.amount is None and self.reason is None and self.date is None


@dataclass(frozen=True)
class InvoiceRecord:
    """
    A persisted monthly invoice.

    Attributes:
        id: Store record id
        customer_ids: Linked customer(s)
        period: Billing period (YYYY-MM)
        paid: Paid flag (sticky)
        approved: Approved-for-billing flag
        link_sent: Payment link sent flag
        sessions_total: Session sub-total
        sessions_count: Number of billed sessions
        cancellations_total: Cancellation sub-total
        subscriptions_total: Subscription sub-total
        total: Grand total
        adjustment: Manual adjustment fields
    """

    id: str
    customer_ids: CustomerIds = ()
    period: Optional[str] = None
    paid: bool = False
    approved: bool = False
    link_sent: bool = False
    sessions_total: float = 0.0
    sessions_count: int = 0
    cancellations_total: float = 0.0
    subscriptions_total: float = 0.0
    total: float = 0.0
    adjustment: ManualAdjustment = field(default_factory=ManualAdjustment)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "id": self.id,
            **self.draft().to_dict(),
            "customer_ids": list(self.customer_ids),
            "link_sent": self.link_sent,
        }

    def draft(self) -> 'InvoiceDraft':
        """The writable part of this invoice."""
        return InvoiceDraft(
            customer_id=self.customer_ids[0] if self.customer_ids else "",
            period=self.period or "",
            paid=self.paid,
            approved=self.approved,
            sessions_total=self.sessions_total,
            sessions_count=self.sessions_count,
            cancellations_total=self.cancellations_total,
            subscriptions_total=self.subscriptions_total,
            total=self.total,
            adjustment=self.adjustment,
        )


@dataclass(frozen=True)
class InvoiceDraft:
    """
    Invoice values the engine writes.

    Attributes:
        customer_id: Linked customer
        period: Billing period (YYYY-MM)
        paid: Paid flag, carried over from the existing invoice
        approved: Approved-for-billing flag
        sessions_total: Session sub-total
        sessions_count: Number of billed sessions
        cancellations_total: Cancellation sub-total
        subscriptions_total: Subscription sub-total
        total: Grand total
        adjustment: Manual adjustment read from the existing invoice; None
            on create, where the engine leaves those fields untouched
    """

    customer_id: str
    period: str
    paid: bool
    approved: bool
    sessions_total: float
    sessions_count: int
    cancellations_total: float
    subscriptions_total: float
    total: float
    adjustment: Optional[ManualAdjustment] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        adjustment = self.adjustment or ManualAdjustment()
        return {
            "customer_id": self.customer_id,
            "period": self.period,
            "paid": self.paid,
            "approved": self.approved,
            "sessions_total": self.sessions_total,
            "sessions_count": self.sessions_count,
            "cancellations_total": self.cancellations_total,
            "subscriptions_total": self.subscriptions_total,
            "total": self.total,
            "manual_adjustment_amount": adjustment.amount,
            "manual_adjustment_reason": adjustment.reason,
            "manual_adjustment_date": adjustment.date,
        }
