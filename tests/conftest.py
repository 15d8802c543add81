"""
Shared fixtures: an in-memory record store and record builders.
"""

from dataclasses import replace
from datetime import date, datetime
from typing import Dict, List, Optional

import pytest

from tutor_billing.billing.errors import StoreError
from tutor_billing.models.records import (
    Cancellation,
    Customer,
    InvoiceDraft,
    InvoiceRecord,
    Session,
    Subscription,
)
from tutor_billing.store.interfaces import RecordStore


class InMemoryRecordStore(RecordStore):
    """RecordStore fake that keeps records in lists and logs every write."""

    def __init__(self):
        self.customers: Dict[str, Customer] = {}
        self.sessions: List[Session] = []
        self.cancellations: List[Cancellation] = []
        self.subscriptions: List[Subscription] = []
        self.invoices: Dict[str, InvoiceRecord] = {}
        self.writes: List[tuple] = []
        self.fail_on_create_for: set = set()
        self._next_id = 1

    def add_customer(self, customer_id: str, name: str = "", is_active: bool = True) -> Customer:
        customer = Customer(id=customer_id, name=name, is_active=is_active)
        self.customers[customer_id] = customer
        return customer

    def add_invoice(self, invoice: InvoiceRecord) -> InvoiceRecord:
        self.invoices[invoice.id] = invoice
        return invoice

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.customers.get(customer_id)

    def list_active_customers(self) -> List[Customer]:
        return [c for c in self.customers.values() if c.is_active]

    def list_sessions(self, period: str, customer_id: Optional[str] = None) -> List[Session]:
        return [
            s for s in self.sessions
            if customer_id is None or customer_id in s.customer_ids
        ]

    def list_cancellations(self, period: str, customer_id: Optional[str] = None) -> List[Cancellation]:
        return [
            c for c in self.cancellations
            if c.period == period and (customer_id is None or customer_id in c.customer_ids)
        ]

    def list_subscriptions(self, customer_id: Optional[str] = None) -> List[Subscription]:
        return [
            s for s in self.subscriptions
            if customer_id is None or customer_id in s.customer_ids
        ]

    def list_invoices(self, period: str, customer_id: Optional[str] = None) -> List[InvoiceRecord]:
        return [
            i for i in self.invoices.values()
            if i.period == period and (customer_id is None or customer_id in i.customer_ids)
        ]

    def _record_from_draft(self, invoice_id: str, draft: InvoiceDraft, base: InvoiceRecord) -> InvoiceRecord:
        record = replace(
            base,
            id=invoice_id,
            customer_ids=(draft.customer_id,),
            period=draft.period,
            paid=draft.paid,
            approved=draft.approved,
            sessions_total=draft.sessions_total,
            sessions_count=draft.sessions_count,
            cancellations_total=draft.cancellations_total,
            subscriptions_total=draft.subscriptions_total,
            total=draft.total,
        )
        if draft.adjustment is not None:
            record = replace(record, adjustment=draft.adjustment)
        return record

    def create_invoice(self, draft: InvoiceDraft) -> InvoiceRecord:
        if draft.customer_id in self.fail_on_create_for:
            raise StoreError("create failed", status=500)
        invoice_id = f"recInv{self._next_id}"
        self._next_id += 1
        record = self._record_from_draft(invoice_id, draft, InvoiceRecord(id=invoice_id))
        self.invoices[invoice_id] = record
        self.writes.append(("create", invoice_id, draft))
        return record

    def update_invoice(self, invoice_id: str, draft: InvoiceDraft) -> InvoiceRecord:
        record = self._record_from_draft(invoice_id, draft, self.invoices[invoice_id])
        self.invoices[invoice_id] = record
        self.writes.append(("update", invoice_id, draft))
        return record


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryRecordStore()


@pytest.fixture
def solo_session():
    """Factory for completed solo sessions in March 2024."""
    def make(session_id: str, customer_id: str = "recStudent1", **overrides) -> Session:
        values = dict(
            id=session_id,
            customer_ids=(customer_id,),
            category="solo",
            state="completed",
            start=datetime(2024, 3, 10, 16, 0),
            period="2024-03",
        )
        values.update(overrides)
        return Session(**values)
    return make


@pytest.fixture
def subscription():
    """Factory for subscriptions."""
    def make(subscription_id: str, customer_id: str = "recStudent1", **overrides) -> Subscription:
        values = dict(
            id=subscription_id,
            customer_ids=(customer_id,),
            start_date=date(2024, 1, 1),
            end_date=None,
            paused=False,
            monthly_amount=300,
            subscription_type="pair",
        )
        values.update(overrides)
        return Subscription(**values)
    return make


@pytest.fixture
def late_cancellation():
    """Factory for late (<24h) cancellations in March 2024."""
    def make(cancellation_id: str, customer_id: str = "recStudent1", **overrides) -> Cancellation:
        values = dict(
            id=cancellation_id,
            customer_ids=(customer_id,),
            session_id=None,
            period="2024-03",
            is_lt_24h=True,
            is_charged=True,
            charge=None,
        )
        values.update(overrides)
        return Cancellation(**values)
    return make
