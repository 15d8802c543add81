"""
Airtable implementation of the record store.

Rows are fetched with coarse period formulas and narrowed again in
memory: linked-record fields cannot be matched by record id inside an
Airtable formula, and the period may be stored as text or as a date.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..billing.periods import Period, normalize_period_value, parse_date, parse_timestamp
from ..models.records import (
    Cancellation,
    Customer,
    InvoiceDraft,
    InvoiceRecord,
    ManualAdjustment,
    Session,
    Subscription,
)
from .airtable_client import AirtableClient, escape_formula_value
from .field_map import FieldMap
from .interfaces import RecordStore
from .normalize import first_link, normalize_links, to_bool, to_number, to_text


logger = logging.getLogger(__name__)


def period_formula(field_name: str, period: Period) -> str:
    """
    Match a period field stored either as text or as a date.

    Examples:
        >>> period_formula("billing_month", Period(2024, 3))
        'LEFT({billing_month} & "", 7) = "2024-03"'
    """
    return f'LEFT({{{field_name}}} & "", 7) = {escape_formula_value(period.key)}'


def start_range_formula(field_name: str, period: Period) -> str:
    """
    Match timestamps around a month.

    The range is one day wider on each side so that time zone offsets
    never drop a session; exact membership is decided by the calculators.
    """
    after = (period.first_day - timedelta(days=2)).isoformat()
    before = (period.next().first_day + timedelta(days=1)).isoformat()
    return (
        f"AND(IS_AFTER({{{field_name}}}, {escape_formula_value(after)}), "
        f"IS_BEFORE({{{field_name}}}, {escape_formula_value(before)}))"
    )


class AirtableRecordStore(RecordStore):
    """
    Record store over one Airtable base.

    Examples:
        >>> client = AirtableClient(config.airtable_api_key, config.airtable_base_id)
        >>> store = AirtableRecordStore(client, config.field_map())
        >>> sessions = store.list_sessions("2024-03")
    """

    def __init__(self, client: AirtableClient, field_map: Optional[FieldMap] = None):
        self.client = client
        self.fields = field_map or FieldMap()

    @property
    def tables(self):
        return self.fields.tables

    # Row mapping

    def _to_customer(self, row: Dict[str, Any]) -> Customer:
        fields = row.get("fields", {})
        names = self.fields.students
        return Customer(
            id=row["id"],
            name=to_text(fields.get(names.full_name)) or "",
            is_active=to_bool(fields.get(names.is_active)),
        )

    def _to_session(self, row: Dict[str, Any]) -> Session:
        fields = row.get("fields", {})
        names = self.fields.lessons
        return Session(
            id=row["id"],
            customer_ids=normalize_links(fields.get(names.students)),
            category=to_text(fields.get(names.lesson_type)),
            state=to_text(fields.get(names.status)),
            start=parse_timestamp(fields.get(names.start_datetime)),
            period=normalize_period_value(fields.get(names.billing_month)),
            amount_override=to_number(fields.get(names.line_amount)),
        )

    def _to_cancellation(self, row: Dict[str, Any]) -> Cancellation:
        fields = row.get("fields", {})
        names = self.fields.cancellations
        return Cancellation(
            id=row["id"],
            customer_ids=normalize_links(fields.get(names.student)),
            session_id=first_link(fields.get(names.lesson)),
            period=normalize_period_value(fields.get(names.billing_month)),
            is_lt_24h=to_bool(fields.get(names.is_lt_24h)),
            is_charged=to_bool(fields.get(names.is_charged)),
            charge=to_number(fields.get(names.charge)),
        )

    def _to_subscription(self, row: Dict[str, Any]) -> Subscription:
        fields = row.get("fields", {})
        names = self.fields.subscriptions
        return Subscription(
            id=row["id"],
            customer_ids=normalize_links(fields.get(names.student)),
            start_date=parse_date(fields.get(names.start_date)),
            end_date=parse_date(fields.get(names.end_date)),
            paused=to_bool(fields.get(names.paused)),
            monthly_amount=fields.get(names.monthly_amount),
            subscription_type=to_text(fields.get(names.subscription_type)),
        )

    def _to_invoice(self, row: Dict[str, Any]) -> InvoiceRecord:
        fields = row.get("fields", {})
        names = self.fields.invoices
        return InvoiceRecord(
            id=row["id"],
            customer_ids=normalize_links(fields.get(names.student)),
            period=normalize_period_value(fields.get(names.period)),
            paid=to_bool(fields.get(names.paid)),
            approved=to_bool(fields.get(names.approved)),
            link_sent=to_bool(fields.get(names.link_sent)),
            sessions_total=to_number(fields.get(names.sessions_total)) or 0.0,
            sessions_count=int(to_number(fields.get(names.sessions_count)) or 0),
            cancellations_total=to_number(fields.get(names.cancellations_total)) or 0.0,
            subscriptions_total=to_number(fields.get(names.subscriptions_total)) or 0.0,
            total=to_number(fields.get(names.total)) or 0.0,
            adjustment=ManualAdjustment(
                amount=fields.get(names.adjustment_amount),
                reason=fields.get(names.adjustment_reason),
                date=fields.get(names.adjustment_date),
            ),
        )

    def draft_to_fields(self, draft: InvoiceDraft) -> Dict[str, Any]:
        """
        Map an invoice draft to store fields.

        Manual adjustment fields are included only when the draft carries
        an adjustment, i.e. on update.
        """
        names = self.fields.invoices
        fields = {
            names.period: draft.period,
            names.paid: draft.paid,
            names.approved: draft.approved,
            names.student: [draft.customer_id],
            names.sessions_total: draft.sessions_total,
            names.sessions_count: draft.sessions_count,
            names.cancellations_total: draft.cancellations_total,
            names.subscriptions_total: draft.subscriptions_total,
            names.total: draft.total,
        }

        if draft.adjustment is not None:
            fields[names.adjustment_amount] = draft.adjustment.amount
            fields[names.adjustment_reason] = draft.adjustment.reason
            fields[names.adjustment_date] = draft.adjustment.date

        return fields

    # RecordStore

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        row = self.client.get_record(self.tables.students, customer_id)
        return self._to_customer(row) if row else None

    def list_active_customers(self) -> List[Customer]:
        formula = f"{{{self.fields.students.is_active}}} = 1"
        rows = self.client.list_records(self.tables.students, formula=formula)
        return [self._to_customer(row) for row in rows]

    def list_sessions(self, period: str, customer_id: Optional[str] = None) -> List[Session]:
        target = Period.parse(period)
        names = self.fields.lessons
        formula = (
            f"OR({period_formula(names.billing_month, target)}, "
            f"{start_range_formula(names.start_datetime, target)})"
        )
        rows = self.client.list_records(self.tables.lessons, formula=formula)

        sessions = [self._to_session(row) for row in rows]
        if customer_id:
            sessions = [s for s in sessions if customer_id in s.customer_ids]
        return sessions

    def list_cancellations(
        self,
        period: str,
        customer_id: Optional[str] = None
    ) -> List[Cancellation]:
        target = Period.parse(period)
        formula = period_formula(self.fields.cancellations.billing_month, target)
        rows = self.client.list_records(self.tables.cancellations, formula=formula)

        cancellations = [self._to_cancellation(row) for row in rows]
        cancellations = [c for c in cancellations if c.period == target.key]
        if customer_id:
            cancellations = [c for c in cancellations if customer_id in c.customer_ids]
        return cancellations

    def list_subscriptions(self, customer_id: Optional[str] = None) -> List[Subscription]:
        rows = self.client.list_records(self.tables.subscriptions)

        subscriptions = [self._to_subscription(row) for row in rows]
        if customer_id:
            subscriptions = [s for s in subscriptions if customer_id in s.customer_ids]
        return subscriptions

    def list_invoices(self, period: str, customer_id: Optional[str] = None) -> List[InvoiceRecord]:
        target = Period.parse(period)
        formula = period_formula(self.fields.invoices.period, target)
        rows = self.client.list_records(self.tables.monthly_bills, formula=formula)

        invoices = [self._to_invoice(row) for row in rows]
        invoices = [i for i in invoices if i.period == target.key]
        if customer_id:
            invoices = [i for i in invoices if customer_id in i.customer_ids]
        return invoices

    def create_invoice(self, draft: InvoiceDraft) -> InvoiceRecord:
        fields = self.draft_to_fields(draft)
        row = self.client.create_record(self.tables.monthly_bills, fields)
        logger.info(f"Created invoice {row['id']} for {draft.customer_id} {draft.period}")
        return self._to_invoice(row)

    def update_invoice(self, invoice_id: str, draft: InvoiceDraft) -> InvoiceRecord:
        fields = self.draft_to_fields(draft)
        row = self.client.update_record(self.tables.monthly_bills, invoice_id, fields)
        logger.info(f"Updated invoice {invoice_id} for {draft.customer_id} {draft.period}")
        return self._to_invoice(row)
